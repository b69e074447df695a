"""Key-value store contract and its SQL and in-memory implementations.

Writes are single-key. ``compare_and_delete`` is the one atomic
check-then-act primitive; it is what makes OAuth state single-use when two
completions race. ``keys_with_suffix`` is a read-only scan used at startup.
"""
import threading
from datetime import datetime, timedelta
from typing import Protocol

from sqlalchemy import Engine, delete
from sqlalchemy.dialects.sqlite import insert
from sqlmodel import Session, select

from calendar_bridge.core.clock import Clock, SystemClock
from calendar_bridge.models.kv import KVEntry


class KVStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None: ...

    def delete(self, key: str) -> None: ...

    def compare_and_delete(self, key: str, expected: str) -> bool:
        """Delete ``key`` only if it currently holds ``expected``.

        Returns True if this call removed the entry.
        """
        ...

    def keys_with_suffix(self, suffix: str) -> list[str]: ...


def _naive_utc(dt: datetime) -> datetime:
    # SQLite drops tzinfo; store and compare naive UTC throughout.
    return dt.replace(tzinfo=None) if dt.tzinfo else dt


class SQLKVStore:
    """KV store persisted in the ``kv_entry`` table (SQLite upsert)."""

    def __init__(self, engine: Engine, clock: Clock | None = None):
        self.engine = engine
        self.clock = clock or SystemClock()

    def _now(self) -> datetime:
        return _naive_utc(self.clock.now())

    def get(self, key: str) -> str | None:
        with Session(self.engine) as session:
            entry = session.get(KVEntry, key)
            if entry is None:
                return None
            if entry.expires_at is not None and entry.expires_at <= self._now():
                return None
            return entry.value

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        expires_at = self._now() + timedelta(seconds=ttl_seconds) if ttl_seconds else None
        statement = insert(KVEntry).values(key=key, value=value, expires_at=expires_at)
        statement = statement.on_conflict_do_update(
            index_elements=[KVEntry.key],
            set_={
                "value": statement.excluded.value,
                "expires_at": statement.excluded.expires_at,
            },
        )
        with self.engine.begin() as conn:
            conn.execute(statement)

    def delete(self, key: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(delete(KVEntry).where(KVEntry.key == key))

    def compare_and_delete(self, key: str, expected: str) -> bool:
        now = self._now()
        statement = (
            delete(KVEntry)
            .where(KVEntry.key == key)
            .where(KVEntry.value == expected)
            .where((KVEntry.expires_at.is_(None)) | (KVEntry.expires_at > now))
        )
        with self.engine.begin() as conn:
            result = conn.execute(statement)
        return result.rowcount == 1

    def keys_with_suffix(self, suffix: str) -> list[str]:
        statement = (
            select(KVEntry.key)
            .where(KVEntry.key.endswith(suffix, autoescape=True))
            .where((KVEntry.expires_at.is_(None)) | (KVEntry.expires_at > self._now()))
        )
        with Session(self.engine) as session:
            return list(session.exec(statement))

    def purge_expired(self) -> int:
        """Remove expired entries. Returns the number removed."""
        statement = delete(KVEntry).where(KVEntry.expires_at <= self._now())
        with self.engine.begin() as conn:
            result = conn.execute(statement)
        return result.rowcount


class MemoryKVStore:
    """Process-local KV store."""

    def __init__(self, clock: Clock | None = None):
        self.clock = clock or SystemClock()
        self._lock = threading.Lock()
        self._data: dict[str, tuple[str, datetime | None]] = {}

    def _live(self, key: str) -> str | None:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and expires_at <= self.clock.now():
            del self._data[key]
            return None
        return value

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._live(key)

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        expires_at = self.clock.now() + timedelta(seconds=ttl_seconds) if ttl_seconds else None
        with self._lock:
            self._data[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def compare_and_delete(self, key: str, expected: str) -> bool:
        with self._lock:
            if self._live(key) != expected:
                return False
            del self._data[key]
            return True

    def keys_with_suffix(self, suffix: str) -> list[str]:
        with self._lock:
            return [k for k in list(self._data) if k.endswith(suffix) and self._live(k) is not None]
