"""Typed access to everything the service persists per user.

This is the only module that knows the logical key layout or writes
credential and watch-channel records; other components go through it.

Keys:
    ``<state>``               CsrfState, stored under its own value
    ``<userId>calendarToken`` CalendarCredential JSON
    ``<userId>watchToken``    watch secret
    ``<userId>watchChannel``  WatchChannel JSON
    ``<userId>syncState``     SyncState JSON
"""
import logging

from pydantic import ValidationError

from calendar_bridge.core.errors import MarshalFailure
from calendar_bridge.core.kvstore import KVStore
from calendar_bridge.models import CalendarCredential, CsrfState, SyncState, WatchChannel

logger = logging.getLogger(__name__)


def credential_key(user_id: str) -> str:
    return f"{user_id}calendarToken"


def watch_secret_key(user_id: str) -> str:
    return f"{user_id}watchToken"


def watch_channel_key(user_id: str) -> str:
    return f"{user_id}watchChannel"


def sync_state_key(user_id: str) -> str:
    return f"{user_id}syncState"


class TokenStore:
    """Per-user OAuth, watch channel and sync records on top of a KVStore."""

    def __init__(self, kv: KVStore):
        self.kv = kv

    # -- OAuth state ---------------------------------------------------------

    def save_state(self, state: CsrfState, ttl_seconds: int | None = None) -> None:
        self.kv.set(state.value, state.value, ttl_seconds=ttl_seconds)

    def consume_state(self, value: str) -> bool:
        """Atomically check that ``value`` was issued and delete it.

        Returns False for never-issued, expired or already-consumed values.
        """
        if not value:
            return False
        return self.kv.compare_and_delete(value, value)

    # -- Credentials ---------------------------------------------------------

    def get_credential(self, user_id: str) -> CalendarCredential | None:
        raw = self.kv.get(credential_key(user_id))
        if raw is None:
            return None
        try:
            return CalendarCredential.model_validate_json(raw)
        except ValidationError:
            logger.error(f"Stored credential for {user_id} is unreadable")
            return None

    def save_credential(self, credential: CalendarCredential) -> None:
        try:
            raw = credential.model_dump_json()
        except (ValueError, TypeError) as e:
            raise MarshalFailure(f"Invalid token marshal: {e}") from e
        self.kv.set(credential_key(credential.user_id), raw)

    def delete_credential(self, user_id: str) -> None:
        self.kv.delete(credential_key(user_id))

    def connected_user_ids(self) -> list[str]:
        """Users with a stored credential."""
        suffix = credential_key("")
        return [key[: -len(suffix)] for key in self.kv.keys_with_suffix(suffix) if key != suffix]

    # -- Watch channel -------------------------------------------------------

    def get_watch_secret(self, user_id: str) -> str | None:
        return self.kv.get(watch_secret_key(user_id))

    def get_watch_channel(self, user_id: str) -> WatchChannel | None:
        raw = self.kv.get(watch_channel_key(user_id))
        if raw is None:
            return None
        try:
            return WatchChannel.model_validate_json(raw)
        except ValidationError:
            logger.error(f"Stored watch channel for {user_id} is unreadable")
            return None

    def save_watch_channel(self, channel: WatchChannel, secret: str) -> None:
        self.kv.set(watch_channel_key(channel.user_id), channel.model_dump_json())
        self.kv.set(watch_secret_key(channel.user_id), secret)

    def delete_watch_channel(self, user_id: str) -> None:
        self.kv.delete(watch_secret_key(user_id))
        self.kv.delete(watch_channel_key(user_id))

    # -- Sync bookkeeping ----------------------------------------------------

    def get_sync_state(self, user_id: str) -> SyncState:
        raw = self.kv.get(sync_state_key(user_id))
        if raw is None:
            return SyncState()
        try:
            return SyncState.model_validate_json(raw)
        except ValidationError:
            logger.warning(f"Discarding unreadable sync state for {user_id}")
            return SyncState()

    def save_sync_state(self, user_id: str, state: SyncState) -> None:
        self.kv.set(sync_state_key(user_id), state.model_dump_json())

    def delete_sync_state(self, user_id: str) -> None:
        self.kv.delete(sync_state_key(user_id))
