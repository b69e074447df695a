"""Key-value entry table backing the persistent store.

Everything the service persists (OAuth state, credentials, watch channels,
sync bookkeeping) is a JSON or plain string value under a logical key, so a
single table is enough.
"""

from datetime import datetime

from sqlmodel import Field, SQLModel


class KVEntry(SQLModel, table=True):
    """A single key-value record.

    Attributes:
        key: Logical key, e.g. ``U1calendarToken``.
        value: Stored value (JSON text for structured records).
        expires_at: Naive UTC timestamp after which the entry reads as
            absent. ``None`` means the entry never expires.
    """
    __tablename__ = "kv_entry"

    key: str = Field(primary_key=True)
    value: str
    expires_at: datetime | None = Field(default=None, index=True)
