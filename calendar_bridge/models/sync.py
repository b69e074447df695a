"""Per-user sync bookkeeping."""

from sqlmodel import Field, SQLModel


class SyncState(SQLModel):
    """Where the last sync pass left off.

    Attributes:
        sync_token: Google ``nextSyncToken`` from the last completed pass.
        versions: Event id to last seen ``etag``. A change is only reported
            when the etag differs, so redelivered notifications stay silent.
    """
    sync_token: str | None = None
    versions: dict[str, str] = Field(default_factory=dict)
