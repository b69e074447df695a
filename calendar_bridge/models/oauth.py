"""OAuth records: the anti-replay state token and the stored credential.

``CsrfState`` binds one authorization attempt to the user who started it; it
is stored under its own value and consumed exactly once. ``CalendarCredential``
is the serialized access/refresh token pair, persisted per user and rewritten
on every silent refresh.
"""

import secrets
from datetime import datetime

from sqlmodel import Field, SQLModel

STATE_SEPARATOR = "_"


class CsrfState(SQLModel):
    """Single-use OAuth ``state`` value.

    The wire form is ``<nonce>_<user_id>``. The nonce is hex so it never
    contains the separator; user ids may.

    Attributes:
        nonce: Unguessable random part.
        user_id: User the authorization flow was started for.
        created_at: When the state was issued.
    """
    nonce: str
    user_id: str
    created_at: datetime

    @classmethod
    def issue(cls, user_id: str, now: datetime) -> "CsrfState":
        return cls(nonce=secrets.token_hex(16), user_id=user_id, created_at=now)

    @property
    def value(self) -> str:
        return f"{self.nonce}{STATE_SEPARATOR}{self.user_id}"

    @staticmethod
    def user_id_from_value(value: str) -> str | None:
        """Extract the embedded user id, or None if the value is malformed."""
        nonce, sep, user_id = value.partition(STATE_SEPARATOR)
        if not nonce or not sep or not user_id:
            return None
        return user_id


class CalendarCredential(SQLModel):
    """Stored OAuth2 credentials for one user's Google Calendar.

    Attributes:
        user_id: Owner of the credential.
        access_token: Short-lived token for API requests.
        refresh_token: Long-lived token used to obtain new access tokens.
        expiry: When the access token expires (UTC), if known.
        token_uri: Google's token endpoint URL.
        scopes: Granted OAuth scopes.
    """
    user_id: str
    access_token: str | None = None
    refresh_token: str
    expiry: datetime | None = None
    token_uri: str = "https://oauth2.googleapis.com/token"
    scopes: list[str] = Field(default_factory=list)
