"""Google Calendar API client built from a user's stored credentials."""
import logging
from datetime import UTC, datetime, timedelta
from typing import Callable, Protocol

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from calendar_bridge.calendar.token_store import TokenStore
from calendar_bridge.core.clock import Clock, SystemClock
from calendar_bridge.core.config import Settings, settings
from calendar_bridge.core.errors import NotConnected, ProviderAPIError
from calendar_bridge.core.locks import UserLocks
from calendar_bridge.models import CalendarCredential

logger = logging.getLogger(__name__)

# Scopes for Google Calendar API
SCOPES = [
    "https://www.googleapis.com/auth/calendar.readonly",
    "https://www.googleapis.com/auth/calendar.events",
]


class CalendarClient:
    """Thin wrapper around the ``calendar`` v3 discovery service.

    Every call is executed immediately; provider and transport failures are
    raised as ``ProviderAPIError``.

    The transport may refresh ``creds`` on its own (near expiry or after a
    401). When the access token changed during a call, ``on_refresh`` is
    called with the credentials so the new token can be stored.
    """

    def __init__(
        self,
        service,
        creds: Credentials | None = None,
        on_refresh: Callable[[Credentials], None] | None = None,
    ):
        self.service = service
        self.creds = creds
        self.on_refresh = on_refresh
        self._token = creds.token if creds is not None else None

    def _execute(self, request, action: str) -> dict:
        try:
            return request.execute() or {}
        except HttpError as e:
            raise ProviderAPIError(
                f"{action} failed ({e.resp.status}): {e.reason}",
                provider_status=e.resp.status,
            ) from e
        except (httplib2.HttpLib2Error, OSError) as e:
            raise ProviderAPIError(f"{action} failed: {e}") from e
        finally:
            self._persist_refresh()

    def _persist_refresh(self) -> None:
        if self.creds is None or self.on_refresh is None:
            return
        if self.creds.token == self._token:
            return
        self._token = self.creds.token
        self.on_refresh(self.creds)

    def primary_calendar_id(self) -> str:
        result = self._execute(
            self.service.calendarList().get(calendarId="primary"), "Get primary calendar"
        )
        return result.get("id", "primary")

    def get_event(self, calendar_id: str, event_id: str) -> dict:
        return self._execute(
            self.service.events().get(calendarId=calendar_id, eventId=event_id), "Get event"
        )

    def delete_event(self, calendar_id: str, event_id: str) -> None:
        self._execute(
            self.service.events().delete(calendarId=calendar_id, eventId=event_id),
            "Delete event",
        )

    def update_event(
        self, calendar_id: str, event_id: str, body: dict, etag: str | None = None
    ) -> dict:
        """Replace an event. With ``etag`` the update fails (412) if the event changed."""
        request = self.service.events().update(
            calendarId=calendar_id, eventId=event_id, body=body
        )
        if etag:
            request.headers["If-Match"] = etag
        return self._execute(request, "Update event")

    def list_events(self, calendar_id: str, **params) -> dict:
        return self._execute(
            self.service.events().list(calendarId=calendar_id, **params), "List events"
        )

    def watch_events(self, calendar_id: str, body: dict) -> dict:
        return self._execute(
            self.service.events().watch(calendarId=calendar_id, body=body), "Watch calendar"
        )

    def stop_channel(self, channel_id: str, resource_id: str) -> None:
        self._execute(
            self.service.channels().stop(body={"id": channel_id, "resourceId": resource_id}),
            "Stop channel",
        )


class ClientFactory(Protocol):
    def get_client(self, user_id: str) -> CalendarClient: ...


class CalendarServiceFactory:
    """Turns a stored credential into a ready ``CalendarClient``.

    Refreshes the access token when it is missing or about to expire and
    writes the refreshed credential back before returning, all under the
    user's credential lock so concurrent requests refresh once.
    """

    def __init__(
        self,
        token_store: TokenStore,
        locks: UserLocks,
        clock: Clock | None = None,
        config: Settings = settings,
    ):
        self.token_store = token_store
        self.locks = locks
        self.clock = clock or SystemClock()
        self.config = config

    def get_client(self, user_id: str) -> CalendarClient:
        with self.locks.hold("credential", user_id):
            credential = self.token_store.get_credential(user_id)
            if credential is None:
                raise NotConnected()

            creds = self.to_google_credentials(credential)
            if self.needs_refresh(credential):
                try:
                    creds.refresh(Request())
                except GoogleAuthError as e:
                    logger.error(f"Failed to refresh credentials for {user_id}: {e}")
                    raise ProviderAPIError("Failed to refresh calendar credentials") from e
                self.token_store.save_credential(from_google_credentials(user_id, creds))
                logger.info(f"Refreshed Google API credentials for {user_id}")

        return self.build_client(
            creds, on_refresh=lambda refreshed: self.write_back(user_id, refreshed)
        )

    def write_back(self, user_id: str, creds: Credentials) -> None:
        """Store credentials the transport refreshed during a request."""
        with self.locks.hold("credential", user_id):
            self.token_store.save_credential(from_google_credentials(user_id, creds))
        logger.info(f"Stored transport-refreshed credentials for {user_id}")

    def needs_refresh(self, credential: CalendarCredential) -> bool:
        if not credential.access_token:
            return True
        if credential.expiry is None:
            return False
        skew = timedelta(seconds=self.config.token_refresh_skew_seconds)
        return credential.expiry - skew <= self.clock.now()

    def to_google_credentials(self, credential: CalendarCredential) -> Credentials:
        expiry = None
        if credential.expiry is not None:
            # google-auth compares against naive UTC
            expiry = credential.expiry.astimezone(UTC).replace(tzinfo=None)
        return Credentials(
            token=credential.access_token,
            refresh_token=credential.refresh_token,
            token_uri=credential.token_uri,
            client_id=self.config.google_client_id,
            client_secret=self.config.google_client_secret,
            scopes=credential.scopes or SCOPES,
            expiry=expiry,
        )

    def build_client(
        self, creds: Credentials, on_refresh: Callable[[Credentials], None] | None = None
    ) -> CalendarClient:
        http = AuthorizedHttp(
            creds, http=httplib2.Http(timeout=self.config.provider_timeout_seconds)
        )
        service = build("calendar", "v3", http=http, cache_discovery=False)
        return CalendarClient(service, creds=creds, on_refresh=on_refresh)


def from_google_credentials(user_id: str, creds: Credentials) -> CalendarCredential:
    """Convert google-auth credentials into the stored record."""
    expiry: datetime | None = creds.expiry
    if expiry is not None and expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=UTC)
    return CalendarCredential(
        user_id=user_id,
        access_token=creds.token,
        refresh_token=creds.refresh_token,
        expiry=expiry,
        token_uri=creds.token_uri or "https://oauth2.googleapis.com/token",
        scopes=list(creds.scopes or SCOPES),
    )
