"""Calendar synchronization: pull changed events and post a digest."""
import logging
from datetime import timedelta

from calendar_bridge.calendar.client import CalendarClient, ClientFactory
from calendar_bridge.calendar.token_store import TokenStore
from calendar_bridge.core.clock import Clock, SystemClock
from calendar_bridge.core.config import Settings, settings
from calendar_bridge.core.errors import ProviderAPIError, SyncFailure
from calendar_bridge.core.locks import UserLocks
from calendar_bridge.core.notifier import Notifier
from calendar_bridge.models import SyncState

logger = logging.getLogger(__name__)


def _format_time(google_time: dict | None) -> str:
    if not google_time:
        return "unknown time"
    return google_time.get("dateTime") or google_time.get("date") or "unknown time"


def format_digest(events: list[dict]) -> str:
    """Render changed events as a short markdown message."""
    lines = ["#### Calendar updates"]
    for event in events:
        summary = event.get("summary", "Untitled")
        if event.get("status") == "cancelled":
            lines.append(f"- Cancelled: _{summary}_")
        else:
            lines.append(f"- _{summary}_ at {_format_time(event.get('start'))}")
    return "\n".join(lines)


class SyncEngine:
    """Incremental, idempotent sync of one user's calendar.

    The first pass for a user records a baseline and posts nothing. Later
    passes report only events whose etag differs from the last one seen, so
    overlapping or repeated passes never post the same change twice.
    """

    def __init__(
        self,
        client_factory: ClientFactory,
        token_store: TokenStore,
        notifier: Notifier,
        locks: UserLocks,
        clock: Clock | None = None,
        config: Settings = settings,
    ):
        self.client_factory = client_factory
        self.token_store = token_store
        self.notifier = notifier
        self.locks = locks
        self.clock = clock or SystemClock()
        self.config = config

    def sync(self, user_id: str) -> dict:
        """
        Sync events for ``user_id``.

        Returns dict with sync statistics. Raises NotConnected without a
        credential and SyncFailure when the provider call fails.
        """
        with self.locks.hold("sync", user_id):
            client = self.client_factory.get_client(user_id)
            state = self.token_store.get_sync_state(user_id)
            try:
                stats = self._sync(user_id, client, state)
            except ProviderAPIError as e:
                logger.error(f"Sync failed for {user_id}: {e.detail}")
                raise SyncFailure(f"Failed to sync calendar: {e.detail}") from e

        logger.info(f"Sync completed for {user_id}: {stats}")
        return stats

    def _sync(self, user_id: str, client: CalendarClient, state: SyncState) -> dict:
        calendar_id = self.config.google_calendar_id
        baseline = not state.sync_token and not state.versions

        try:
            events, next_token = self._fetch(client, calendar_id, state.sync_token)
        except ProviderAPIError as e:
            if e.provider_status == 410 and state.sync_token:
                # Sync token expired, do full sync
                logger.info(f"Sync token expired for {user_id}, performing full sync")
                state.sync_token = None
                self.token_store.save_sync_state(user_id, state)
                return self._sync(user_id, client, state)
            raise

        changes = []
        for event in events:
            event_id = event.get("id")
            if not event_id:
                continue
            etag = event.get("etag", "")
            if state.versions.get(event_id) == etag:
                continue
            if event.get("status") == "cancelled":
                # Gone for good; incremental passes never list it again
                state.versions.pop(event_id, None)
            else:
                state.versions[event_id] = etag
            if not baseline:
                changes.append(event)

        if next_token:
            state.sync_token = next_token
        self.token_store.save_sync_state(user_id, state)

        if changes:
            self.notifier.post(user_id, format_digest(changes))

        return {"fetched": len(events), "changed": len(changes), "baseline": baseline}

    def _fetch(
        self, client: CalendarClient, calendar_id: str, sync_token: str | None
    ) -> tuple[list[dict], str | None]:
        if sync_token:
            params = {"syncToken": sync_token, "singleEvents": True}
        else:
            now = self.clock.now()
            time_min = (now - timedelta(hours=2)).isoformat().replace("+00:00", "Z")
            time_max = (now + timedelta(days=self.config.sync_window_days)).isoformat().replace(
                "+00:00", "Z"
            )
            params = {
                "timeMin": time_min,
                "timeMax": time_max,
                "singleEvents": True,
                "orderBy": "startTime",
            }

        events: list[dict] = []
        page_token = None
        while True:
            page_params = dict(params, pageToken=page_token) if page_token else params
            result = client.list_events(calendar_id, **page_params)
            events.extend(result.get("items", []))
            page_token = result.get("nextPageToken")
            if not page_token:
                return events, result.get("nextSyncToken")
