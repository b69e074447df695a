"""Inbound Google push notifications.

Google calls the webhook without any user session, so the request names its
subject with the ``userId`` query parameter and authenticates only by the
channel id, which must equal the watch secret stored for that user. A
notification is acted on only when it is authentic and reports an existing
resource change; anything else gets its channel stopped so Google stops
retrying. Nothing here is surfaced to a person: failures are logged.
"""
import hmac
import logging
from dataclasses import dataclass
from enum import Enum

from calendar_bridge.calendar.sync import SyncEngine
from calendar_bridge.calendar.token_store import TokenStore
from calendar_bridge.calendar.watch import WatchChannelManager
from calendar_bridge.core.errors import CalendarBridgeError

logger = logging.getLogger(__name__)

RESOURCE_STATE_EXISTS = "exists"


@dataclass
class PushNotification:
    """Headers and query parameters of one webhook call."""
    user_id: str
    channel_id: str
    resource_id: str
    resource_state: str


class NotificationOutcome(str, Enum):
    SYNCED = "synced"
    SYNC_FAILED = "sync_failed"
    STOPPED = "stopped"
    STOP_FAILED = "stop_failed"
    IGNORED = "ignored"


class PushNotificationHandler:
    def __init__(
        self,
        token_store: TokenStore,
        watch_manager: WatchChannelManager,
        sync_engine: SyncEngine,
    ):
        self.token_store = token_store
        self.watch_manager = watch_manager
        self.sync_engine = sync_engine

    def is_authentic(self, notification: PushNotification) -> bool:
        secret = self.token_store.get_watch_secret(notification.user_id)
        if not secret or not notification.channel_id:
            return False
        return hmac.compare_digest(secret.encode(), notification.channel_id.encode())

    def handle(self, notification: PushNotification) -> NotificationOutcome:
        if not notification.user_id or not notification.channel_id:
            logger.warning("Webhook call without userId or channel id, ignoring")
            return NotificationOutcome.IGNORED

        if (
            self.is_authentic(notification)
            and notification.resource_state == RESOURCE_STATE_EXISTS
        ):
            try:
                self.sync_engine.sync(notification.user_id)
            except CalendarBridgeError as e:
                logger.error(f"Webhook sync failed for {notification.user_id}: {e.detail}")
                return NotificationOutcome.SYNC_FAILED
            return NotificationOutcome.SYNCED

        logger.warning(
            f"Untrusted or stale notification for {notification.user_id} "
            f"(state={notification.resource_state!r}), stopping channel"
        )
        try:
            self.watch_manager.stop_watch(
                notification.user_id, notification.channel_id, notification.resource_id
            )
        except CalendarBridgeError as e:
            logger.error(f"Failed to stop channel for {notification.user_id}: {e.detail}")
            return NotificationOutcome.STOP_FAILED
        return NotificationOutcome.STOPPED
