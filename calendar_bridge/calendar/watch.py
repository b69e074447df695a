"""Google Calendar push-notification channels.

A channel is registered with ``events.watch`` on the user's primary calendar.
Its id is a fresh random secret, which Google echoes back in the
``X-Goog-Channel-ID`` header; the webhook trusts a notification only if that
header equals the stored secret. Setting up a channel always stops the
previous one first so superseded channels do not keep delivering.
"""
import logging
import secrets
from datetime import UTC, datetime
from urllib.parse import urlencode

from calendar_bridge.calendar.client import ClientFactory
from calendar_bridge.calendar.token_store import TokenStore
from calendar_bridge.core.config import Settings, settings
from calendar_bridge.core.errors import NotConnected, ProviderAPIError, WatchSetupFailure
from calendar_bridge.core.locks import UserLocks
from calendar_bridge.models import WatchChannel

logger = logging.getLogger(__name__)


def _parse_expiration(raw) -> datetime | None:
    # Google reports expiration as milliseconds since the epoch, as a string.
    if raw in (None, ""):
        return None
    try:
        return datetime.fromtimestamp(int(raw) / 1000, tz=UTC)
    except (TypeError, ValueError):
        return None


class WatchChannelManager:
    def __init__(
        self,
        client_factory: ClientFactory,
        token_store: TokenStore,
        locks: UserLocks,
        config: Settings = settings,
    ):
        self.client_factory = client_factory
        self.token_store = token_store
        self.locks = locks
        self.config = config

    def webhook_address(self, user_id: str) -> str:
        return f"{self.config.webhook_url}?{urlencode({'userId': user_id})}"

    def setup_watch(self, user_id: str) -> WatchChannel:
        """Register a new channel for the user's primary calendar.

        Raises WatchSetupFailure if Google rejects the registration, or
        NotConnected if the user has no credential.
        """
        with self.locks.hold("watch", user_id):
            client = self.client_factory.get_client(user_id)

            previous = self.token_store.get_watch_channel(user_id)
            if previous is not None:
                self._stop_quietly(user_id, previous.channel_id, previous.resource_id)
                self.token_store.delete_watch_channel(user_id)

            try:
                calendar_id = client.primary_calendar_id()
                secret = secrets.token_urlsafe(32)
                body = {
                    "id": secret,
                    "type": "web_hook",
                    "address": self.webhook_address(user_id),
                    "params": {"ttl": str(self.config.watch_ttl_seconds)},
                }
                response = client.watch_events(calendar_id, body)
            except ProviderAPIError as e:
                logger.error(f"Failed to set up watch for {user_id}: {e.detail}")
                raise WatchSetupFailure(f"Failed to set up calendar watch: {e.detail}") from e

            channel = WatchChannel(
                user_id=user_id,
                channel_id=response.get("id", secret),
                resource_id=response.get("resourceId", ""),
                calendar_id=calendar_id,
                expiration=_parse_expiration(response.get("expiration")),
            )
            self.token_store.save_watch_channel(channel, secret)
            logger.info(f"Watch channel set up for {user_id}, expires {channel.expiration}")
            return channel

    def stop_watch(self, user_id: str, channel_id: str, resource_id: str) -> None:
        """Unsubscribe a channel at Google and forget it locally.

        The local record is only removed when it describes the channel being
        stopped; tearing down a stale or forged channel id leaves the user's
        current channel intact.
        """
        with self.locks.hold("watch", user_id):
            client = self.client_factory.get_client(user_id)
            client.stop_channel(channel_id, resource_id)
            current = self.token_store.get_watch_channel(user_id)
            if current is not None and current.channel_id == channel_id:
                self.token_store.delete_watch_channel(user_id)
            logger.info(f"Stopped watch channel for {user_id}")

    def teardown(self, user_id: str) -> None:
        """Stop the user's current channel, if any, ignoring provider errors."""
        with self.locks.hold("watch", user_id):
            current = self.token_store.get_watch_channel(user_id)
            if current is not None:
                self._stop_quietly(user_id, current.channel_id, current.resource_id)
            self.token_store.delete_watch_channel(user_id)

    def renew(self, user_id: str) -> None:
        """Scheduled renewal job body."""
        try:
            self.setup_watch(user_id)
        except (WatchSetupFailure, NotConnected, ProviderAPIError) as e:
            logger.error(f"Watch renewal failed for {user_id}: {e.detail}")

    def _stop_quietly(self, user_id: str, channel_id: str, resource_id: str) -> None:
        try:
            self.client_factory.get_client(user_id).stop_channel(channel_id, resource_id)
        except (ProviderAPIError, NotConnected) as e:
            # Expired channels are already gone at Google
            logger.warning(f"Could not stop previous channel for {user_id}: {e.detail}")
