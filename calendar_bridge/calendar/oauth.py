"""Google OAuth authorization-code flow for connecting a user's calendar.

The flow:
  1. ``connect`` issues a random state bound to the acting user, stores it
     under its own value (with a TTL) and returns Google's consent URL,
     requesting offline access and forced consent so a refresh token is
     always issued.

  2. ``complete`` checks that the acting user is the one embedded in the
     state, then atomically consumes the state before doing anything else,
     so a replayed link fails even if a later step failed the first time.
     It exchanges the code, stores the credential, runs the first sync,
     registers the watch channel, schedules renewal and welcomes the user.

Each failure raises a distinct ``CalendarBridgeError`` subclass so the routes
can tell "not logged in" from "stale link" from "provider rejected code".
"""
import logging
from typing import Callable, Protocol

from google_auth_oauthlib.flow import Flow
from pydantic import ValidationError

from calendar_bridge.calendar.client import SCOPES, from_google_credentials
from calendar_bridge.calendar.sync import SyncEngine
from calendar_bridge.calendar.token_store import TokenStore
from calendar_bridge.calendar.watch import WatchChannelManager
from calendar_bridge.core.clock import Clock, SystemClock
from calendar_bridge.core.config import Settings, settings
from calendar_bridge.core.errors import (
    CalendarBridgeError,
    ExchangeFailure,
    InvalidState,
    MarshalFailure,
    SyncFailure,
    Unauthorized,
    WatchSetupFailure,
)
from calendar_bridge.core.locks import UserLocks
from calendar_bridge.core.notifier import Notifier
from calendar_bridge.models import CsrfState

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

WELCOME_MESSAGE = (
    "#### Welcome to the Google Calendar integration!\n"
    "You've successfully connected your account to your Google Calendar.\n"
    "Please type **/calendar help** to understand how to use this integration."
)


class Scheduler(Protocol):
    def schedule(self, user_id: str) -> None: ...

    def cancel(self, user_id: str) -> None: ...


def build_flow(config: Settings = settings) -> Flow:
    """Create an OAuth web-server flow from the configured client."""
    client_config = {
        "web": {
            "client_id": config.google_client_id,
            "client_secret": config.google_client_secret,
            "auth_uri": GOOGLE_AUTH_URL,
            "token_uri": GOOGLE_TOKEN_URL,
            "redirect_uris": [config.redirect_uri],
        }
    }
    # connect and complete run on different Flow instances, so no PKCE verifier
    return Flow.from_client_config(
        client_config,
        scopes=SCOPES,
        redirect_uri=config.redirect_uri,
        autogenerate_code_verifier=False,
    )


class OAuthFlowController:
    def __init__(
        self,
        token_store: TokenStore,
        sync_engine: SyncEngine,
        watch_manager: WatchChannelManager,
        scheduler: Scheduler,
        notifier: Notifier,
        clock: Clock | None = None,
        flow_factory: Callable[[], Flow] | None = None,
        locks: UserLocks | None = None,
        config: Settings = settings,
    ):
        self.token_store = token_store
        self.sync_engine = sync_engine
        self.watch_manager = watch_manager
        self.scheduler = scheduler
        self.notifier = notifier
        self.clock = clock or SystemClock()
        self.flow_factory = flow_factory or (lambda: build_flow(config))
        self.locks = locks or UserLocks()
        self.config = config

    def connect(self, user_id: str) -> str:
        """Start authorization for ``user_id``. Returns the consent URL."""
        if not user_id:
            raise Unauthorized()

        state = CsrfState.issue(user_id, self.clock.now())
        self.token_store.save_state(state, ttl_seconds=self.config.oauth_state_ttl_seconds)

        url, _ = self.flow_factory().authorization_url(
            access_type="offline",
            prompt="consent",
            state=state.value,
        )
        logger.info(f"Started calendar authorization for {user_id}")
        return url

    def complete(self, user_id: str, state: str, code: str) -> None:
        if not user_id:
            raise Unauthorized()

        state_user_id = CsrfState.user_id_from_value(state or "")
        if state_user_id is None:
            raise InvalidState("Missing stored state")
        if state_user_id != user_id:
            logger.warning(f"OAuth state for another user presented by {user_id}")
            raise Unauthorized()

        if not self.token_store.consume_state(state):
            raise InvalidState()

        credential = self._exchange(user_id, code)
        with self.locks.hold("credential", user_id):
            self.token_store.save_credential(credential)
        logger.info(f"Stored calendar credential for {user_id}")

        try:
            self.sync_engine.sync(user_id)
        except CalendarBridgeError as e:
            logger.warning(f"Failed initial sync for {user_id}: {e.detail}")
            raise SyncFailure("Failed to sync fresh calendar") from e

        try:
            self.watch_manager.setup_watch(user_id)
        except WatchSetupFailure:
            raise
        except CalendarBridgeError as e:
            raise WatchSetupFailure(f"Failed to set up calendar watch: {e.detail}") from e

        self.scheduler.schedule(user_id)
        self.notifier.post(user_id, WELCOME_MESSAGE)

    def _exchange(self, user_id: str, code: str):
        if not code:
            raise ExchangeFailure("Missing authorization code")

        flow = self.flow_factory()
        try:
            flow.fetch_token(code=code, timeout=self.config.provider_timeout_seconds)
        except Exception as e:
            logger.warning(f"Code exchange failed for {user_id}: {e}")
            raise ExchangeFailure() from e

        creds = flow.credentials
        if not creds.refresh_token:
            raise ExchangeFailure("Google did not issue a refresh token")
        try:
            return from_google_credentials(user_id, creds)
        except ValidationError as e:
            raise MarshalFailure(f"Invalid token marshal: {e}") from e

    def disconnect(self, user_id: str) -> None:
        """Forget everything stored for ``user_id`` and stop notifications."""
        if not user_id:
            raise Unauthorized()

        self.scheduler.cancel(user_id)
        self.watch_manager.teardown(user_id)
        self.token_store.delete_sync_state(user_id)
        self.token_store.delete_credential(user_id)
        logger.info(f"Disconnected calendar for {user_id}")

    def status(self, user_id: str) -> dict:
        if not user_id:
            raise Unauthorized()
        return {
            "connected": self.token_store.get_credential(user_id) is not None,
            "watching": self.token_store.get_watch_channel(user_id) is not None,
        }
