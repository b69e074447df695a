"""Component wiring and FastAPI dependencies.

Components receive their collaborators (KV store, notifier, clock, client
factory) through their constructors. ``build_services`` assembles the
production graph; tests override ``get_services`` with in-memory fakes.
"""
import logging
from dataclasses import dataclass
from functools import lru_cache

from fastapi import Request

from calendar_bridge.calendar.actions import EventActionHandler
from calendar_bridge.calendar.client import CalendarServiceFactory, ClientFactory
from calendar_bridge.calendar.notifications import PushNotificationHandler
from calendar_bridge.calendar.oauth import OAuthFlowController
from calendar_bridge.calendar.sync import SyncEngine
from calendar_bridge.calendar.token_store import TokenStore
from calendar_bridge.calendar.watch import WatchChannelManager
from calendar_bridge.core.clock import Clock, SystemClock
from calendar_bridge.core.config import Settings, settings
from calendar_bridge.core.database import engine
from calendar_bridge.core.kvstore import KVStore, SQLKVStore
from calendar_bridge.core.locks import UserLocks
from calendar_bridge.core.notifier import LogNotifier, Notifier
from calendar_bridge.core.scheduler import RenewalScheduler

logger = logging.getLogger(__name__)


@dataclass
class Services:
    token_store: TokenStore
    oauth: OAuthFlowController
    watch: WatchChannelManager
    sync: SyncEngine
    notifications: PushNotificationHandler
    actions: EventActionHandler
    scheduler: RenewalScheduler


def build_services(
    kv: KVStore,
    notifier: Notifier | None = None,
    clock: Clock | None = None,
    client_factory: ClientFactory | None = None,
    flow_factory=None,
    scheduler=None,
    config: Settings = settings,
) -> Services:
    clock = clock or SystemClock()
    notifier = notifier or LogNotifier()
    locks = UserLocks()
    token_store = TokenStore(kv)
    client_factory = client_factory or CalendarServiceFactory(token_store, locks, clock, config)

    sync_engine = SyncEngine(client_factory, token_store, notifier, locks, clock, config)
    watch = WatchChannelManager(client_factory, token_store, locks, config)
    renewal = scheduler or RenewalScheduler(watch.renew, config=config)
    oauth = OAuthFlowController(
        token_store,
        sync_engine,
        watch,
        renewal,
        notifier,
        clock=clock,
        flow_factory=flow_factory,
        locks=locks,
        config=config,
    )
    return Services(
        token_store=token_store,
        oauth=oauth,
        watch=watch,
        sync=sync_engine,
        notifications=PushNotificationHandler(token_store, watch, sync_engine),
        actions=EventActionHandler(client_factory, notifier, config),
        scheduler=renewal,
    )


@lru_cache
def get_services() -> Services:
    """Dependency for the production component graph."""
    return build_services(SQLKVStore(engine))


def get_acting_user_id(request: Request) -> str:
    """Authenticated user id set by the host, or "" when absent."""
    return request.headers.get(settings.user_id_header, "").strip()


def resume_watch_renewals(services: Services) -> int:
    """Schedule renewal for every connected user. Returns the number scheduled.

    Renewal jobs live in memory, so they are rebuilt from stored credentials
    whenever the process starts.
    """
    user_ids = services.token_store.connected_user_ids()
    for user_id in user_ids:
        services.scheduler.schedule(user_id)
    logger.info(f"Resumed watch renewal for {len(user_ids)} users")
    return len(user_ids)
