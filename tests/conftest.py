"""Shared test fixtures."""

import copy
from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from google.oauth2.credentials import Credentials
from sqlmodel import SQLModel, create_engine
from sqlmodel.pool import StaticPool

from calendar_bridge.calendar.client import SCOPES
from calendar_bridge.core.config import settings
from calendar_bridge.core.errors import NotConnected, ProviderAPIError
from calendar_bridge.core.kvstore import MemoryKVStore
from calendar_bridge.core.services import build_services, get_services
from calendar_bridge.main import app
from calendar_bridge.models import CalendarCredential

USER_HEADER = settings.user_id_header


class FakeClock:
    def __init__(self, now: datetime):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self):
        self.messages: list[tuple[str, str]] = []

    def post(self, user_id: str, message: str) -> None:
        self.messages.append((user_id, message))

    def for_user(self, user_id: str) -> list[str]:
        return [m for u, m in self.messages if u == user_id]


class FakeScheduler:
    def __init__(self):
        self.scheduled: list[str] = []
        self.cancelled: list[str] = []

    def schedule(self, user_id: str) -> None:
        self.scheduled.append(user_id)

    def cancel(self, user_id: str) -> None:
        self.cancelled.append(user_id)


class FakeCalendarClient:
    """In-memory stand-in for CalendarClient."""

    def __init__(self):
        self.primary_id = "u1@example.com"
        self.events: dict[str, dict] = {}
        self.list_pages: list[dict] | None = None
        self.list_calls: list[dict] = []
        self.sync_counter = 0
        self.watch_calls: list[tuple[str, dict]] = []
        self.stopped: list[tuple[str, str]] = []
        self.updates: list[tuple[str, str, dict, str | None]] = []
        self.deleted: list[str] = []
        self.watch_error: ProviderAPIError | None = None
        self.list_error: ProviderAPIError | None = None
        self.stop_error: ProviderAPIError | None = None
        self.update_error: ProviderAPIError | None = None
        self.delete_error: ProviderAPIError | None = None

    def add_event(self, event: dict) -> dict:
        self.events[event["id"]] = event
        return event

    def primary_calendar_id(self) -> str:
        return self.primary_id

    def get_event(self, calendar_id: str, event_id: str) -> dict:
        if event_id not in self.events:
            raise ProviderAPIError("Get event failed (404): Not Found", provider_status=404)
        return copy.deepcopy(self.events[event_id])

    def delete_event(self, calendar_id: str, event_id: str) -> None:
        if self.delete_error:
            raise self.delete_error
        if event_id not in self.events:
            raise ProviderAPIError("Delete event failed (410): Resource has been deleted", 410)
        del self.events[event_id]
        self.deleted.append(event_id)

    def update_event(self, calendar_id, event_id, body, etag=None) -> dict:
        if self.update_error:
            raise self.update_error
        self.updates.append((calendar_id, event_id, copy.deepcopy(body), etag))
        self.events[event_id] = copy.deepcopy(body)
        return copy.deepcopy(body)

    def list_events(self, calendar_id: str, **params) -> dict:
        self.list_calls.append(params)
        if self.list_error:
            error, self.list_error = self.list_error, None
            raise error
        if self.list_pages is not None:
            return self.list_pages.pop(0)
        self.sync_counter += 1
        return {
            "items": [copy.deepcopy(e) for e in self.events.values()],
            "nextSyncToken": f"sync-{self.sync_counter}",
        }

    def watch_events(self, calendar_id: str, body: dict) -> dict:
        if self.watch_error:
            raise self.watch_error
        self.watch_calls.append((calendar_id, copy.deepcopy(body)))
        return {
            "id": body["id"],
            "resourceId": f"resource-{len(self.watch_calls)}",
            "expiration": "1893456000000",
        }

    def stop_channel(self, channel_id: str, resource_id: str) -> None:
        if self.stop_error:
            raise self.stop_error
        self.stopped.append((channel_id, resource_id))


class FakeClientFactory:
    def __init__(self, calendar: FakeCalendarClient):
        self.calendar = calendar
        self.token_store = None

    def get_client(self, user_id: str) -> FakeCalendarClient:
        if self.token_store.get_credential(user_id) is None:
            raise NotConnected()
        return self.calendar


class FakeOAuthProvider:
    """Google's authorization and token endpoints."""

    valid_code = "validcode"

    def __init__(self):
        self.authorization_requests: list[dict] = []
        self.exchanged: list[str] = []
        self.issue_refresh_token = True

    def flow(self) -> "FakeFlow":
        return FakeFlow(self)


class FakeFlow:
    def __init__(self, provider: FakeOAuthProvider):
        self.provider = provider
        self.credentials = None

    def authorization_url(self, **kwargs):
        self.provider.authorization_requests.append(kwargs)
        state = kwargs["state"]
        return f"https://accounts.google.com/o/oauth2/auth?state={state}", state

    def fetch_token(self, code: str, **kwargs):
        if code != self.provider.valid_code:
            raise ValueError("(invalid_grant) Bad Request")
        self.provider.exchanged.append(code)
        self.credentials = Credentials(
            token="access-token",
            refresh_token="refresh-token" if self.provider.issue_refresh_token else None,
            token_uri="https://oauth2.googleapis.com/token",
            client_id="client-id",
            client_secret="client-secret",
            scopes=SCOPES,
            expiry=datetime(2030, 1, 1),
        )
        return {"access_token": "access-token"}


@pytest.fixture(name="clock")
def clock_fixture() -> FakeClock:
    return FakeClock(datetime(2026, 10, 17, 12, 0, tzinfo=UTC))


@pytest.fixture(name="kv")
def kv_fixture(clock: FakeClock) -> MemoryKVStore:
    return MemoryKVStore(clock)


@pytest.fixture(name="notifier")
def notifier_fixture() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture(name="scheduler")
def scheduler_fixture() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture(name="calendar")
def calendar_fixture() -> FakeCalendarClient:
    return FakeCalendarClient()


@pytest.fixture(name="provider")
def provider_fixture() -> FakeOAuthProvider:
    return FakeOAuthProvider()


@pytest.fixture(name="services")
def services_fixture(kv, notifier, clock, calendar, provider, scheduler):
    """Component graph wired with in-memory fakes."""
    factory = FakeClientFactory(calendar)
    services = build_services(
        kv,
        notifier=notifier,
        clock=clock,
        client_factory=factory,
        flow_factory=provider.flow,
        scheduler=scheduler,
    )
    factory.token_store = services.token_store
    return services


@pytest.fixture(name="client")
def client_fixture(services):
    """Create a test client backed by the fake component graph."""

    def get_services_override():
        return services

    app.dependency_overrides[get_services] = get_services_override
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="connected_user")
def connected_user_fixture(services) -> str:
    """User U1 with a stored credential."""
    services.token_store.save_credential(
        CalendarCredential(
            user_id="U1",
            access_token="access-token",
            refresh_token="refresh-token",
            expiry=datetime(2030, 1, 1, tzinfo=UTC),
        )
    )
    return "U1"


@pytest.fixture(name="sql_engine")
def sql_engine_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
