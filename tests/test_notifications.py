"""Tests for the push notification webhook."""

import pytest
from fastapi.testclient import TestClient

from calendar_bridge.calendar.notifications import NotificationOutcome, PushNotification
from calendar_bridge.core.errors import ProviderAPIError


def _notification(channel_id: str, state: str = "exists", user_id: str = "U1") -> PushNotification:
    return PushNotification(
        user_id=user_id,
        channel_id=channel_id,
        resource_id="resource-1",
        resource_state=state,
    )


@pytest.fixture(name="watched_user")
def watched_user_fixture(services, connected_user) -> str:
    """Connected user with a baseline sync and an active channel."""
    services.sync.sync(connected_user)
    services.watch.setup_watch(connected_user)
    return connected_user


class TestPushNotificationHandler:
    """Tests for webhook authentication and dispatch."""

    @pytest.mark.parametrize("state", ["exists", "sync", "not_exists"])
    def test_wrong_secret_stops_channel_without_sync(self, services, calendar, watched_user, state):
        calls_before = len(calendar.list_calls)

        outcome = services.notifications.handle(_notification("not-the-secret", state))

        assert outcome is NotificationOutcome.STOPPED
        assert calendar.stopped == [("not-the-secret", "resource-1")]
        assert len(calendar.list_calls) == calls_before
        # The user's real channel is left alone
        assert services.token_store.get_watch_channel(watched_user) is not None

    def test_matching_secret_triggers_one_sync(self, services, calendar, watched_user):
        secret = services.token_store.get_watch_secret(watched_user)
        calls_before = len(calendar.list_calls)

        outcome = services.notifications.handle(_notification(secret))

        assert outcome is NotificationOutcome.SYNCED
        assert len(calendar.list_calls) == calls_before + 1
        assert calendar.stopped == []

    def test_matching_secret_without_change_stops_channel(self, services, calendar, watched_user):
        secret = services.token_store.get_watch_secret(watched_user)

        outcome = services.notifications.handle(_notification(secret, "sync"))

        assert outcome is NotificationOutcome.STOPPED
        assert calendar.stopped == [(secret, "resource-1")]
        assert services.token_store.get_watch_channel(watched_user) is None

    def test_duplicate_delivery_posts_digest_once(self, services, calendar, notifier, watched_user):
        secret = services.token_store.get_watch_secret(watched_user)
        calendar.add_event(
            {
                "id": "evt1",
                "etag": '"1"',
                "summary": "Standup",
                "start": {"dateTime": "2026-10-18T09:00:00Z"},
            }
        )

        services.notifications.handle(_notification(secret))
        services.notifications.handle(_notification(secret))

        digests = [m for m in notifier.for_user(watched_user) if "Calendar updates" in m]
        assert len(digests) == 1
        assert "Standup" in digests[0]

    def test_unknown_user_fails_quietly(self, services, calendar):
        outcome = services.notifications.handle(_notification("whatever", user_id="ghost"))
        assert outcome is NotificationOutcome.STOP_FAILED
        assert calendar.stopped == []

    def test_missing_channel_id_ignored(self, services, calendar, watched_user):
        outcome = services.notifications.handle(_notification(""))
        assert outcome is NotificationOutcome.IGNORED
        assert calendar.stopped == []

    def test_sync_failure_is_logged(self, services, calendar, watched_user, caplog):
        secret = services.token_store.get_watch_secret(watched_user)
        calendar.list_error = ProviderAPIError("List events failed (500): error", 500)

        outcome = services.notifications.handle(_notification(secret))

        assert outcome is NotificationOutcome.SYNC_FAILED
        assert "Webhook sync failed" in caplog.text


class TestWatchRoute:
    """Tests for the /watch endpoint."""

    def test_authentic_change(self, client: TestClient, services, calendar, watched_user):
        secret = services.token_store.get_watch_secret(watched_user)
        calls_before = len(calendar.list_calls)

        response = client.post(
            "/watch",
            params={"userId": watched_user},
            headers={
                "X-Goog-Channel-ID": secret,
                "X-Goog-Resource-ID": "resource-1",
                "X-Goog-Resource-State": "exists",
            },
        )

        assert response.status_code == 200
        assert response.content == b""
        assert len(calendar.list_calls) == calls_before + 1

    def test_forged_notification(self, client: TestClient, calendar, watched_user):
        response = client.post(
            "/watch",
            params={"userId": watched_user},
            headers={
                "X-Goog-Channel-ID": "forged",
                "X-Goog-Resource-ID": "resource-x",
                "X-Goog-Resource-State": "exists",
            },
        )

        assert response.status_code == 200
        assert calendar.stopped == [("forged", "resource-x")]

    def test_no_session_header_needed(self, client: TestClient):
        response = client.post("/watch")
        assert response.status_code == 200
