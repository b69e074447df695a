"""Tests for watch channel setup, teardown and renewal."""

from urllib.parse import parse_qs, urlparse

import pytest

from calendar_bridge.core.errors import NotConnected, ProviderAPIError, WatchSetupFailure


class TestSetupWatch:
    """Tests for registering push notification channels."""

    def test_setup_registers_channel(self, services, calendar, kv, connected_user):
        channel = services.watch.setup_watch(connected_user)

        calendar_id, body = calendar.watch_calls[0]
        assert calendar_id == "u1@example.com"
        assert body["type"] == "web_hook"
        address = urlparse(body["address"])
        assert address.path == "/watch"
        assert parse_qs(address.query) == {"userId": ["U1"]}

        secret = kv.get("U1watchToken")
        assert secret == body["id"]
        assert channel.channel_id == secret
        assert channel.resource_id == "resource-1"
        assert channel.expiration is not None
        assert services.token_store.get_watch_channel("U1") == channel

    def test_secret_is_random_per_channel(self, services, connected_user):
        first = services.watch.setup_watch(connected_user)
        second = services.watch.setup_watch(connected_user)
        assert first.channel_id != second.channel_id
        assert len(first.channel_id) >= 40
        assert first.channel_id != first.resource_id

    def test_setup_stops_previous_channel(self, services, calendar, connected_user):
        first = services.watch.setup_watch(connected_user)
        second = services.watch.setup_watch(connected_user)

        assert calendar.stopped == [(first.channel_id, first.resource_id)]
        assert services.token_store.get_watch_secret("U1") == second.channel_id

    def test_previous_channel_stop_failure_does_not_block(self, services, calendar, connected_user):
        services.watch.setup_watch(connected_user)
        calendar.stop_error = ProviderAPIError("Stop channel failed (404): Not Found", 404)

        channel = services.watch.setup_watch(connected_user)
        assert services.token_store.get_watch_channel("U1") == channel

    def test_setup_rejected(self, services, calendar, connected_user):
        calendar.watch_error = ProviderAPIError("Watch calendar failed (400): bad", 400)
        with pytest.raises(WatchSetupFailure):
            services.watch.setup_watch(connected_user)
        assert services.token_store.get_watch_channel("U1") is None

    def test_setup_requires_credential(self, services):
        with pytest.raises(NotConnected):
            services.watch.setup_watch("U9")


class TestStopWatch:
    """Tests for unsubscribing channels."""

    def test_stop_current_channel_removes_record(self, services, calendar, connected_user):
        channel = services.watch.setup_watch(connected_user)

        services.watch.stop_watch("U1", channel.channel_id, channel.resource_id)

        assert calendar.stopped == [(channel.channel_id, channel.resource_id)]
        assert services.token_store.get_watch_channel("U1") is None
        assert services.token_store.get_watch_secret("U1") is None

    def test_stop_foreign_channel_keeps_current(self, services, calendar, connected_user):
        channel = services.watch.setup_watch(connected_user)

        services.watch.stop_watch("U1", "forged-channel", "forged-resource")

        assert calendar.stopped == [("forged-channel", "forged-resource")]
        assert services.token_store.get_watch_channel("U1") == channel

    def test_stop_provider_error_propagates(self, services, calendar, connected_user):
        calendar.stop_error = ProviderAPIError("Stop channel failed (500): error", 500)
        with pytest.raises(ProviderAPIError):
            services.watch.stop_watch("U1", "c", "r")


class TestRenewal:
    """Tests for the scheduled renewal job body."""

    def test_renew_replaces_channel(self, services, calendar, connected_user):
        first = services.watch.setup_watch(connected_user)
        services.watch.renew(connected_user)

        current = services.token_store.get_watch_channel("U1")
        assert current.channel_id != first.channel_id
        assert len(calendar.watch_calls) == 2

    def test_renew_failure_is_logged_not_raised(self, services, calendar, connected_user, caplog):
        calendar.watch_error = ProviderAPIError("Watch calendar failed (403): quota", 403)
        services.watch.renew(connected_user)
        assert "Watch renewal failed" in caplog.text

    def test_renew_without_credential(self, services):
        services.watch.renew("U9")
