"""Tests for the RealtimeClient facade."""

import json
import logging

import pytest

from market_stream.client import RealtimeClient
from market_stream.config.settings import ClientSettings, LoggingConfig
from market_stream.models import ConnectionState
from market_stream.utils.logging import JSONFormatter

pytestmark = pytest.mark.unit

C = ConnectionState


class TestRealtimeClient:

    def test_start_connects(self, make_client, transports):
        client = make_client()
        assert client.status is C.DISCONNECTED
        assert transports.transports == []

        client.start()
        assert client.status is C.CONNECTING
        assert len(transports.transports) == 1

        client.start()
        assert len(transports.transports) == 1

    def test_callbacks(self, make_client, transports):
        calls = []
        client = make_client(
            on_connect=lambda: calls.append("connect"),
            on_disconnect=lambda: calls.append("disconnect"),
            on_error=lambda e: calls.append(f"error:{e}"),
            auto_reconnect=False,
        )
        client.start()
        transports.last.fire_open()
        transports.last.fire_error(OSError("broken pipe"))
        transports.last.fire_close()

        assert calls == ["connect", "error:broken pipe", "disconnect"]

    def test_connect_callback_runs_after_subscription_flush(self, make_client, transports):
        frames_at_connect = []
        client = make_client(symbol="XAUUSD")
        client._on_connect = lambda: frames_at_connect.extend(transports.last.frames)
        client.start()
        transports.last.fire_open()

        assert frames_at_connect == [{"type": "subscribe", "symbol": "XAUUSD"}]

    def test_callback_exception_does_not_break_client(self, make_client, transports):
        def broken():
            raise RuntimeError("ui gone")

        client = make_client(on_connect=broken)
        client.start()
        transports.last.fire_open()

        assert client.status is C.CONNECTED
        assert client.get_stats()['handler_errors'] == 1

    def test_messages_update_last_message(self, make_client, transports, received):
        client = make_client()
        client.start()
        transports.last.fire_open()
        transports.last.fire_message('{"type":"connected","message":"Connected"}')

        assert client.last_message.type == "connected"
        assert client.last_message.message == "Connected"
        assert received == [client.last_message]

    def test_malformed_frame_keeps_last_message(self, make_client, transports):
        client = make_client()
        client.start()
        transports.last.fire_open()
        transports.last.fire_message('{"type":"pong"}')
        before = client.last_message

        transports.last.fire_message("{not json")
        assert client.last_message is before
        assert client.status is C.CONNECTED

    def test_type_handler_registration(self, make_client, transports):
        updates = []
        client = make_client()
        client.on("market_update", updates.append)
        client.start()
        transports.last.fire_open()
        transports.last.fire_message('{"type":"market_update","symbol":"XAUUSD","data":{}}')
        transports.last.fire_message('{"type":"pong"}')

        assert [m.type for m in updates] == ["market_update"]

    def test_send_message_when_connected(self, make_client, transports):
        client = make_client()
        client.start()
        transports.last.fire_open()

        assert client.send_message({"type": "custom", "value": 1}) is True
        assert transports.last.frames == [{"type": "custom", "value": 1}]

    def test_send_message_dropped_when_disconnected(self, make_client, transports, caplog):
        client = make_client()
        client.start()

        with caplog.at_level("WARNING"):
            assert client.send_message({"type": "custom"}) is False
        assert "not connected" in caplog.text

        transports.last.fire_open()
        assert transports.last.frames == []

    def test_send_message_unserializable(self, make_client, transports):
        client = make_client()
        client.start()
        transports.last.fire_open()

        assert client.send_message({"type": "custom", "value": object()}) is False
        assert transports.last.frames == []

    def test_disconnect_then_late_events(self, make_client, transports, scheduler, states):
        client = make_client()
        client.start()
        transports.last.fire_open()
        client.disconnect()
        recorded = list(states)

        transports.last.fire_close()
        transports.last.fire_open()

        assert states == recorded
        assert client.status is C.DISCONNECTED
        assert not client.connection.reconnect_pending

    def test_reconnect_after_exhaustion(self, make_client, transports, scheduler):
        client = make_client(reconnect_interval_seconds=0.1, max_reconnect_attempts=1)
        client.start()
        transports.last.fire_close()
        scheduler.advance(0.1)
        transports.last.fire_close()
        assert not client.connection.reconnect_pending
        assert client.status is C.DISCONNECTED

        client.reconnect()
        assert client.status is C.CONNECTING
        assert client.connection.attempts_used == 0

    def test_teardown_is_terminal(self, make_client, transports, scheduler, states):
        client = make_client(symbol="XAUUSD")
        client.start()
        transport = transports.last
        transport.fire_open()

        client.teardown()
        recorded = list(states)
        assert client.closed
        assert transport.closed

        transport.fire_open()
        transport.fire_message('{"type":"market_update"}')
        transport.fire_close()
        client.reconnect()
        client.subscribe("BTCUSD")
        client.start()
        scheduler.advance(3600)

        assert states == recorded
        assert client.status is C.DISCONNECTED
        assert client.last_message is None
        assert len(transports.transports) == 1
        assert client.symbol == "XAUUSD"

    async def test_async_context_manager(self, make_client, transports):
        async with make_client() as client:
            assert client.status is C.CONNECTING
            transports.last.fire_open()
            assert client.is_connected

        assert client.closed
        assert transports.last.closed


class TestReconnectScenario:
    """Open, drop, recover, drop, fail: the state sequence a dashboard observes."""

    def test_state_sequence(self, make_client, transports, scheduler, states):
        client = make_client(reconnect_interval_seconds=0.1, max_reconnect_attempts=2)
        client.start()

        transports.last.fire_open()
        transports.last.fire_close()
        scheduler.advance(0.1)
        transports.last.fire_open()
        transports.last.fire_close()

        assert states == [C.CONNECTING, C.CONNECTED, C.DISCONNECTED,
                          C.CONNECTING, C.CONNECTED, C.DISCONNECTED]
        assert client.connection.attempts_used == 1

        # open reset the budget, so two failed attempts remain before giving up
        scheduler.advance(0.1)
        transports.last.fire_close()
        assert client.connection.attempts_used == 2
        assert client.connection.reconnect_pending

        scheduler.advance(0.1)
        transports.last.fire_close()
        assert not client.connection.reconnect_pending
        assert states[-1] is C.DISCONNECTED

        scheduler.advance(10)
        assert len(transports.transports) == 4


class TestStatsAndHealth:

    async def test_health_transitions(self, make_client, transports, scheduler):
        client = make_client(reconnect_interval_seconds=0.1, max_reconnect_attempts=1)
        client.start()
        assert (await client.health_check())['status'] == 'degraded'

        transports.last.fire_open()
        assert (await client.health_check())['status'] == 'healthy'

        transports.last.fire_close()
        assert (await client.health_check())['status'] == 'degraded'

        scheduler.advance(0.1)
        transports.last.fire_close()
        health = await client.health_check()
        assert health['status'] == 'unhealthy'
        assert health['issues'] == ['WebSocket not connected']

    async def test_parse_error_rate_degrades_health(self, make_client, transports):
        client = make_client()
        client.start()
        transports.last.fire_open()
        transports.last.fire_message('{"type":"pong"}')
        transports.last.fire_message("garbage")

        health = await client.health_check()
        assert health['status'] == 'degraded'
        assert health['stats']['parse_errors'] == 1

    def test_stats(self, make_client, transports):
        client = make_client(symbol="XAUUSD")
        client.start()
        transports.last.fire_open()
        transports.last.fire_message('{"type":"subscribed","symbol":"XAUUSD"}')

        stats = client.get_stats()
        assert stats['state'] == 'connected'
        assert stats['connection_count'] == 1
        assert stats['messages_received'] == 1
        assert stats['symbol'] == "XAUUSD"
        assert stats['last_message_age_seconds'] is not None


class TestFromSettings:

    def test_from_settings(self, transports, scheduler, restore_root_logger):
        settings = ClientSettings(
            url="ws://example.test/ws",
            symbol="BTCUSD",
            reconnect_interval_seconds=5,
            max_reconnect_attempts=3,
            heartbeat_interval_seconds=15,
        )
        client = RealtimeClient.from_settings(
            settings, transport_factory=transports, scheduler=scheduler
        )
        client.start()

        assert transports.last.url == "ws://example.test/ws"
        assert client.connection.policy.interval_seconds == 5
        assert client.connection.policy.max_attempts == 3
        assert client.heartbeat.interval_seconds == 15
        assert client.subscriptions.pending == "BTCUSD"
        client.teardown()

    def test_settings_drive_logging(self, tmp_path, transports, scheduler, restore_root_logger):
        log_file = tmp_path / "client.log"
        settings = ClientSettings(
            service_name="live-market-page",
            logging=LoggingConfig(level="WARNING", format="json", output=str(log_file)),
        )
        client = RealtimeClient.from_settings(
            settings, transport_factory=transports, scheduler=scheduler
        )

        root = logging.getLogger()
        handler = root.handlers[-1]
        assert isinstance(handler.formatter, JSONFormatter)
        assert root.level == logging.WARNING

        client.start()
        client.send_message({"type": "custom"})
        handler.flush()

        record = json.loads(log_file.read_text().splitlines()[-1])
        assert record["message"] == "Cannot send message - not connected"
        assert record["service"] == "live-market-page"
        client.teardown()

