"""Tests for the WebSocket transport helpers."""

import pytest

from market_stream.clients.websocket_transport import WebSocketTransport, build_ws_url
from market_stream.connection import ConnectionManager
from market_stream.models import ConnectionState

pytestmark = pytest.mark.unit


class TestBuildWsUrl:

    @pytest.mark.parametrize("base,expected", [
        ("http://localhost:5000", "ws://localhost:5000/ws"),
        ("https://dashboard.example", "wss://dashboard.example/ws"),
        ("https://dashboard.example/live-market?x=1", "wss://dashboard.example/ws"),
        ("wss://dashboard.example", "wss://dashboard.example/ws"),
    ])
    def test_scheme_mapping(self, base, expected):
        assert build_ws_url(base) == expected

    def test_custom_path(self):
        assert build_ws_url("http://host:1", path="/stream") == "ws://host:1/stream"

    @pytest.mark.parametrize("base", ["ftp://host", "localhost:5000", "http://"])
    def test_rejects_invalid(self, base):
        with pytest.raises(ValueError):
            build_ws_url(base)


class TestTransportWithoutLoop:

    def test_construction_outside_loop_maps_to_error(self):
        manager = ConnectionManager("ws://127.0.0.1:9/ws", transport_factory=WebSocketTransport)
        manager.connect()
        assert manager.state is ConnectionState.ERROR
