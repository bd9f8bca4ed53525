"""Transport clients for the real-time subscription client."""

from .websocket_transport import (
    Transport,
    TransportFactory,
    TransportListener,
    WebSocketTransport,
    build_ws_url,
)

__all__ = [
    "Transport",
    "TransportFactory",
    "TransportListener",
    "WebSocketTransport",
    "build_ws_url",
]
