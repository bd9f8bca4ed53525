"""
Market Stream - real-time subscription client for the market-data dashboard.

Keeps one WebSocket connection to the server alive, re-establishes it after
failures and streams updates for the symbol the caller is interested in.
"""

from .client import RealtimeClient
from .clients.websocket_transport import WebSocketTransport, build_ws_url
from .config.settings import ClientSettings, LoggingConfig, load_settings
from .connection import ConnectionManager, ReconnectPolicy
from .dispatcher import MessageDispatcher
from .heartbeat import Heartbeat
from .models import ConnectionState, InboundMessage, MessageType
from .subscriptions import SubscriptionRegistry
from .utils.logging import setup_logging

__version__ = "1.0.0"

__all__ = [
    "ClientSettings",
    "ConnectionManager",
    "ConnectionState",
    "Heartbeat",
    "InboundMessage",
    "LoggingConfig",
    "MessageDispatcher",
    "MessageType",
    "RealtimeClient",
    "ReconnectPolicy",
    "SubscriptionRegistry",
    "WebSocketTransport",
    "build_ws_url",
    "load_settings",
    "setup_logging",
]
