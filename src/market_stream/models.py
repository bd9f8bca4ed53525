"""Data model for the real-time subscription client."""

import json
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class ConnectionState(str, Enum):
    """Lifecycle state of the client connection."""
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


class MessageType(str, Enum):
    """Server event kinds known to the dashboard.

    The client never requires a frame's type to be one of these; unknown kinds
    are forwarded to handlers untouched.
    """
    CONNECTED = "connected"
    SUBSCRIBED = "subscribed"
    UNSUBSCRIBED = "unsubscribed"
    PONG = "pong"
    MARKET_UPDATE = "market_update"
    PREDICTION_UPDATE = "prediction_update"
    ACCURACY_UPDATE = "accuracy_update"
    SYSTEM_STATUS = "system_status"
    SUGGESTION_UPDATE = "suggestion_update"
    SUGGESTION_ACCURACY_UPDATE = "suggestion_accuracy_update"
    PRECISION_TRADE_EXECUTED = "precision_trade_executed"
    AUTO_TRADE_EXECUTED = "auto_trade_executed"


class InboundMessage(BaseModel):
    """Server to client frame.

    ``type`` discriminates the payload. Extra keys sent by the server are kept.
    """
    model_config = ConfigDict(extra="allow", frozen=True)

    type: str
    symbol: Optional[str] = None
    data: Any = None
    timestamp: Optional[str] = None
    message: Optional[str] = None

    def matches_symbol(self, symbol: Optional[str]) -> bool:
        """True for symbol-less broadcasts and for frames about ``symbol``."""
        return self.symbol is None or self.symbol == symbol


def subscribe_frame(symbol: str) -> Dict[str, Any]:
    return {"type": "subscribe", "symbol": symbol}


def unsubscribe_frame(symbol: str) -> Dict[str, Any]:
    return {"type": "unsubscribe", "symbol": symbol}


def ping_frame() -> Dict[str, Any]:
    return {"type": "ping"}


def encode_frame(frame: Dict[str, Any]) -> str:
    """Serialize an outbound frame as compact JSON text."""
    return json.dumps(frame, separators=(",", ":"))
