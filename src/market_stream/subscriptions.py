"""Single-slot symbol subscription that survives reconnects."""

import logging
from typing import Optional

from .connection import ConnectionManager
from .models import encode_frame, subscribe_frame, unsubscribe_frame

logger = logging.getLogger(__name__)


class SubscriptionRegistry:
    """
    Tracks the one symbol the caller wants streamed.

    A subscription requested while offline is held as pending and sent on
    the next open. The desired symbol is re-sent after every reconnect, as
    server-side subscriptions do not outlive a dropped connection.
    """

    def __init__(self, connection: ConnectionManager):
        self._connection = connection
        self.desired: Optional[str] = None
        self.pending: Optional[str] = None
        # symbol whose subscribe frame went out on the current connection
        self._sent: Optional[str] = None

    def subscribe(self, symbol: str) -> None:
        if self._connection.is_connected and symbol == self._sent:
            self.desired = symbol
            logger.debug(f"Already subscribed to {symbol}")
            return

        self.desired = symbol
        if self._connection.is_connected:
            self._send_subscribe(symbol)
        else:
            self.pending = symbol
            logger.info(f"Queued subscription to {symbol} until connected")

    def unsubscribe(self, symbol: str) -> None:
        if self._connection.is_connected:
            self._connection.send(encode_frame(unsubscribe_frame(symbol)))
            logger.info(f"Unsubscribed from {symbol}")
        if self._sent == symbol:
            self._sent = None
        if self.pending == symbol:
            self.pending = None
        if self.desired == symbol:
            self.desired = None

    def change_symbol(self, symbol: Optional[str]) -> None:
        """Switch the desired symbol, unsubscribing the previous one first."""
        if not symbol or symbol == self.desired:
            return
        if self.desired:
            self.unsubscribe(self.desired)
        self.subscribe(symbol)

    def flush(self) -> None:
        """Send the pending or desired subscription on a freshly opened connection."""
        self._sent = None
        if self.pending:
            symbol, self.pending = self.pending, None
            self._send_subscribe(symbol)
        elif self.desired:
            logger.info(f"Restoring subscription to {self.desired}")
            self._send_subscribe(self.desired)

    def connection_lost(self) -> None:
        self._sent = None

    def _send_subscribe(self, symbol: str) -> None:
        if self._connection.send(encode_frame(subscribe_frame(symbol))):
            self._sent = symbol
            logger.info(f"Subscribed to {symbol}")
