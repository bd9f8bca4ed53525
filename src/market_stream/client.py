"""Real-time subscription client facade."""

import logging
import time
from typing import Any, Callable, Dict, Optional

from .clients.websocket_transport import TransportFactory
from .config.settings import ClientSettings
from .connection import ConnectionManager, ReconnectPolicy
from .dispatcher import MessageDispatcher, MessageHandler
from .heartbeat import Heartbeat
from .models import ConnectionState, InboundMessage, encode_frame
from .subscriptions import SubscriptionRegistry
from .timers import LoopScheduler, Scheduler
from .utils.logging import setup_logging

logger = logging.getLogger(__name__)


class RealtimeClient:
    """
    Live market feed over a single WebSocket connection.

    Combines the connection manager, heartbeat, subscription registry and
    message dispatcher behind one object. Every failure degrades to "no live
    data": nothing raised by the transport, timers or handlers reaches the
    caller.

    Example::

        async with RealtimeClient("ws://localhost:5000/ws", symbol="XAUUSD",
                                  on_message=print) as client:
            ...
            client.set_symbol("BTCUSD")
    """

    def __init__(
        self,
        url: str,
        symbol: Optional[str] = None,
        on_message: Optional[MessageHandler] = None,
        on_connect: Optional[Callable[[], Any]] = None,
        on_disconnect: Optional[Callable[[], Any]] = None,
        on_error: Optional[Callable[[BaseException], Any]] = None,
        on_state_change: Optional[Callable[[ConnectionState], Any]] = None,
        auto_reconnect: bool = True,
        reconnect_interval_seconds: float = 3.0,
        max_reconnect_attempts: int = 10,
        heartbeat_interval_seconds: float = 30.0,
        transport_factory: Optional[TransportFactory] = None,
        scheduler: Optional[Scheduler] = None,
    ):
        scheduler = scheduler or LoopScheduler()

        self._on_connect = on_connect
        self._on_disconnect = on_disconnect
        self._on_error = on_error
        self._on_state_change = on_state_change
        self._initial_symbol = symbol
        self._started = False

        self.dispatcher = MessageDispatcher(on_message)
        self.connection = ConnectionManager(
            url,
            policy=ReconnectPolicy(
                interval_seconds=reconnect_interval_seconds,
                max_attempts=max_reconnect_attempts,
                enabled=auto_reconnect,
            ),
            transport_factory=transport_factory,
            scheduler=scheduler,
            on_open=self._handle_open,
            on_message=self.dispatcher.dispatch,
            on_close=self._handle_close,
            on_error=self._handle_error,
            on_state_change=self._handle_state_change,
        )
        self.subscriptions = SubscriptionRegistry(self.connection)
        self.heartbeat = Heartbeat(
            self.connection,
            interval_seconds=heartbeat_interval_seconds,
            scheduler=scheduler,
        )
        self._start_time: Optional[float] = None

    @classmethod
    def from_settings(cls, settings: ClientSettings, **kwargs) -> "RealtimeClient":
        """
        Build a client from ``ClientSettings``; keyword arguments override them.

        Installs the logging configured in ``settings.logging``, tagged with
        ``settings.service_name``.
        """
        setup_logging(settings.logging, service_name=settings.service_name)
        options = dict(
            url=settings.url,
            symbol=settings.symbol,
            auto_reconnect=settings.auto_reconnect,
            reconnect_interval_seconds=settings.reconnect_interval_seconds,
            max_reconnect_attempts=settings.max_reconnect_attempts,
            heartbeat_interval_seconds=settings.heartbeat_interval_seconds,
        )
        options.update(kwargs)
        return cls(**options)

    @property
    def status(self) -> ConnectionState:
        return self.connection.state

    @property
    def last_message(self) -> Optional[InboundMessage]:
        return self.dispatcher.last_message

    @property
    def is_connected(self) -> bool:
        return self.connection.is_connected

    @property
    def symbol(self) -> Optional[str]:
        """The symbol currently desired, if any."""
        return self.subscriptions.desired

    @property
    def closed(self) -> bool:
        return self.connection.disposed

    def start(self) -> None:
        """Connect and start the heartbeat. Later calls are no-ops."""
        if self._started or self.closed:
            return
        self._started = True
        self._start_time = time.time()
        if self._initial_symbol:
            self.subscriptions.change_symbol(self._initial_symbol)
        self.connection.connect()
        self.heartbeat.start()

    def send_message(self, message: Dict[str, Any]) -> bool:
        """Send an arbitrary JSON object. Dropped, never queued, when not connected."""
        if not self.connection.is_connected:
            logger.warning("Cannot send message - not connected")
            return False
        try:
            text = encode_frame(message)
        except (TypeError, ValueError) as e:
            logger.error(f"Cannot serialize message: {e}")
            return False
        return self.connection.send(text)

    def subscribe(self, symbol: str) -> None:
        if self.closed:
            return
        self.subscriptions.subscribe(symbol)

    def unsubscribe(self, symbol: str) -> None:
        if self.closed:
            return
        self.subscriptions.unsubscribe(symbol)

    def set_symbol(self, symbol: Optional[str]) -> None:
        """Follow a different symbol; the previous one is unsubscribed first."""
        if self.closed:
            return
        self.subscriptions.change_symbol(symbol)

    def on(self, message_type: Any, handler: MessageHandler) -> None:
        """Register ``handler`` for frames whose ``type`` equals ``message_type``."""
        self.dispatcher.register_handler(message_type, handler)

    def reconnect(self) -> None:
        self.connection.reconnect()

    def disconnect(self) -> None:
        self.connection.disconnect()

    def teardown(self) -> None:
        """Stop timers and close the connection for good."""
        if self.closed:
            return
        self.heartbeat.stop()
        self.connection.teardown()
        self.dispatcher.cancel_pending()

    async def aclose(self) -> None:
        """Tear down and wait for the socket to finish closing."""
        self.teardown()
        await self.connection.wait_closed()

    async def __aenter__(self) -> "RealtimeClient":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    def get_stats(self) -> Dict[str, Any]:
        """Get connection and message statistics."""
        last_message_age = None
        last_message_time = self.dispatcher.stats['last_message_time']
        if last_message_time:
            last_message_age = time.time() - last_message_time

        return {
            **self.dispatcher.stats,
            'state': self.status.value,
            'is_connected': self.is_connected,
            'connection_count': self.connection.connection_count,
            'reconnect_attempts': self.connection.attempts_used,
            'reconnect_pending': self.connection.reconnect_pending,
            'pings_sent': self.heartbeat.pings_sent,
            'symbol': self.subscriptions.desired,
            'last_message_age_seconds': last_message_age,
            'uptime_seconds': time.time() - self._start_time if self._start_time else None,
        }

    async def health_check(self) -> Dict[str, Any]:
        """Report healthy when connected, degraded while (re)connecting."""
        stats = self.get_stats()
        issues = []

        if stats['is_connected']:
            status = 'healthy'
        elif self.status is ConnectionState.CONNECTING or stats['reconnect_pending']:
            status = 'degraded'
            issues.append('WebSocket reconnecting')
        else:
            status = 'unhealthy'
            issues.append('WebSocket not connected')

        if stats['messages_received'] > 0:
            error_rate = stats['parse_errors'] / stats['messages_received']
            if error_rate > 0.05:
                issues.append(f"High parse error rate: {error_rate:.2%}")
                if status == 'healthy':
                    status = 'degraded'

        return {
            'status': status,
            'issues': issues,
            'stats': stats,
        }

    def _handle_open(self) -> None:
        self.subscriptions.flush()
        self._notify(self._on_connect)

    def _handle_close(self) -> None:
        self.subscriptions.connection_lost()
        self._notify(self._on_disconnect)

    def _handle_error(self, error: BaseException) -> None:
        self._notify(self._on_error, error)

    def _handle_state_change(self, state: ConnectionState) -> None:
        self._notify(self._on_state_change, state)

    def _notify(self, callback: Optional[Callable[..., Any]], *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            self.dispatcher.stats['handler_errors'] += 1
            logger.error(f"Callback {getattr(callback, '__name__', callback)} failed: {e}", exc_info=True)
