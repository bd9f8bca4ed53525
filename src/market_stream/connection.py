"""Connection lifecycle and reconnection policy."""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Union

from .clients.websocket_transport import Transport, TransportFactory, WebSocketTransport
from .models import ConnectionState
from .timers import LoopScheduler, Scheduler, TimerHandle

logger = logging.getLogger(__name__)


@dataclass
class ReconnectPolicy:
    """Fixed-interval, attempt-capped reconnection."""
    interval_seconds: float = 3.0
    max_attempts: int = 10
    enabled: bool = True


class _TransportEvents:
    """Listener bound to one transport; events from superseded transports are dropped."""

    def __init__(self, manager: "ConnectionManager"):
        self._manager = manager

    def on_open(self) -> None:
        self._manager._handle_open(self)

    def on_message(self, raw_message: Union[str, bytes]) -> None:
        self._manager._handle_message(self, raw_message)

    def on_close(self) -> None:
        self._manager._handle_close(self)

    def on_error(self, error: BaseException) -> None:
        self._manager._handle_error(self, error)


class ConnectionManager:
    """
    Owns exactly one transport at a time and drives the connection state machine.

    State transitions:
        DISCONNECTED --connect--> CONNECTING --open--> CONNECTED
        CONNECTED --close--> DISCONNECTED, then CONNECTING again after
        ``policy.interval_seconds`` while attempts remain.
        ERROR is entered on a transport error; only the following close
        triggers the reconnection check.

    A successful open resets the attempt counter. ``disconnect()`` exhausts
    the counter so no automatic reconnect follows; ``reconnect()`` is the
    way back. After ``teardown()`` every call and every late transport
    event is ignored.
    """

    def __init__(
        self,
        url: str,
        policy: Optional[ReconnectPolicy] = None,
        transport_factory: Optional[TransportFactory] = None,
        scheduler: Optional[Scheduler] = None,
        on_open: Optional[Callable[[], None]] = None,
        on_message: Optional[Callable[[Union[str, bytes]], None]] = None,
        on_close: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
        on_state_change: Optional[Callable[[ConnectionState], None]] = None,
    ):
        self.url = url
        self.policy = policy or ReconnectPolicy()
        self._transport_factory = transport_factory or WebSocketTransport
        self._scheduler = scheduler or LoopScheduler()

        self._on_open = on_open
        self._on_message = on_message
        self._on_close = on_close
        self._on_error = on_error
        self._on_state_change = on_state_change

        self._state = ConnectionState.DISCONNECTED
        self._transport: Optional[Transport] = None
        self._listener: Optional[_TransportEvents] = None
        self._reconnect_handle: Optional[TimerHandle] = None
        # most recently closed transport, awaited by wait_closed()
        self._last_retired: Optional[Transport] = None
        self._disposed = False

        self.attempts_used = 0
        self.connection_count = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return (
            self._state is ConnectionState.CONNECTED
            and self._transport is not None
            and self._transport.is_open
        )

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    @property
    def disposed(self) -> bool:
        return self._disposed

    def connect(self) -> None:
        """Open a new transport unless one is already open."""
        if self._disposed:
            return
        if self._transport is not None and self._transport.is_open:
            return

        self._cancel_reconnect()
        # a transport still handshaking is superseded by the new one
        self._retire_transport()
        self._set_state(ConnectionState.CONNECTING)

        listener = _TransportEvents(self)
        self._listener = listener
        logger.info(f"Connecting to {self.url}")
        try:
            self._transport = self._transport_factory(self.url, listener)
        except Exception as e:
            logger.error(f"Connection error: {e}", exc_info=True)
            self._listener = None
            self._transport = None
            self._set_state(ConnectionState.ERROR)

    def disconnect(self) -> None:
        """Close the connection and suppress automatic reconnection."""
        if self._disposed:
            return
        self._cancel_reconnect()
        self.attempts_used = self.policy.max_attempts
        self._retire_transport()
        self._set_state(ConnectionState.DISCONNECTED)

    def reconnect(self) -> None:
        """Drop the current connection and start over with a fresh attempt budget."""
        if self._disposed:
            return
        logger.info("Manual reconnect requested")
        self.disconnect()
        self.attempts_used = 0
        self.connect()

    def teardown(self) -> None:
        """Disconnect and make this manager permanently inert."""
        if self._disposed:
            return
        self.disconnect()
        self._disposed = True
        logger.info("Connection manager torn down")

    def send(self, text: str) -> bool:
        """Send a text frame if connected. Returns whether it was handed to the transport."""
        if self._disposed or not self.is_connected:
            return False
        self._transport.send(text)
        return True

    async def wait_closed(self) -> None:
        """Wait until the last transport closed by this manager has shut down."""
        transport, self._last_retired = self._last_retired, None
        if transport is not None:
            await transport.wait_closed()

    def _is_current(self, listener: _TransportEvents) -> bool:
        return not self._disposed and listener is self._listener

    def _handle_open(self, listener: _TransportEvents) -> None:
        if not self._is_current(listener):
            return
        self.attempts_used = 0
        self.connection_count += 1
        self._set_state(ConnectionState.CONNECTED)
        logger.info(f"Connected to {self.url}")
        if self._on_open:
            self._on_open()

    def _handle_message(self, listener: _TransportEvents, raw_message: Union[str, bytes]) -> None:
        if not self._is_current(listener):
            return
        if self._on_message:
            self._on_message(raw_message)

    def _handle_error(self, listener: _TransportEvents, error: BaseException) -> None:
        if not self._is_current(listener):
            return
        logger.error(f"Transport error: {error}")
        self._set_state(ConnectionState.ERROR)
        if self._on_error:
            self._on_error(error)

    def _handle_close(self, listener: _TransportEvents) -> None:
        if not self._is_current(listener):
            return
        self._listener = None
        self._transport = None

        self._set_state(ConnectionState.DISCONNECTED)
        if self._on_close:
            self._on_close()

        if self._disposed or not self.policy.enabled:
            return
        if self.attempts_used < self.policy.max_attempts:
            self.attempts_used += 1
            logger.info(
                f"Reconnecting (attempt {self.attempts_used}/{self.policy.max_attempts}) "
                f"in {self.policy.interval_seconds}s"
            )
            self._reconnect_handle = self._scheduler.call_later(
                self.policy.interval_seconds, self._reconnect_due
            )
        else:
            logger.warning(
                f"Giving up after {self.policy.max_attempts} reconnection attempts"
            )

    def _reconnect_due(self) -> None:
        self._reconnect_handle = None
        if self._disposed:
            return
        self.connect()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def _retire_transport(self) -> None:
        self._listener = None
        if self._transport is not None:
            transport, self._transport = self._transport, None
            transport.close()
            self._last_retired = transport

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        logger.debug(f"Connection state {self._state.value} -> {state.value}")
        self._state = state
        if self._on_state_change:
            self._on_state_change(state)
