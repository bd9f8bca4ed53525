"""WebSocket transport built on the ``websockets`` library."""

import asyncio
import logging
from typing import Callable, Protocol, Set, Union
from urllib.parse import urlsplit, urlunsplit

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedError

logger = logging.getLogger(__name__)


class TransportListener(Protocol):
    """Receives the events of a single transport instance."""

    def on_open(self) -> None:
        ...

    def on_message(self, raw_message: Union[str, bytes]) -> None:
        ...

    def on_close(self) -> None:
        ...

    def on_error(self, error: BaseException) -> None:
        ...


class Transport(Protocol):
    """Duplex, message-oriented connection."""

    @property
    def is_open(self) -> bool:
        ...

    def send(self, text: str) -> None:
        ...

    def close(self) -> None:
        ...

    async def wait_closed(self) -> None:
        ...


TransportFactory = Callable[[str, TransportListener], Transport]


def build_ws_url(base_url: str, path: str = "/ws") -> str:
    """
    Derive the WebSocket endpoint from a server base URL.

    ``http`` maps to ``ws`` and ``https`` to ``wss``; ``ws``/``wss`` URLs keep
    their scheme. The path replaces whatever path ``base_url`` carries.
    """
    parts = urlsplit(base_url)
    scheme = {"http": "ws", "https": "wss"}.get(parts.scheme, parts.scheme)
    if scheme not in ("ws", "wss"):
        raise ValueError(f"Unsupported URL scheme for WebSocket endpoint: {base_url}")
    if not parts.netloc:
        raise ValueError(f"URL has no host: {base_url}")
    return urlunsplit((scheme, parts.netloc, path, "", ""))


class WebSocketTransport:
    """
    One WebSocket connection, opened on construction.

    Events are delivered to the listener in order: ``on_open`` once the
    handshake completes, ``on_message`` per frame (binary frames are passed
    through undecoded), then exactly one
    ``on_close``. A failed handshake or an abnormal closure reports
    ``on_error`` right before ``on_close``.

    Must be constructed while an event loop is running.
    """

    def __init__(
        self,
        url: str,
        listener: TransportListener,
        open_timeout: float = 10.0,
        close_timeout: float = 5.0,
        max_size: int = 2**20,
    ):
        self.url = url
        self._listener = listener
        self._open_timeout = open_timeout
        self._close_timeout = close_timeout
        self._max_size = max_size

        self._loop = asyncio.get_running_loop()
        self._ws = None
        self._open = False
        self._closing = False
        self._close_notified = False
        self._pending: Set[asyncio.Task] = set()

        self._task = self._loop.create_task(self._run())

    @property
    def is_open(self) -> bool:
        return self._open and not self._closing

    def send(self, text: str) -> None:
        """Queue a text frame for sending. Dropped with a warning when not open."""
        if not self.is_open:
            logger.warning("Dropping frame, WebSocket is not open")
            return
        self._spawn(self._send(text))

    def close(self) -> None:
        """Close gracefully, then cancel the reader if it is still running. Safe to call more than once."""
        if self._closing:
            return
        self._closing = True
        self._open = False

        if self._ws is not None:
            self._spawn(self._shutdown())
        else:
            self._task.cancel()

    async def wait_closed(self) -> None:
        """Wait for the reader task and any queued sends to finish."""
        await asyncio.gather(self._task, *self._pending, return_exceptions=True)

    async def _run(self):
        try:
            self._ws = await websockets.connect(
                self.url,
                ping_interval=None,  # application-level heartbeat
                open_timeout=self._open_timeout,
                close_timeout=self._close_timeout,
                max_size=self._max_size,
            )
        except asyncio.CancelledError:
            self._notify_close()
            raise
        except Exception as e:
            logger.error(f"Failed to connect to {self.url}: {e}")
            self._listener.on_error(e)
            self._notify_close()
            return

        if self._closing:
            await self._ws.close()
            self._notify_close()
            return

        self._open = True
        logger.info(f"WebSocket connected to {self.url}")
        self._listener.on_open()

        try:
            async for raw_message in self._ws:
                self._listener.on_message(raw_message)
        except ConnectionClosedError as e:
            logger.warning(f"WebSocket connection closed abnormally: {e}")
            self._listener.on_error(e)
        except Exception as e:
            logger.error(f"Unexpected error in WebSocket reader: {e}", exc_info=True)
            self._listener.on_error(e)
            await self._close()
        finally:
            self._open = False
            self._notify_close()

    async def _send(self, text: str):
        try:
            await self._ws.send(text)
        except ConnectionClosed as e:
            logger.warning(f"Send failed, connection closed: {e}")
        except Exception as e:
            logger.error(f"Send failed: {e}")

    async def _close(self):
        try:
            await self._ws.close()
        except Exception as e:
            logger.debug(f"Error while closing WebSocket: {e}")

    async def _shutdown(self):
        await self._close()
        if not self._task.done():
            self._task.cancel()

    def _spawn(self, coro) -> None:
        task = self._loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _notify_close(self) -> None:
        if self._close_notified:
            return
        self._close_notified = True
        logger.info(f"WebSocket closed: {self.url}")
        self._listener.on_close()
