"""Pytest configuration and shared fixtures."""

import json
import logging
from typing import Callable, List, Optional

import pytest

from market_stream.client import RealtimeClient
from market_stream.models import ConnectionState


class ManualTimer:
    """Handle returned by ``ManualScheduler``."""

    def __init__(self, when: float, callback: Callable[[], None]):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic clock; callbacks fire only when the test advances time."""

    def __init__(self):
        self.now = 0.0
        self.timers: List[ManualTimer] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self.now + delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> List[ManualTimer]:
        return [t for t in self.timers if not t.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [t for t in self.pending if t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self.timers.remove(timer)
            self.now = timer.when
            timer.callback()
        self.now = target


class FakeTransport:
    """In-memory transport; tests drive its events by hand."""

    def __init__(self, url, listener):
        self.url = url
        self.listener = listener
        self.sent: List[str] = []
        self.closed = False
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open and not self.closed

    @property
    def frames(self) -> List[dict]:
        return [json.loads(text) for text in self.sent]

    def send(self, text: str) -> None:
        self.sent.append(text)

    def close(self) -> None:
        self.closed = True
        self._open = False

    async def wait_closed(self) -> None:
        return None

    def fire_open(self) -> None:
        self._open = True
        self.listener.on_open()

    def fire_message(self, text: str) -> None:
        self.listener.on_message(text)

    def fire_close(self) -> None:
        self._open = False
        self.listener.on_close()

    def fire_error(self, error: Optional[BaseException] = None) -> None:
        self.listener.on_error(error or ConnectionError("connection refused"))


class FakeTransportFactory:
    """Records every transport the client constructs."""

    def __init__(self):
        self.transports: List[FakeTransport] = []
        self.fail_with: Optional[BaseException] = None

    def __call__(self, url, listener) -> FakeTransport:
        if self.fail_with is not None:
            raise self.fail_with
        transport = FakeTransport(url, listener)
        self.transports.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.transports[-1]


@pytest.fixture
def restore_root_logger():
    """Put the root logger back the way the test found it."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def transports() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def states() -> List[ConnectionState]:
    return []


@pytest.fixture
def received() -> list:
    return []


@pytest.fixture
def make_client(scheduler, transports, states, received):
    """Factory for clients wired to the fake transport and manual clock."""
    created = []

    def _make(**kwargs) -> RealtimeClient:
        options = dict(
            url="ws://testserver/ws",
            on_message=received.append,
            on_state_change=states.append,
            transport_factory=transports,
            scheduler=scheduler,
        )
        options.update(kwargs)
        client = RealtimeClient(**options)
        created.append(client)
        return client

    yield _make

    for client in created:
        client.teardown()
