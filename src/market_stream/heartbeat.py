"""Periodic keepalive frames."""

import logging
from typing import Optional

from .connection import ConnectionManager
from .models import encode_frame, ping_frame
from .timers import LoopScheduler, Scheduler, TimerHandle

logger = logging.getLogger(__name__)


class Heartbeat:
    """
    Sends ``{"type": "ping"}`` every ``interval_seconds`` while connected.

    Runs for the lifetime of the client, independent of reconnects; ticks
    that find the connection down are skipped.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        interval_seconds: float = 30.0,
        scheduler: Optional[Scheduler] = None,
    ):
        self._connection = connection
        self.interval_seconds = interval_seconds
        self._scheduler = scheduler or LoopScheduler()
        self._handle: Optional[TimerHandle] = None
        self._started = False
        self._stopped = False
        self.pings_sent = 0

    @property
    def running(self) -> bool:
        return self._started and not self._stopped

    def start(self) -> None:
        if self._started or self._stopped:
            return
        self._started = True
        self._schedule()

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _schedule(self) -> None:
        self._handle = self._scheduler.call_later(self.interval_seconds, self._tick)

    def _tick(self) -> None:
        self._handle = None
        if self._stopped:
            return
        if self._connection.send(encode_frame(ping_frame())):
            self.pings_sent += 1
            logger.debug("Heartbeat ping sent")
        self._schedule()
