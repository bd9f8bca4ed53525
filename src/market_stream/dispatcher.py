"""Inbound frame parsing and fan-out."""

import asyncio
import json
import logging
import time
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Set, Union

from pydantic import ValidationError

from .models import InboundMessage

logger = logging.getLogger(__name__)

MessageHandler = Callable[[InboundMessage], Any]


class MessageDispatcher:
    """
    Parses raw frames into ``InboundMessage`` and invokes handlers.

    Malformed frames are logged and dropped without touching ``last_message``.
    Handler exceptions are logged and counted; they never reach the transport.
    Coroutine handlers are scheduled as tasks on the running loop.
    """

    def __init__(self, on_message: Optional[MessageHandler] = None):
        self._on_message = on_message
        self._handlers: Dict[str, List[MessageHandler]] = defaultdict(list)
        self._tasks: Set[asyncio.Task] = set()
        self.last_message: Optional[InboundMessage] = None

        self.stats = {
            'messages_received': 0,
            'messages_dispatched': 0,
            'parse_errors': 0,
            'handler_errors': 0,
            'last_message_time': None,
        }

    def register_handler(self, message_type: Any, handler: MessageHandler) -> None:
        """Register a handler for frames of one type."""
        key = getattr(message_type, "value", message_type)
        self._handlers[key].append(handler)
        logger.info(f"Registered handler for {key}")

    def dispatch(self, raw_message: Union[str, bytes]) -> Optional[InboundMessage]:
        self.stats['messages_received'] += 1

        try:
            if isinstance(raw_message, bytes):
                raw_message = raw_message.decode("utf-8")
            message = InboundMessage.model_validate(json.loads(raw_message))
        except (ValueError, ValidationError) as e:
            self.stats['parse_errors'] += 1
            logger.error(f"Error parsing message: {e}")
            logger.debug(f"Raw message: {raw_message[:200]}")
            return None

        self.last_message = message
        self.stats['last_message_time'] = time.time()
        self.stats['messages_dispatched'] += 1

        if self._on_message:
            self._invoke(self._on_message, message)
        for handler in list(self._handlers.get(message.type, ())):
            self._invoke(handler, message)

        return message

    def _invoke(self, handler: MessageHandler, message: InboundMessage) -> None:
        try:
            result = handler(message)
        except Exception as e:
            self.stats['handler_errors'] += 1
            logger.error(f"Handler error for {message.type}: {e}", exc_info=True)
            return

        if asyncio.iscoroutine(result):
            task = asyncio.get_running_loop().create_task(result)
            self._tasks.add(task)
            task.add_done_callback(self._handler_done)

    def _handler_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.stats['handler_errors'] += 1
            logger.error(f"Async handler error: {error}", exc_info=error)

    def cancel_pending(self) -> None:
        """Cancel coroutine handlers that have not finished."""
        for task in list(self._tasks):
            task.cancel()
