"""
Downstream hand-off channel.

Exactly one consumer receives every admitted ClassifiedEvent. The handler
may be a plain function or a coroutine function; either way publishing is
fire-and-forget and a failing handler never reaches the pipeline.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional, Set

from .exceptions import ConfigurationError
from .models import ClassifiedEvent
from .stream_utils import shorten

logger = logging.getLogger(__name__)

EventHandler = Callable[[ClassifiedEvent], Any]


class EventChannel:
    """Single-consumer observer for classified events."""

    def __init__(self, handler: Optional[EventHandler] = None):
        self._handler: Optional[EventHandler] = None
        self._pending: Set[asyncio.Task] = set()
        self.published = 0
        self.failures = 0
        if handler is not None:
            self.register(handler)

    @property
    def has_handler(self) -> bool:
        return self._handler is not None

    def register(self, handler: EventHandler):
        if not callable(handler):
            raise ConfigurationError("Event handler must be callable")
        if self._handler is not None:
            raise ConfigurationError("Event channel already has a handler")
        self._handler = handler

    def validate(self):
        """Raise at startup when nobody consumes the events."""
        if self._handler is None:
            raise ConfigurationError("No transaction handler registered")

    def publish(self, event: ClassifiedEvent):
        if self._handler is None:
            # validate() runs at startup, so this only happens after misuse
            logger.error(f"📢 Dropping {shorten(event.signature)}: no handler registered")
            return

        label = event.direction.value if event.direction else 'TX'
        logger.info(
            f"📢 Notifying: {event.symbol} {label} {event.amount_text} "
            f"({shorten(event.signature)})"
        )
        self.published += 1

        try:
            result = self._handler(event)
        except Exception:
            self.failures += 1
            logger.exception("Transaction handler failed")
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._pending.add(task)
            task.add_done_callback(self._on_handler_done)

    def _on_handler_done(self, task: asyncio.Task):
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.failures += 1
            logger.error(f"Transaction handler failed: {exc!r}")

    async def drain(self):
        """Wait for handler coroutines still running."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
