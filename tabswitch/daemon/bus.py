"""Async event bus for daemon notifications."""

import asyncio
import inspect
import weakref
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from loguru import logger


@dataclass
class Event:
    """Base event class."""
    type: str
    data: Dict[str, Any]
    timestamp: datetime = field(default_factory=datetime.utcnow)
    source: Optional[str] = None


class EventBus:
    """
    Async pub/sub event bus for in-process communication.

    Event types follow pattern: category.action
    Examples: tab.activated, tab.closed, session.opened, session.closed

    Events are processed one at a time in emit order and each event's
    handlers finish before the next event is taken, so subscribers observe
    host notifications in delivery order. Sync handlers run inline on the
    loop.
    """

    def __init__(self, maxsize: int = 1000):
        self._subscribers: Dict[str, List[weakref.ref]] = defaultdict(list)
        self._event_queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._running = False
        self._processor_task: Optional[asyncio.Task] = None
        self._stats = defaultdict(int)

    def subscribe(self, event_pattern: str, handler: Callable[[Event], Any]) -> None:
        """
        Subscribe to events matching pattern.
        Pattern can use wildcards: 'tab.*' matches all tab events.
        """
        # Weak references so subscribers can go away without unsubscribing
        if inspect.ismethod(handler):
            handler_ref = weakref.WeakMethod(handler)
        else:
            handler_ref = weakref.ref(handler)
        self._subscribers[event_pattern].append(handler_ref)
        logger.debug(f"Subscribed handler to pattern: {event_pattern}")

    async def emit(self, event: Event) -> None:
        """Emit an event to the bus."""
        self.emit_nowait(event)

    def emit_nowait(self, event: Event) -> bool:
        """
        Emit an event without waiting (non-async).
        Returns True if successful, False if queue is full.
        """
        try:
            self._event_queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(f"Event queue full, dropping event: {event.type}")
            self._stats['dropped'] += 1
            return False
        self._stats['emitted'] += 1
        logger.trace(f"Emitted event: {event.type}")
        return True

    async def start(self) -> None:
        """Start the event processor."""
        if self._running:
            logger.warning("Event bus already running")
            return

        self._running = True
        self._processor_task = asyncio.create_task(self._process_events())
        logger.info("Event bus started")

    async def stop(self) -> None:
        """Stop the event processor."""
        self._running = False
        if self._processor_task:
            await self._processor_task
            self._processor_task = None
        logger.info("Event bus stopped")

    async def join(self) -> None:
        """Wait until every queued event has been processed."""
        await self._event_queue.join()

    async def _process_events(self) -> None:
        """Process events from the queue."""
        while self._running:
            try:
                # Wait for event with timeout to allow checking _running flag
                event = await asyncio.wait_for(self._event_queue.get(), timeout=0.5)
            except asyncio.TimeoutError:
                continue

            try:
                await self._dispatch(event)
                self._stats['processed'] += 1
            except Exception as e:
                logger.error(f"Error processing event: {e}")
                self._stats['processing_errors'] += 1
            finally:
                self._event_queue.task_done()

    async def _dispatch(self, event: Event) -> None:
        handlers = []
        for pattern, refs in list(self._subscribers.items()):
            if not self._matches_pattern(event.type, pattern):
                continue
            # Clean up dead weak references
            valid_refs = []
            for ref in refs:
                handler = ref()
                if handler is not None:
                    handlers.append(handler)
                    valid_refs.append(ref)
            self._subscribers[pattern] = valid_refs

        for handler in handlers:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Handler error for event {event.type}: {e}")
                self._stats['handler_errors'] += 1

    def _matches_pattern(self, event_type: str, pattern: str) -> bool:
        """Check if event type matches subscription pattern."""
        if pattern == "*":
            return True
        if pattern.endswith(".*"):
            prefix = pattern[:-2]
            return event_type.startswith(prefix + ".")
        return event_type == pattern

    def get_stats(self) -> Dict[str, int]:
        """Get event bus statistics."""
        return dict(self._stats)