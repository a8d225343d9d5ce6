"""
Runtime Event Bus

Pub/Sub channel for turn, stream, tool and state events with a bounded queue.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Dict, List, Callable, AsyncIterator, Optional, Tuple

from .types import RuntimeEvent, EventType

logger = logging.getLogger(__name__)

Subscriber = Tuple[Callable[[RuntimeEvent], None], Optional[str]]


class EventBus:
    """
    Event bus for observing the runtime.

    Features:
    - Bounded queue with backpressure (publish waits, then fails)
    - Type-based subscription with optional session filter
    - Sync or async subscribers, dispatched in subscription order
    """

    def __init__(self, maxsize: int = 1000, publish_timeout: float = 5.0):
        """
        Initialize event bus.

        Args:
            maxsize: Maximum queue size
            publish_timeout: Seconds publish() waits for queue space
        """
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._subscribers: Dict[EventType, List[Subscriber]] = defaultdict(list)
        self._publish_timeout = publish_timeout
        self._running = False
        self._consumer_task: Optional[asyncio.Task] = None

    async def publish(self, event: RuntimeEvent) -> None:
        """
        Publish an event to the bus.

        Raises:
            asyncio.QueueFull: If the queue stays full past publish_timeout
        """
        try:
            await asyncio.wait_for(self._queue.put(event), timeout=self._publish_timeout)
            logger.debug(f"Published event: {event.type.value} for session {event.session_id}")
        except asyncio.TimeoutError:
            logger.error(f"Event queue full, dropping event: {event.type.value}")
            raise asyncio.QueueFull("Event queue is full")

    async def subscribe(
        self,
        event_type: EventType,
        handler: Callable[[RuntimeEvent], None],
        session_id: Optional[str] = None,
    ) -> None:
        """
        Subscribe to events of a specific type.

        Args:
            event_type: Type of events to subscribe to
            handler: Sync or async callback
            session_id: Only deliver events for this session
        """
        self._subscribers[event_type].append((handler, session_id))
        logger.debug(f"Subscribed to {event_type.value} events")

    async def unsubscribe(self, event_type: EventType, handler: Callable[[RuntimeEvent], None]) -> None:
        """Remove every subscription of ``handler`` for ``event_type``."""
        before = len(self._subscribers[event_type])
        self._subscribers[event_type] = [
            (h, sid) for h, sid in self._subscribers[event_type] if h is not handler
        ]
        if len(self._subscribers[event_type]) != before:
            logger.debug(f"Unsubscribed from {event_type.value} events")

    async def consume(
        self,
        event_types: Optional[List[EventType]] = None,
        session_id: Optional[str] = None,
    ) -> AsyncIterator[RuntimeEvent]:
        """
        Pull events directly instead of subscribing.

        Yields:
            Events matching the filters; others are discarded
        """
        while True:
            event = await self._queue.get()
            self._queue.task_done()

            if event_types and event.type not in event_types:
                continue
            if session_id and event.session_id != session_id:
                continue

            yield event

    async def start(self) -> None:
        """Start dispatching queued events to subscribers."""
        if self._running:
            logger.warning("EventBus already running")
            return

        self._running = True
        self._consumer_task = asyncio.create_task(self._consume_loop())
        logger.info("EventBus started")

    async def stop(self) -> None:
        """Stop the dispatcher. Queued events stay queued."""
        if not self._running:
            return

        self._running = False
        if self._consumer_task:
            self._consumer_task.cancel()
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass
            self._consumer_task = None
        logger.info("EventBus stopped")

    async def _consume_loop(self) -> None:
        while self._running:
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue

            try:
                await self._dispatch(event)
            finally:
                self._queue.task_done()

    async def _dispatch(self, event: RuntimeEvent) -> None:
        for handler, session_id in list(self._subscribers.get(event.type, [])):
            if session_id and event.session_id != session_id:
                continue
            try:
                result = handler(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Error in event handler: {e}", exc_info=True)

    def qsize(self) -> int:
        """Return current queue size."""
        return self._queue.qsize()

    def is_running(self) -> bool:
        """Check if the dispatcher is running."""
        return self._running

    async def wait_empty(self) -> None:
        """Wait until all queued events are dispatched."""
        await self._queue.join()
