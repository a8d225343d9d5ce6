"""
Priority Inbox

Per-agent mailbox drained by a cooperative polling loop, one message per tick.
"""

import asyncio
import heapq
import itertools
import logging
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from .types import Message, MessagePriority

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Message], Awaitable[None]]


class PriorityInbox:
    """
    Ordered message queue for a single agent.

    Messages are dequeued by priority (high, normal, low) and in arrival order
    within a priority. The poll loop awaits each handler before the next tick,
    so at most one message is in flight.
    """

    def __init__(self, poll_interval: float = 0.05):
        """
        Args:
            poll_interval: Seconds between ticks
        """
        self.poll_interval = poll_interval
        self._heap: List[Tuple[int, int, Message]] = []
        self._sequence = itertools.count()
        self._in_flight = 0
        self._handler: Optional[MessageHandler] = None
        self._task: Optional[asyncio.Task] = None
        self._running = False

    def enqueue(self, message: Message, priority: Any = None) -> None:
        """
        Add a message to the queue.

        Args:
            message: Message to deliver
            priority: high | normal | low; defaults to the message's own priority
        """
        if priority is None:
            priority = message.metadata.priority
        priority = MessagePriority.coerce(priority)
        heapq.heappush(self._heap, (priority.rank, next(self._sequence), message))
        logger.debug(
            f"Enqueued message {message.id} for session {message.session_id} "
            f"(priority={priority.value}, queued={len(self._heap)})"
        )

    def dequeue(self) -> Optional[Message]:
        """Pop the next message, or None when empty."""
        if not self._heap:
            return None
        _, _, message = heapq.heappop(self._heap)
        return message

    def size(self) -> int:
        """Number of queued (not yet dequeued) messages."""
        return len(self._heap)

    @property
    def pending_count(self) -> int:
        """Queued messages plus the one being handled, if any."""
        return len(self._heap) + self._in_flight

    def has_pending_messages(self) -> bool:
        return self.pending_count > 0

    def is_running(self) -> bool:
        return self._running

    def init(self, handler: MessageHandler) -> None:
        """
        Start the poll loop. Must be called from a running event loop.

        Args:
            handler: Coroutine function invoked once per dequeued message
        """
        if self._running:
            logger.warning("PriorityInbox already running")
            return

        self._handler = handler
        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info(f"PriorityInbox started (interval={self.poll_interval}s)")

    async def stop(self) -> None:
        """Cancel the poll loop. Queued messages are kept."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info(f"PriorityInbox stopped ({len(self._heap)} messages left)")

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait until every queued message has been handled."""

        async def _wait() -> None:
            while self.has_pending_messages():
                await asyncio.sleep(self.poll_interval)

        await asyncio.wait_for(_wait(), timeout=timeout)

    async def _poll_loop(self) -> None:
        while self._running:
            await self._tick()
            await asyncio.sleep(self.poll_interval)

    async def _tick(self) -> None:
        message = self.dequeue()
        if message is None:
            return

        self._in_flight += 1
        try:
            await self._handler(message)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Handler failures belong to the orchestrator; keep polling
            logger.error(f"Error handling message {message.id}: {e}", exc_info=True)
        finally:
            self._in_flight -= 1
