"""Queue-per-subscriber fan-out between chat clients and consumers.

Subscriptions are keyed by event class. A published event reaches the
handlers subscribed to its exact class, each through its own bounded
queue, so a slow consumer drops its own backlog without stalling the
sync loop that published.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Coroutine
from uuid import uuid4

from hookbridge.models import IncomingMessage
from hookbridge.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class Event:
    id: str = field(default_factory=lambda: uuid4().hex[:12])
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class MessageIncoming(Event):
    """Room text observed by a syncing Matrix account."""

    message: IncomingMessage | None = None


Handler = Callable[[Any], Coroutine[Any, Any, None]]
_Subscription = tuple[Handler, "asyncio.Queue[Event]"]


class EventBus:
    def __init__(self, max_queue_size: int = 256) -> None:
        self._subscribers: dict[type[Event], list[_Subscription]] = {}
        self._max_queue_size = max_queue_size
        self._running = False
        self._tasks: list[asyncio.Task[None]] = []

    def subscribe(self, event_cls: type[Event], handler: Handler) -> asyncio.Queue[Event]:
        """Register *handler* for *event_cls* and return its queue."""
        queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers.setdefault(event_cls, []).append((handler, queue))
        if self._running:
            self._spawn(event_cls, handler, queue)
        return queue

    async def publish(self, event: Event) -> None:
        for handler, queue in self._subscribers.get(type(event), []):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                log.warning(
                    "event_dropped",
                    event=type(event).__name__,
                    event_id=event.id,
                    handler=handler.__qualname__,
                )

    async def start(self) -> None:
        self._running = True
        for event_cls, subs in self._subscribers.items():
            for handler, queue in subs:
                self._spawn(event_cls, handler, queue)

    def _spawn(self, event_cls: type[Event], handler: Handler, queue: asyncio.Queue[Event]) -> None:
        self._tasks.append(asyncio.create_task(
            self._consume(handler, queue),
            name=f"bus-{event_cls.__name__}-{handler.__qualname__}",
        ))

    async def _consume(self, handler: Handler, queue: asyncio.Queue[Event]) -> None:
        while True:
            event = await queue.get()
            try:
                await handler(event)
            except Exception:
                log.exception(
                    "event_handler_failed",
                    event=type(event).__name__,
                    event_id=event.id,
                    handler=handler.__qualname__,
                )
            finally:
                queue.task_done()

    async def stop(self) -> None:
        self._running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
