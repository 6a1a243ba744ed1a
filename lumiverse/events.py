"""Lumiverse event bus: host lifecycle signals in, pipeline notifications out.

Two directions, two methods:

- ``signal()`` takes a host lifecycle signal (one of HOST_EVENTS). Its
  handlers finish before the call returns, so a cycle end or capture reset
  is in place before the host's next interceptor call.
- ``notify()`` takes a pipeline notification (one of PIPELINE_EVENTS). It is
  queued for the background dispatcher started by ``start()``; a full queue
  drops the notification with a warning and never blocks the pipeline.

A failing handler is logged and does not affect the other handlers.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Literal

logger = logging.getLogger(__name__)

HOST_EVENTS: tuple[str, ...] = (
    "generation_ended",
    "generation_stopped",
    "character_message_rendered",
    "message_edited",
    "message_swiped",
    "chat_changed",
    "world_info_activated",
)

PIPELINE_EVENTS: tuple[str, ...] = ("cycle_started", "cycle_ended")


class UnknownEventType(ValueError):
    """Raised for an event name outside the host / pipeline vocabulary."""


@dataclass(frozen=True)
class Event:
    type: str
    data: dict[str, Any] = field(default_factory=dict)
    source: Literal["host", "pipeline"] = "host"


EventHandler = Callable[[Event], Awaitable[None]]


class EventBus:
    def __init__(self, max_pending: int = 256):
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._notifications: asyncio.Queue[Event] = asyncio.Queue(maxsize=max_pending)
        self._dispatcher: asyncio.Task | None = None

    def on(self, event_type: str, handler: EventHandler) -> None:
        if event_type not in HOST_EVENTS and event_type not in PIPELINE_EVENTS:
            raise UnknownEventType(event_type)
        self._handlers[event_type].append(handler)

    async def signal(self, event_type: str, data: dict[str, Any] | None = None) -> Event:
        """Deliver a host signal and wait for every handler."""
        if event_type not in HOST_EVENTS:
            raise UnknownEventType(event_type)
        event = Event(event_type, dict(data or {}), "host")
        await self._deliver(event)
        return event

    def notify(self, event_type: str, data: dict[str, Any] | None = None) -> None:
        if event_type not in PIPELINE_EVENTS:
            raise UnknownEventType(event_type)
        try:
            self._notifications.put_nowait(Event(event_type, dict(data or {}), "pipeline"))
        except asyncio.QueueFull:
            logger.warning("Notification queue full, dropping %s", event_type)

    @property
    def pending(self) -> int:
        """Notifications waiting for the dispatcher."""
        return self._notifications.qsize()

    async def start(self) -> None:
        if self._dispatcher is None:
            self._dispatcher = asyncio.create_task(self._dispatch_notifications(), name="lumiverse-notifications")
            logger.info("Event bus started")

    async def stop(self) -> None:
        """Stop the dispatcher, then deliver whatever notifications are still queued."""
        dispatcher, self._dispatcher = self._dispatcher, None
        if dispatcher is not None:
            dispatcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await dispatcher
        while not self._notifications.empty():
            await self._deliver(self._notifications.get_nowait())
        logger.info("Event bus stopped")

    async def _dispatch_notifications(self) -> None:
        while True:
            event = await self._notifications.get()
            await self._deliver(event)

    async def _deliver(self, event: Event) -> None:
        handlers = list(self._handlers.get(event.type, ()))
        if not handlers:
            logger.debug("No handlers for %s", event.type)
            return
        outcomes = await asyncio.gather(*(h(event) for h in handlers), return_exceptions=True)
        for handler, outcome in zip(handlers, outcomes):
            if isinstance(outcome, Exception):
                logger.error(
                    "Handler %s failed for %s",
                    handler.__qualname__,
                    event.type,
                    exc_info=outcome,
                )
            elif isinstance(outcome, BaseException):
                raise outcome
