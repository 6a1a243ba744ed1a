"""Host lifecycle handler -- turns host signals into pipeline state resets.

Listens to:
    generation_ended, generation_stopped, character_message_rendered,
    message_edited, message_swiped, chat_changed, world_info_activated
Emits: cycle_ended

Terminal signals close the generation cycle. Edits, swipes and chat switches
invalidate the sovereign capture. A swipe is a fresh generation, so it also
clears council results and the visual indicator.
"""

from __future__ import annotations

import logging

from lumiverse.events import HOST_EVENTS, Event, EventBus
from lumiverse.pipeline.session import PipelineSession

logger = logging.getLogger(__name__)


class HostLifecycleHandler:
    """Applies host lifecycle signals to a PipelineSession.

    Each handler method can also be called directly with an Event when the
    host is wired in-process without a bus.
    """

    def __init__(self, session: PipelineSession, bus: EventBus | None = None):
        self._session = session
        self._bus = bus
        if bus is not None:
            routes = {
                "generation_ended": self.on_generation_end,
                "generation_stopped": self.on_generation_end,
                "character_message_rendered": self.on_generation_end,
                "message_edited": self.on_message_edited,
                "message_swiped": self.on_message_swiped,
                "chat_changed": self.on_chat_changed,
                "world_info_activated": self.on_world_info_activated,
            }
            for name in HOST_EVENTS:
                bus.on(name, routes[name])

    async def on_generation_end(self, event: Event) -> None:
        self._end_cycle(event.type)

    async def on_message_edited(self, event: Event) -> None:
        self._session.capture.clear()
        logger.debug("Message edited, sovereign capture cleared")

    async def on_message_swiped(self, event: Event) -> None:
        self._session.capture.clear()
        self._end_cycle(event.type)
        self._session.clear_tool_results()
        self._session.reset_indicator()
        logger.info("Swipe detected, council results and indicator reset")

    async def on_chat_changed(self, event: Event) -> None:
        self._session.capture.clear()
        self._session.set_chat_context(event.data.get("persona"), event.data.get("character"))
        logger.debug("Chat changed, sovereign capture and enrichment context reset")

    async def on_world_info_activated(self, event: Event) -> None:
        entries = event.data.get("entries") or []
        self._session.capture_world_info(entries)

    def _end_cycle(self, reason: str) -> None:
        was_active = self._session.cycle.is_active()
        self._session.cycle.mark_end()
        if was_active:
            logger.debug("Generation cycle closed by %s", reason)
        if self._bus is not None:
            self._bus.notify("cycle_ended", {"reason": reason})
