"""Session-scoped pipeline state.

One ``PipelineSession`` per host chat session. It owns everything that has to
survive between interceptor calls: the generation cycle, the sovereign
capture, accumulated council tool results, the random persona pick, and the
enrichment data the host pushes through lifecycle events.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable, Sequence
from typing import Any

from lumiverse.config import PipelineSettings
from lumiverse.pipeline.cycle import GenerationCycle
from lumiverse.pipeline.schemas import SovereignCapture, ToolResult

logger = logging.getLogger(__name__)

SettingsSource = Callable[[], PipelineSettings]


class PipelineSession:
    def __init__(
        self,
        settings_source: SettingsSource,
        cycle: GenerationCycle | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._settings_source = settings_source
        self.cycle = cycle or GenerationCycle()
        self.capture = SovereignCapture()
        self.tool_results: list[ToolResult] = []
        self.world_info: list[str] = []
        self.persona: dict[str, Any] = {}
        self.character: dict[str, Any] = {}
        self._rng = rng or random.Random()
        self._random_pick: Any = None
        self._indicator_observers: list[Callable[[], None]] = []

    def settings(self) -> PipelineSettings:
        """Current settings snapshot; read fresh on every call."""
        return self._settings_source()

    # ------------------------------------------------------------------
    # Cycle entry
    # ------------------------------------------------------------------

    def begin_invocation(self, nested: bool | None = None) -> bool:
        """Enter the generation cycle. Root invocations start from a clean slate."""
        root = self.cycle.begin_invocation(nested)
        if root:
            self.reset_for_new_cycle()
        return root

    def reset_for_new_cycle(self) -> None:
        self.clear_tool_results()
        self.reset_indicator()
        self.reset_random_pick()
        logger.debug("Session reset for new generation cycle")

    # ------------------------------------------------------------------
    # Council tool results
    # ------------------------------------------------------------------

    def add_tool_results(self, results: Sequence[ToolResult]) -> None:
        self.tool_results.extend(results)

    def clear_tool_results(self) -> None:
        self.tool_results.clear()

    # ------------------------------------------------------------------
    # Random persona pick (stable within one cycle)
    # ------------------------------------------------------------------

    def pick_random(self, candidates: Sequence[Any]) -> Any:
        """Pick one candidate, returning the same pick until the next reset."""
        if self._random_pick is None and candidates:
            self._random_pick = self._rng.choice(list(candidates))
        return self._random_pick

    def reset_random_pick(self) -> None:
        self._random_pick = None

    # ------------------------------------------------------------------
    # Visual indicator
    # ------------------------------------------------------------------

    def on_indicator_reset(self, observer: Callable[[], None]) -> None:
        self._indicator_observers.append(observer)

    def reset_indicator(self) -> None:
        for observer in self._indicator_observers:
            try:
                observer()
            except Exception:
                logger.exception("Indicator reset observer %r failed", observer)

    # ------------------------------------------------------------------
    # Enrichment data pushed by the host
    # ------------------------------------------------------------------

    def capture_world_info(self, entries: Sequence[Any]) -> None:
        """Store activated world-info entry texts; dict entries use ``content``."""
        texts: list[str] = []
        for entry in entries:
            if isinstance(entry, str):
                text = entry
            elif isinstance(entry, dict):
                text = entry.get("content") or ""
            else:
                continue
            if text.strip():
                texts.append(text)
        self.world_info = texts
        logger.debug("Captured %d world info entries", len(texts))

    def set_chat_context(self, persona: dict[str, Any] | None, character: dict[str, Any] | None) -> None:
        self.persona = dict(persona or {})
        self.character = dict(character or {})
        self.world_info = []
