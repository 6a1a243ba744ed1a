"""Context transformation pipeline -- the pre-generation interceptor.

Invoked by the host once per generation pass with the conversation window.
Mutates the window in place and hands it back:

    (a) generation-cycle decision + council tools
    (b) message truncation
    (c) sovereign hand extraction
    (d) per message: conditionals -> content filters -> newline cleanup

Every stage is isolated: a failure is logged and the pipeline continues with
whatever the earlier stages produced. The host never sees an exception.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from lumiverse.config import PipelineSettings
from lumiverse.events import EventBus
from lumiverse.pipeline.conditionals import evaluate_conditionals
from lumiverse.pipeline.filters import apply_filters, depth_from_end
from lumiverse.pipeline.schemas import InterceptResult, Message, ToolResult
from lumiverse.pipeline.session import PipelineSession
from lumiverse.pipeline.sovereign import extract
from lumiverse.pipeline.truncation import truncate
from lumiverse.utils import collapse_blank_lines

if TYPE_CHECKING:
    from lumiverse.council.orchestrator import CouncilOrchestrator

logger = logging.getLogger(__name__)

ConditionalEvaluator = Callable[[str], str]


class ContextPipeline:
    def __init__(
        self,
        session: PipelineSession,
        orchestrator: CouncilOrchestrator | None = None,
        conditional_evaluator: ConditionalEvaluator = evaluate_conditionals,
        bus: EventBus | None = None,
    ) -> None:
        self._session = session
        self._orchestrator = orchestrator
        self._evaluate = conditional_evaluator
        self._bus = bus

    @property
    def session(self) -> PipelineSession:
        return self._session

    async def intercept(
        self,
        window: list[Any],
        size_hint: int,
        abort: bool,
        invocation_type: str | None = None,
        *,
        nested: bool | None = None,
    ) -> InterceptResult:
        """Transform ``window`` in place. ``size_hint`` and ``abort`` pass through."""
        settings = self._load_settings()
        tool_results: list[ToolResult] = []

        try:
            root = self._session.begin_invocation(nested)
            if root:
                self._notify("cycle_started", {"invocation_type": invocation_type})
            if self._orchestrator is not None:
                tool_results = await self._orchestrator.run(invocation_type, window, root=root)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Cycle / council stage failed")

        self._run_stage("truncation", self._truncate, window, settings)
        self._run_stage("sovereign hand", self._sovereign, window, settings)
        self._run_stage("message transform", self._transform_messages, window, settings)

        return InterceptResult(window=window, size_hint=size_hint, abort=abort, tool_results=tool_results)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _load_settings(self) -> PipelineSettings:
        try:
            return self._session.settings()
        except Exception:
            logger.exception("Settings source failed, using defaults for this pass")
            return PipelineSettings()

    @staticmethod
    def _run_stage(
        label: str,
        stage: Callable[[list[Any], PipelineSettings], None],
        window: list[Any],
        settings: PipelineSettings,
    ) -> None:
        try:
            stage(window, settings)
        except Exception:
            logger.exception("Pipeline stage '%s' failed, continuing", label)

    @staticmethod
    def _truncate(window: list[Any], settings: PipelineSettings) -> None:
        policy = settings.message_truncation
        if policy.enabled and policy.keep_count > 0:
            truncate(window, policy.keep_count)

    def _sovereign(self, window: list[Any], settings: PipelineSettings) -> None:
        sovereign = settings.sovereign_hand
        if not sovereign.enabled:
            self._session.capture.clear()
            return
        extract(window, self._session.capture, sovereign.exclude_last_message)

    def _transform_messages(self, window: list[Any], settings: PipelineSettings) -> None:
        filters = settings.context_filters
        filtering = filters.any_enabled
        length = len(window)
        for index, raw in enumerate(window):
            message = Message.wrap(raw)
            depth = depth_from_end(index, length)
            for name, text in message.text_fields():
                text = self._evaluate(text)
                if filtering:
                    text = apply_filters(text, filters, depth)
                message.set_field(name, collapse_blank_lines(text))

    def _notify(self, event_type: str, data: dict[str, Any]) -> None:
        if self._bus is not None:
            self._bus.notify(event_type, data)
