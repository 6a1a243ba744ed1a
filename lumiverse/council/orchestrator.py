"""Council tool orchestrator -- decides whether and how council tools run.

Sidecar mode executes all member tools before the interceptor returns, so
the deliberation macro is populated for the prompt being built. Inline mode
does nothing here: the main model calls the registered tools itself.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from lumiverse.council.capability import CouncilCapability
from lumiverse.council.sidecar import SidecarExecutor, build_enrichment
from lumiverse.pipeline.schemas import COUNCIL_INVOCATION_TYPES, ToolResult
from lumiverse.pipeline.session import PipelineSession

logger = logging.getLogger(__name__)


def is_council_invocation(invocation_type: str | None) -> bool:
    """normal / swipe / regenerate, or no type at all (treated as normal)."""
    if not invocation_type:
        return True
    return invocation_type in COUNCIL_INVOCATION_TYPES


class CouncilOrchestrator:
    def __init__(
        self,
        capability: CouncilCapability,
        executor: SidecarExecutor,
        session: PipelineSession,
    ) -> None:
        self._capability = capability
        self._executor = executor
        self._session = session
        self._in_flight: asyncio.Task[list[ToolResult]] | None = None
        session.cycle.on_end(self._cancel_in_flight)

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    def _cancel_in_flight(self) -> None:
        """Cycle end: a sidecar run still going belongs to a finished cycle."""
        task, self._in_flight = self._in_flight, None
        if task is not None and not task.done():
            logger.info("Generation cycle ended, cancelling in-flight council run")
            task.cancel()

    async def run(
        self,
        invocation_type: str | None,
        window: list[Any],
        root: bool = True,
    ) -> list[ToolResult]:
        """Run council tools for this invocation; returns the results obtained.

        Skipped (empty list) for nested invocations, background generation
        types, disabled council tools and inline mode. Never raises for
        executor failures. If the generation cycle ends while the sidecar is
        still running, the run is cancelled, nothing is stored and the
        caller gets an empty list.
        """
        if not root:
            logger.debug("Nested invocation, council tools not re-run")
            return []
        if not is_council_invocation(invocation_type):
            logger.debug("Invocation type %s does not run council tools", invocation_type)
            return []
        if not self._capability.enabled():
            return []
        if self._capability.mode() == "inline":
            logger.debug("Inline mode: council tools are offered to the main model")
            return []

        task = asyncio.create_task(self._execute(list(window)), name="council-sidecar")
        self._in_flight = task
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            return []
        except Exception:
            logger.exception("Council sidecar execution failed, continuing generation")
            return []
        finally:
            if self._in_flight is task:
                self._in_flight = None

    async def _execute(self, window: list[Any]) -> list[ToolResult]:
        tools_settings = self._capability.tools_settings()
        members = self._capability.members()
        enrichment = build_enrichment(tools_settings, self._session)
        logger.info("Executing council tools for %d members (sidecar mode)", len(members))
        results = await self._executor.execute(members, tools_settings, window, enrichment)
        self._session.add_tool_results(results)
        failed = sum(1 for r in results if not r.success)
        if failed:
            logger.warning("Council tools: %d of %d results failed", failed, len(results))
        return results
