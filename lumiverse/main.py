"""Lumiverse entry point.

Initializes all components and starts the server:
  Settings -> SettingsStore -> PipelineSession -> Council -> ContextPipeline -> App -> Uvicorn

Components are built eagerly; only the event bus loop and the HTTP client
need the running event loop, and those are started / closed in the
Starlette lifespan.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
import uvicorn
from starlette.applications import Starlette

from lumiverse.config import Settings, SettingsStore
from lumiverse.council import (
    CouncilCapability,
    CouncilOrchestrator,
    InlineToolRegistry,
    SidecarExecutor,
    register_inline_tools,
)
from lumiverse.events import EventBus
from lumiverse.handlers.lifecycle import HostLifecycleHandler
from lumiverse.pipeline import ContextPipeline, GenerationCycle, PipelineSession

logger = logging.getLogger(__name__)


def create_components(settings: Settings, store: SettingsStore | None = None) -> dict:
    """Wire every component in dependency order.

    1. SettingsStore - per-user pipeline settings (file-backed if present)
    2. PipelineSession - cycle, capture, tool results
    3. EventBus + HostLifecycleHandler - optional
    4. Council - capability gate, sidecar executor, orchestrator, inline registry
    5. ContextPipeline - the interceptor
    """
    store = store or SettingsStore.from_file(settings.settings_file)
    session = PipelineSession(
        store,
        cycle=GenerationCycle(stale_warning_seconds=settings.cycle_stale_warning_seconds),
    )

    bus = None
    if settings.event_bus_enabled:
        bus = EventBus()
        HostLifecycleHandler(session, bus)

    http = httpx.AsyncClient(
        timeout=httpx.Timeout(
            connect=settings.sidecar_timeout_connect,
            read=settings.sidecar_timeout_read,
            write=10,
            pool=10,
        ),
    )
    capability = CouncilCapability(store)
    executor = SidecarExecutor(settings, http)
    orchestrator = CouncilOrchestrator(capability, executor, session)

    registry = InlineToolRegistry()
    register_inline_tools(registry, store().council_members, capability, session)

    pipeline = ContextPipeline(session, orchestrator=orchestrator, bus=bus)

    return {
        "store": store,
        "session": session,
        "bus": bus,
        "http": http,
        "capability": capability,
        "executor": executor,
        "orchestrator": orchestrator,
        "registry": registry,
        "pipeline": pipeline,
    }


async def shutdown_components(components: dict) -> None:
    """Graceful shutdown in reverse order."""
    logger.info("Shutting down Lumiverse...")

    bus = components.get("bus")
    if bus:
        await bus.stop()

    http = components.get("http")
    if http:
        await http.aclose()

    logger.info("Lumiverse shutdown complete.")


def build_app(settings: Settings) -> Starlette:
    """Build the Starlette app; the lifespan starts the bus and closes the client."""
    components = create_components(settings)

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        app.state.components = components
        bus = components.get("bus")
        if bus:
            await bus.start()
        logger.info("Lumiverse started on %s:%d", settings.host, settings.port)
        yield
        await shutdown_components(components)

    from lumiverse.api.rest import create_app

    return create_app(
        pipeline=components["pipeline"],
        store=components["store"],
        bus=components["bus"],
        registry=components["registry"],
        capability=components["capability"],
        lifespan=lifespan,
    )


def main() -> None:
    """Entry point: parse settings, build app, run server."""
    settings = Settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    app = build_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
