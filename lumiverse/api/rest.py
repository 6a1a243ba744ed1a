"""REST API for out-of-process hosts.

Endpoints:
  POST /intercept         - Run the context pipeline over a chat window
  GET  /settings          - Current pipeline settings snapshot
  PUT  /settings          - Replace the pipeline settings snapshot
  GET  /capture           - Sovereign hand capture
  GET  /council           - Council tool results + deliberation markdown
  GET  /tools             - Inline council tools currently offered
  POST /tools/{name}      - Dispatch an inline council tool call
  POST /events            - Deliver a host lifecycle signal
  GET  /health            - Health check + generation cycle state
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from lumiverse.config import SettingsStore
from lumiverse.council.capability import CouncilCapability
from lumiverse.council.inline import InlineToolRegistry, register_inline_tools
from lumiverse.council.tools import format_deliberation
from lumiverse.events import HOST_EVENTS, EventBus
from lumiverse.pipeline.interceptor import ContextPipeline

logger = logging.getLogger(__name__)


def create_app(
    pipeline: ContextPipeline,
    store: SettingsStore,
    bus: EventBus | None = None,
    registry: InlineToolRegistry | None = None,
    capability: CouncilCapability | None = None,
    lifespan: Any | None = None,
) -> Starlette:
    """Create the Starlette ASGI app with all routes."""
    session = pipeline.session

    async def intercept(request: Request) -> JSONResponse:
        """POST /intercept - Transform a chat window before generation."""
        try:
            body = await request.json()
        except Exception:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

        chat = body.get("chat") if isinstance(body, dict) else None
        if not isinstance(chat, list):
            return JSONResponse({"error": "Missing required field: chat (array)"}, status_code=400)

        result = await pipeline.intercept(
            chat,
            body.get("contextSize", 0),
            bool(body.get("abort", False)),
            body.get("type") or None,
            nested=body.get("nested"),
        )
        return JSONResponse({
            "chat": result.window,
            "contextSize": result.size_hint,
            "abort": result.abort,
        })

    async def get_settings(request: Request) -> JSONResponse:
        """GET /settings - Current snapshot (camelCase keys)."""
        return JSONResponse(store().model_dump(mode="json", by_alias=True))

    async def put_settings(request: Request) -> JSONResponse:
        """PUT /settings - Validate and replace the snapshot."""
        try:
            body = await request.json()
        except Exception:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
        if not isinstance(body, dict):
            return JSONResponse({"error": "Settings must be a JSON object"}, status_code=400)

        try:
            settings = store.replace(body)
        except ValidationError as e:
            return JSONResponse(
                {"error": "Invalid settings", "detail": e.errors(include_url=False, include_context=False)},
                status_code=400,
            )

        if registry is not None and capability is not None:
            register_inline_tools(registry, settings.council_members, capability, session)
        logger.info("Pipeline settings replaced")
        return JSONResponse(settings.model_dump(mode="json", by_alias=True))

    async def get_capture(request: Request) -> JSONResponse:
        """GET /capture - Last captured user message."""
        return JSONResponse({"text": session.capture.text, "captured": session.capture.captured})

    async def get_council(request: Request) -> JSONResponse:
        """GET /council - Accumulated tool results for the current cycle."""
        return JSONResponse({
            "results": [r.model_dump(mode="json") for r in session.tool_results],
            "deliberation": format_deliberation(session.tool_results),
        })

    async def list_tools(request: Request) -> JSONResponse:
        """GET /tools - Inline tool definitions whose gate passes right now."""
        tools = registry.tool_definitions() if registry is not None else []
        return JSONResponse({"tools": tools})

    async def call_tool(request: Request) -> JSONResponse:
        """POST /tools/{name} - Dispatch an inline tool call from the main model."""
        if registry is None:
            return JSONResponse({"error": "Inline tools not configured"}, status_code=404)
        name = request.path_params["name"]
        try:
            body = await request.json()
        except Exception:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
        if not isinstance(body, dict):
            return JSONResponse({"error": "Tool arguments must be a JSON object"}, status_code=400)

        text, is_error = await registry.dispatch(name, body)
        return JSONResponse({"result": text, "is_error": is_error})

    async def post_event(request: Request) -> JSONResponse:
        """POST /events - Host lifecycle signal, applied before responding."""
        try:
            body = await request.json()
        except Exception:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

        event_type = body.get("type") if isinstance(body, dict) else None
        if not event_type:
            return JSONResponse({"error": "Missing required field: type"}, status_code=400)
        if event_type not in HOST_EVENTS:
            return JSONResponse({"error": f"Unknown event type: {event_type}"}, status_code=400)
        if bus is None:
            return JSONResponse({"error": "Event bus disabled"}, status_code=503)

        data = body.get("data") or {}
        await bus.signal(event_type, data if isinstance(data, dict) else {})
        return JSONResponse({"accepted": event_type, "cycle": session.cycle.state.value})

    async def health(request: Request) -> JSONResponse:
        """GET /health - Health check with cycle state."""
        cycle = session.cycle
        return JSONResponse({
            "status": "healthy",
            "cycle": {
                "state": cycle.state.value,
                "active": cycle.is_active(),
                "active_seconds": round(cycle.active_seconds(), 1),
            },
            "tool_results": len(session.tool_results),
            "event_bus": bus is not None,
        })

    routes = [
        Route("/intercept", intercept, methods=["POST"]),
        Route("/settings", get_settings, methods=["GET"]),
        Route("/settings", put_settings, methods=["PUT"]),
        Route("/capture", get_capture),
        Route("/council", get_council),
        Route("/tools", list_tools),
        Route("/tools/{name}", call_tool, methods=["POST"]),
        Route("/events", post_event, methods=["POST"]),
        Route("/health", health),
    ]

    kwargs: dict[str, Any] = {"routes": routes}
    if lifespan is not None:
        kwargs["lifespan"] = lifespan
    return Starlette(**kwargs)
