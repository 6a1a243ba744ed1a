"""Inline council tools -- the main model calls council tools itself.

Provides:
- InlineToolRegistry: registers gated tools, lists the ones currently
  offered, dispatches calls from the host
- register_inline_tools: one tool per council member per assigned tool

Registration happens once at startup. Each tool carries a gate that is
re-evaluated on every listing and dispatch, so switching the council mode or
reassigning tools needs no re-registration. Handlers return MCP-format
responses: {"content": [{"type": "text", "text": "..."}]}.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from typing import Any

from lumiverse.config import CouncilMember
from lumiverse.council.capability import CouncilCapability
from lumiverse.council.tools import COUNCIL_TOOLS, CouncilTool, format_tool_input, user_control_guidance
from lumiverse.pipeline.schemas import ToolResult
from lumiverse.pipeline.session import PipelineSession

logger = logging.getLogger(__name__)

TOOL_PREFIX = "lumiverse_council_"

Gate = Callable[[], bool]

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_]")


# ---------------------------------------------------------------------------
# InlineToolRegistry
# ---------------------------------------------------------------------------


class InlineToolRegistry:
    """Registers tool handlers behind per-tool gates and dispatches calls."""

    def __init__(self) -> None:
        self._handlers: dict[str, Callable[..., Any]] = {}
        self._schemas: dict[str, dict[str, Any]] = {}
        self._gates: dict[str, Gate] = {}

    def register(
        self,
        name: str,
        handler: Callable[..., Any],
        schema: dict[str, Any],
        should_register: Gate | None = None,
    ) -> None:
        """Register a tool handler with its JSON schema and optional gate.

        ``schema`` carries the tool description under ``description``.
        """
        self._handlers[name] = handler
        self._schemas[name] = schema
        self._gates[name] = should_register or (lambda: True)

    def unregister(self, name: str) -> bool:
        removed = self._handlers.pop(name, None) is not None
        self._schemas.pop(name, None)
        self._gates.pop(name, None)
        return removed

    def clear(self) -> int:
        count = len(self._handlers)
        self._handlers.clear()
        self._schemas.clear()
        self._gates.clear()
        return count

    def names(self) -> list[str]:
        return list(self._handlers)

    def is_offered(self, name: str) -> bool:
        gate = self._gates.get(name)
        if gate is None:
            return False
        try:
            return bool(gate())
        except Exception:
            logger.exception("Gate check failed for tool %s", name)
            return False

    def tool_definitions(self) -> list[dict[str, Any]]:
        """Anthropic-format definitions for tools whose gate currently passes."""
        return [
            {
                "name": name,
                "description": schema.get("description", ""),
                "input_schema": {k: v for k, v in schema.items() if k != "description"},
            }
            for name, schema in self._schemas.items()
            if self.is_offered(name)
        ]

    async def dispatch(self, name: str, args: dict[str, Any]) -> tuple[str, bool]:
        """Dispatch a tool call and return (result_text, is_error)."""
        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown tool: {name}", True
        if not self.is_offered(name):
            return f"Tool not available: {name}", True
        try:
            result = await handler(**args)
            return result["content"][0]["text"], False
        except Exception as e:
            logger.exception("Tool dispatch error for %s", name)
            return f"Tool error: {e}", True


# ---------------------------------------------------------------------------
# Council member tool closures
# ---------------------------------------------------------------------------


def sanitize_tool_name(value: str) -> str:
    return _UNSAFE_CHARS.sub("_", value).lower()


def member_tool_name(member: CouncilMember, tool_name: str) -> str:
    return f"{TOOL_PREFIX}{sanitize_tool_name(member.member_id)}_{tool_name}"


def _inline_description(tool: CouncilTool, member: CouncilMember, allow_user_control: bool) -> str:
    role = f" Their role on the council is: {member.role}." if member.role else ""
    return (
        f"[Lumiverse Council - {member.name}] {tool.description}.{role} {tool.prompt}"
        f"{user_control_guidance(allow_user_control)}"
    )


def _make_handler(tool: CouncilTool, member: CouncilMember, session: PipelineSession):
    async def handler(**kwargs: Any) -> dict[str, Any]:
        formatted = format_tool_input(kwargs)
        session.add_tool_results([
            ToolResult(
                tool_name=tool.name,
                payload=formatted,
                produced_during_cycle=True,
                member_name=member.name,
                display_name=tool.display_name,
            )
        ])
        logger.info("Inline tool %s invoked by model for member %s", tool.display_name, member.name)
        text = f"[Council Member: {member.name}] {tool.display_name}\n\n{formatted}"
        return {"content": [{"type": "text", "text": text}]}

    return handler


def register_inline_tools(
    registry: InlineToolRegistry,
    members: list[CouncilMember],
    capability: CouncilCapability,
    session: PipelineSession,
) -> int:
    """Register one gated tool per member per assigned tool. Returns the count.

    Previously registered council tools are removed first. The gate passes
    only while council tools are enabled in inline mode and the member still
    owns the tool.
    """
    for name in registry.names():
        if name.startswith(TOOL_PREFIX):
            registry.unregister(name)

    allow_user_control = capability.tools_settings().allow_user_control
    count = 0
    for member in members:
        for tool_name in member.tools:
            tool = COUNCIL_TOOLS.get(tool_name)
            if tool is None:
                logger.warning("Unknown tool %r assigned to member %s, skipping", tool_name, member.name)
                continue

            member_id = member.member_id

            def gate(member_id: str = member_id, tool_name: str = tool_name) -> bool:
                return capability.inline_active() and capability.member_has_tool(member_id, tool_name)

            registry.register(
                member_tool_name(member, tool_name),
                _make_handler(tool, member, session),
                {**tool.input_schema, "description": _inline_description(tool, member, allow_user_control)},
                should_register=gate,
            )
            count += 1

    logger.info("Registered %d council member tools (inline mode)", count)
    return count
