"""Sidecar executor -- runs council tools against a dedicated LLM.

One request per council member, all members concurrently. Each request
carries every tool assigned to that member and forces tool use; the
structured tool inputs come back as the member's contributions.

Supports the Anthropic Messages API (native tool_use) and OpenAI-compatible
chat completions (function calling) for openai, openrouter and custom
endpoints. Network and provider failures never propagate: they become
ToolResults with success=False.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from lumiverse.config import CouncilLLM, CouncilMember, CouncilToolsSettings, Settings
from lumiverse.council.tools import (
    COUNCIL_TOOLS,
    anthropic_tools,
    format_tool_input,
    openai_tools,
    user_control_guidance,
)
from lumiverse.handlers import build_anthropic_headers, build_openai_headers
from lumiverse.pipeline.schemas import Message, ToolResult
from lumiverse.pipeline.session import PipelineSession

logger = logging.getLogger(__name__)

_ANTHROPIC_SYSTEM = (
    "You are a council member contributing to story direction. Use your tools to provide "
    "structured contributions. Be concise and specific. You MUST use all available tools."
)
_OPENAI_SYSTEM = (
    "You are a council member contributing to story direction. Use your tools to provide "
    "structured contributions. Be concise and specific."
)

_MEMBER_PROMPT = """You are {name}, a council member contributing to collaborative story direction.

{identity}{role}You have the following tools available:
{tool_list}
{enrichment}
### Current Story Context ###

{context}

### Your Task ###

Review the story context above and use ALL of your assigned tools to provide your contributions. \
For each tool, provide specific, actionable input from your unique perspective as {name}. \
Be concise but insightful. Remember to filter all your contributions through your personality, \
biases, and worldview as described above.{guidance}"""


class ProviderError(Exception):
    """The sidecar provider could not be resolved (unknown provider, missing key)."""


class SidecarRequestError(Exception):
    """A provider answered with a non-success status."""


@dataclass(frozen=True)
class ProviderTarget:
    provider: str
    url: str
    api_key: str
    wire_format: str  # "anthropic" | "openai"


def resolve_provider(llm: CouncilLLM, settings: Settings) -> ProviderTarget:
    """Pick endpoint, key and wire format for the configured sidecar provider."""
    provider = llm.provider or "anthropic"
    if provider == "anthropic":
        target = ProviderTarget(
            provider, f"{settings.anthropic_base_url}/v1/messages", settings.anthropic_api_key, "anthropic"
        )
    elif provider == "openai":
        target = ProviderTarget(
            provider, f"{settings.openai_base_url}/v1/chat/completions", settings.openai_api_key, "openai"
        )
    elif provider == "openrouter":
        target = ProviderTarget(
            provider,
            f"{settings.openrouter_base_url}/v1/chat/completions",
            settings.openrouter_api_key,
            "openai",
        )
    elif provider == "custom":
        if not llm.endpoint:
            raise ProviderError("No endpoint specified for custom provider")
        target = ProviderTarget(provider, llm.endpoint, llm.api_key, "openai")
    else:
        raise ProviderError(f"Unknown sidecar provider: {provider}")

    if not target.api_key:
        raise ProviderError(f"No API key found for provider {provider}")
    return target


# ---------------------------------------------------------------------------
# Prompt assembly
# ---------------------------------------------------------------------------


def build_context_text(window: list[Any], context_window: int) -> str:
    """Last ``context_window`` messages as ``Speaker: text`` paragraphs."""
    recent = window[-context_window:] if context_window > 0 else window
    lines = []
    for raw in recent:
        msg = Message.wrap(raw)
        speaker = "{{user}}" if msg.is_user else (msg.name or "Assistant")
        lines.append(f"{speaker}: {msg.text}")
    return "\n\n".join(lines)


def build_enrichment(tools_settings: CouncilToolsSettings, session: PipelineSession) -> str:
    """Optional persona / character card / world info block for member prompts."""
    sections: list[str] = []

    if tools_settings.include_user_persona:
        persona = session.persona
        if persona.get("persona"):
            sections.append(
                f"### User Persona ###\nName: {persona.get('name', '')}\n{persona['persona']}"
            )

    if tools_settings.include_character_info:
        character = session.character
        parts = [
            f"{label}: {character[key]}"
            for key, label in (
                ("description", "Description"),
                ("personality", "Personality"),
                ("scenario", "Scenario"),
            )
            if character.get(key)
        ]
        if parts:
            sections.append(
                f"### Character Card: {character.get('name', '')} ###\n" + "\n\n".join(parts)
            )

    if tools_settings.include_world_info and session.world_info:
        sections.append(
            "### Active World Book Entries ###\n" + "\n\n---\n\n".join(session.world_info)
        )

    if not sections:
        return ""
    return "### Context Enrichment ###\n\n" + "\n\n".join(sections)


def _identity_block(member: CouncilMember) -> str:
    parts = []
    if member.definition:
        parts.append(f"### Your Physical Identity ###\n{member.definition}")
    if member.personality:
        parts.append(f"### Your Personality ###\n{member.personality}")
    if member.behavior:
        parts.append(f"### Your Behavioral Patterns ###\n{member.behavior}")
    if not parts:
        return ""
    return (
        "### WHO YOU ARE ###\n\n"
        + "\n\n".join(parts)
        + "\n\n### INSTRUCTION ###\nYou MUST answer ALL tool calls and contributions through "
        "the lens of your personality, behavior, and identity described above. Do NOT provide "
        "generic or neutral responses.\n\n"
    )


def _role_block(member: CouncilMember) -> str:
    if not member.role:
        return ""
    return (
        f"Your role on the council is: {member.role}.\n"
        "When using your tools, consider how your role influences your perspective and "
        f"recommendations. Draw upon your expertise as {member.role}.\n\n"
    )


def build_member_prompt(
    member: CouncilMember,
    tool_names: list[str],
    context_text: str,
    enrichment: str,
    allow_user_control: bool,
) -> str:
    tool_list = "\n".join(
        f"- **{COUNCIL_TOOLS[n].display_name}**: {COUNCIL_TOOLS[n].description}" for n in tool_names
    )
    return _MEMBER_PROMPT.format(
        name=member.name,
        identity=_identity_block(member),
        role=_role_block(member),
        tool_list=tool_list,
        enrichment=f"\n{enrichment}\n" if enrichment else "",
        context=context_text,
        guidance=user_control_guidance(allow_user_control),
    )


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class SidecarExecutor:
    """Executes council tools via a dedicated sidecar LLM over httpx."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None):
        self._settings = settings
        self._http = http_client

    def _timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            self._settings.sidecar_timeout_read,
            connect=self._settings.sidecar_timeout_connect,
        )

    async def execute(
        self,
        members: list[CouncilMember],
        tools_settings: CouncilToolsSettings,
        window: list[Any],
        enrichment: str = "",
    ) -> list[ToolResult]:
        """Run every member's tools; returns all results, failures included."""
        assigned = [(m, [t for t in m.tools if t in COUNCIL_TOOLS]) for m in members]
        assigned = [(m, tools) for m, tools in assigned if tools]
        if not assigned:
            logger.debug("No council members with tools assigned")
            return []

        try:
            target = resolve_provider(tools_settings.llm, self._settings)
        except ProviderError as e:
            logger.warning("Sidecar provider resolution failed: %s", e)
            return [r for m, tools in assigned for r in _error_results(m, tools, str(e))]

        if not self._http:
            logger.warning("No HTTP client for sidecar executor")
            return [
                r for m, tools in assigned for r in _error_results(m, tools, "No HTTP client configured")
            ]

        context_text = build_context_text(window, tools_settings.sidecar_context_window)
        started = time.monotonic()
        batches = await asyncio.gather(*[
            self._execute_member(member, tools, target, tools_settings, context_text, enrichment)
            for member, tools in assigned
        ])
        results = [r for batch in batches for r in batch]
        logger.info(
            "Sidecar council execution: %d results from %d members in %.2fs",
            len(results),
            len(assigned),
            time.monotonic() - started,
        )
        return results

    async def _execute_member(
        self,
        member: CouncilMember,
        tool_names: list[str],
        target: ProviderTarget,
        tools_settings: CouncilToolsSettings,
        context_text: str,
        enrichment: str,
    ) -> list[ToolResult]:
        prompt = build_member_prompt(
            member, tool_names, context_text, enrichment, tools_settings.allow_user_control
        )
        logger.debug("Executing %d tools for %s via %s", len(tool_names), member.name, target.provider)
        try:
            if target.wire_format == "anthropic":
                return await self._call_anthropic(member, tool_names, target, tools_settings.llm, prompt)
            return await self._call_openai(member, tool_names, target, tools_settings.llm, prompt)
        except (SidecarRequestError, httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Council tools failed for %s: %s", member.name, e)
            return _error_results(member, tool_names, str(e) or type(e).__name__)

    async def _call_anthropic(
        self,
        member: CouncilMember,
        tool_names: list[str],
        target: ProviderTarget,
        llm: CouncilLLM,
        prompt: str,
    ) -> list[ToolResult]:
        response = await self._http.post(
            target.url,
            json={
                "model": llm.model,
                "max_tokens": max(256, llm.max_tokens),
                "temperature": llm.temperature,
                "system": _ANTHROPIC_SYSTEM,
                "messages": [{"role": "user", "content": prompt}],
                "tools": anthropic_tools(tool_names),
                "tool_choice": {"type": "any"},
            },
            headers=build_anthropic_headers(target.api_key),
            timeout=self._timeout(),
        )
        if response.status_code != 200:
            raise SidecarRequestError(f"Anthropic API error: {response.status_code} - {response.text[:200]}")

        blocks = response.json().get("content") or []
        results = [
            _result(member, block["name"], format_tool_input(block.get("input")))
            for block in blocks
            if block.get("type") == "tool_use" and block.get("name") in COUNCIL_TOOLS
        ]
        if not results:
            text = "\n".join(b.get("text", "") for b in blocks if b.get("type") == "text").strip()
            if text:
                results.append(_result(member, tool_names[0], text))
        return results

    async def _call_openai(
        self,
        member: CouncilMember,
        tool_names: list[str],
        target: ProviderTarget,
        llm: CouncilLLM,
        prompt: str,
    ) -> list[ToolResult]:
        response = await self._http.post(
            target.url,
            json={
                "model": llm.model,
                "max_tokens": max(256, llm.max_tokens),
                "temperature": llm.temperature,
                "messages": [
                    {"role": "system", "content": _OPENAI_SYSTEM},
                    {"role": "user", "content": prompt},
                ],
                "tools": openai_tools(tool_names),
                "tool_choice": "required",
            },
            headers=build_openai_headers(target.api_key, target.provider),
            timeout=self._timeout(),
        )
        if response.status_code != 200:
            raise SidecarRequestError(
                f"{target.provider} API error: {response.status_code} - {response.text[:200]}"
            )

        choices = response.json().get("choices") or [{}]
        message = choices[0].get("message") or {}
        results = []
        for call in message.get("tool_calls") or []:
            function = call.get("function") or {}
            name = function.get("name")
            if call.get("type") != "function" or name not in COUNCIL_TOOLS:
                continue
            raw_args = function.get("arguments") or "{}"
            try:
                args = json.loads(raw_args)
            except json.JSONDecodeError:
                args = {"response": raw_args}
            results.append(_result(member, name, format_tool_input(args)))

        if not results and message.get("content"):
            results.append(_result(member, tool_names[0], message["content"].strip()))
        return results


def _result(member: CouncilMember, tool_name: str, payload: str) -> ToolResult:
    tool = COUNCIL_TOOLS.get(tool_name)
    return ToolResult(
        tool_name=tool_name,
        payload=payload,
        member_name=member.name,
        display_name=tool.display_name if tool else tool_name,
    )


def _error_results(member: CouncilMember, tool_names: list[str], error: str) -> list[ToolResult]:
    return [
        ToolResult(
            tool_name=name,
            member_name=member.name,
            display_name=COUNCIL_TOOLS[name].display_name if name in COUNCIL_TOOLS else name,
            success=False,
            error=error,
        )
        for name in tool_names
    ]
