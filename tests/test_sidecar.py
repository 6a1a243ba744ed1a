"""Tests for the sidecar executor -- provider resolution, requests, failure paths.

HTTP calls are mocked with AsyncMock(spec=httpx.AsyncClient); no network.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from lumiverse.config import CouncilLLM, CouncilMember, CouncilToolsSettings, PipelineSettings
from lumiverse.council.sidecar import (
    ProviderError,
    SidecarExecutor,
    build_context_text,
    build_enrichment,
    resolve_provider,
)
from lumiverse.pipeline.session import PipelineSession

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _mock_settings(**overrides) -> MagicMock:
    """MagicMock Settings to avoid pydantic-settings env handling."""
    s = MagicMock()
    s.anthropic_api_key = "sk-ant-test-key"
    s.openai_api_key = "sk-openai-test"
    s.openrouter_api_key = ""
    s.anthropic_base_url = "https://api.anthropic.com"
    s.openai_base_url = "https://api.openai.com"
    s.openrouter_base_url = "https://openrouter.ai/api"
    s.sidecar_timeout_connect = 10
    s.sidecar_timeout_read = 120
    for k, v in overrides.items():
        setattr(s, k, v)
    return s


def _mock_httpx_response(status_code: int = 200, body: dict | None = None, url: str = "https://api.anthropic.com/v1/messages") -> httpx.Response:
    return httpx.Response(
        status_code=status_code,
        json=body or {},
        request=httpx.Request("POST", url),
    )


def _tool_use(name: str, data: dict) -> dict:
    return {"type": "tool_use", "id": f"tu_{name}", "name": name, "input": data}


def _member(name: str, tools: list[str], **extra) -> CouncilMember:
    return CouncilMember(id=name.lower(), item_name=name, tools=tools, **extra)


def _window() -> list[dict]:
    return [
        {"is_user": True, "mes": "We enter the cave."},
        {"is_user": False, "name": "Lumia", "mes": "Darkness swallows the light."},
    ]


# ---------------------------------------------------------------------------
# Provider resolution + prompt assembly
# ---------------------------------------------------------------------------


class TestResolveProvider:
    def test_anthropic(self):
        target = resolve_provider(CouncilLLM(), _mock_settings())
        assert target.url == "https://api.anthropic.com/v1/messages"
        assert target.wire_format == "anthropic"

    def test_openai(self):
        target = resolve_provider(CouncilLLM(provider="openai"), _mock_settings())
        assert target.url == "https://api.openai.com/v1/chat/completions"
        assert target.wire_format == "openai"

    def test_missing_key_raises(self):
        with pytest.raises(ProviderError):
            resolve_provider(CouncilLLM(provider="openrouter"), _mock_settings())

    def test_custom_needs_endpoint_and_key(self):
        with pytest.raises(ProviderError):
            resolve_provider(CouncilLLM(provider="custom", api_key="k"), _mock_settings())
        target = resolve_provider(
            CouncilLLM(provider="custom", endpoint="http://localhost:5001/v1/chat/completions", api_key="k"),
            _mock_settings(),
        )
        assert target.api_key == "k"


class TestPromptAssembly:
    def test_context_text_uses_window_tail(self):
        window = [{"is_user": i % 2 == 0, "mes": f"m{i}"} for i in range(30)]
        text = build_context_text(window, 3)
        assert text == "Assistant: m27\n\n{{user}}: m28\n\nAssistant: m29"

    def test_context_text_speaker_names(self):
        text = build_context_text(_window(), 25)
        assert text.startswith("{{user}}: We enter the cave.")
        assert "Lumia: Darkness swallows the light." in text

    def test_enrichment_gated_by_flags(self):
        session = PipelineSession(PipelineSettings)
        session.set_chat_context(
            {"name": "Kai", "persona": "A wandering bard"},
            {"name": "Lumia", "description": "A weaver of fates", "scenario": "A cave"},
        )
        session.capture_world_info(["The cave is cursed."])

        assert build_enrichment(CouncilToolsSettings(), session) == ""

        text = build_enrichment(
            CouncilToolsSettings(include_user_persona=True, include_character_info=True, include_world_info=True),
            session,
        )
        assert text.startswith("### Context Enrichment ###")
        assert "### User Persona ###\nName: Kai\nA wandering bard" in text
        assert "### Character Card: Lumia ###" in text
        assert "Scenario: A cave" in text
        assert "### Active World Book Entries ###\nThe cave is cursed." in text


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class TestSidecarExecute:
    @pytest.mark.asyncio
    async def test_anthropic_tool_use_parsed(self):
        http = AsyncMock(spec=httpx.AsyncClient)
        http.post.return_value = _mock_httpx_response(200, {
            "content": [
                _tool_use("suggest_direction", {"direction": "Light a torch", "priority": "high"}),
                _tool_use("voice_concern", {"concern": "Pacing is slow"}),
            ]
        })
        executor = SidecarExecutor(_mock_settings(), http)

        results = await executor.execute(
            [_member("Aria", ["suggest_direction", "voice_concern"])],
            CouncilToolsSettings(),
            _window(),
        )

        assert [r.tool_name for r in results] == ["suggest_direction", "voice_concern"]
        assert results[0].payload == "**Direction:** Light a torch\n\n**Priority:** high"
        assert results[0].member_name == "Aria"
        assert results[0].display_name == "Suggest Direction"
        assert all(r.success for r in results)

        call = http.post.call_args
        assert call.args[0] == "https://api.anthropic.com/v1/messages"
        body = call.kwargs["json"]
        assert body["tool_choice"] == {"type": "any"}
        assert {t["name"] for t in body["tools"]} == {"suggest_direction", "voice_concern"}
        assert call.kwargs["headers"]["x-api-key"] == "sk-ant-test-key"
        assert call.kwargs["headers"]["anthropic-version"] == "2023-06-01"

    @pytest.mark.asyncio
    async def test_max_tokens_floor(self):
        http = AsyncMock(spec=httpx.AsyncClient)
        http.post.return_value = _mock_httpx_response(200, {"content": []})
        executor = SidecarExecutor(_mock_settings(), http)
        await executor.execute(
            [_member("Aria", ["propose_twist"])],
            CouncilToolsSettings(llm=CouncilLLM(max_tokens=10)),
            _window(),
        )
        assert http.post.call_args.kwargs["json"]["max_tokens"] == 256

    @pytest.mark.asyncio
    async def test_text_only_response_attributed_to_first_tool(self):
        http = AsyncMock(spec=httpx.AsyncClient)
        http.post.return_value = _mock_httpx_response(200, {
            "content": [{"type": "text", "text": "  Just prose.  "}]
        })
        executor = SidecarExecutor(_mock_settings(), http)
        results = await executor.execute(
            [_member("Aria", ["propose_twist", "voice_concern"])], CouncilToolsSettings(), _window()
        )
        assert len(results) == 1
        assert results[0].tool_name == "propose_twist"
        assert results[0].payload == "Just prose."

    @pytest.mark.asyncio
    async def test_openai_function_calls_parsed(self):
        http = AsyncMock(spec=httpx.AsyncClient)
        http.post.return_value = _mock_httpx_response(200, {
            "choices": [{
                "message": {
                    "content": None,
                    "tool_calls": [
                        {
                            "id": "call_1",
                            "type": "function",
                            "function": {
                                "name": "worldbuilding_note",
                                "arguments": json.dumps({"detail": "Glowing moss"}),
                            },
                        },
                        {
                            "id": "call_2",
                            "type": "function",
                            "function": {"name": "highlight_opportunity", "arguments": "not json"},
                        },
                    ],
                }
            }]
        }, url="https://api.openai.com/v1/chat/completions")
        executor = SidecarExecutor(_mock_settings(), http)

        results = await executor.execute(
            [_member("Bex", ["worldbuilding_note", "highlight_opportunity"])],
            CouncilToolsSettings(llm=CouncilLLM(provider="openai", model="gpt-4o")),
            _window(),
        )

        assert results[0].payload == "**Detail:** Glowing moss"
        assert results[1].payload == "**Response:** not json"
        call = http.post.call_args
        assert call.args[0] == "https://api.openai.com/v1/chat/completions"
        assert call.kwargs["json"]["tool_choice"] == "required"
        assert call.kwargs["headers"]["Authorization"] == "Bearer sk-openai-test"

    @pytest.mark.asyncio
    async def test_provider_failure_yields_error_for_every_tool(self):
        http = AsyncMock(spec=httpx.AsyncClient)
        executor = SidecarExecutor(_mock_settings(anthropic_api_key=""), http)
        results = await executor.execute(
            [_member("Aria", ["propose_twist", "voice_concern"]), _member("Bex", ["worldbuilding_note"])],
            CouncilToolsSettings(),
            _window(),
        )
        assert len(results) == 3
        assert not any(r.success for r in results)
        assert all("No API key" in r.error for r in results)
        http.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_member_failure_isolated(self):
        """One member's HTTP error does not affect another member."""

        async def post(url, json=None, headers=None, timeout=None):
            if "You are Aria" in json["messages"][0]["content"]:
                return _mock_httpx_response(500, {"error": "overloaded"})
            return _mock_httpx_response(200, {"content": [_tool_use("propose_twist", {"twist": "A map"})]})

        http = AsyncMock(spec=httpx.AsyncClient)
        http.post.side_effect = post
        executor = SidecarExecutor(_mock_settings(), http)

        results = await executor.execute(
            [_member("Aria", ["voice_concern"]), _member("Bex", ["propose_twist"])],
            CouncilToolsSettings(),
            _window(),
        )

        by_member = {r.member_name: r for r in results}
        assert by_member["Aria"].success is False
        assert "500" in by_member["Aria"].error
        assert by_member["Bex"].success is True
        assert by_member["Bex"].payload == "**Twist:** A map"

    @pytest.mark.asyncio
    async def test_timeout_becomes_error_result(self):
        http = AsyncMock(spec=httpx.AsyncClient)
        http.post.side_effect = httpx.ReadTimeout("timed out")
        executor = SidecarExecutor(_mock_settings(), http)
        results = await executor.execute([_member("Aria", ["propose_twist"])], CouncilToolsSettings(), _window())
        assert len(results) == 1
        assert results[0].success is False
        assert results[0].error == "timed out"

    @pytest.mark.asyncio
    async def test_members_without_known_tools_skipped(self):
        http = AsyncMock(spec=httpx.AsyncClient)
        executor = SidecarExecutor(_mock_settings(), http)
        results = await executor.execute(
            [_member("Aria", []), _member("Bex", ["not_a_tool"])], CouncilToolsSettings(), _window()
        )
        assert results == []
        http.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_member_persona_in_prompt(self):
        http = AsyncMock(spec=httpx.AsyncClient)
        http.post.return_value = _mock_httpx_response(200, {"content": []})
        executor = SidecarExecutor(_mock_settings(), http)
        member = _member("Aria", ["prose_guardian"], role="Editor", personality="Blunt and precise")
        await executor.execute([member], CouncilToolsSettings(allow_user_control=True), _window(), "### Context Enrichment ###")

        prompt = http.post.call_args.kwargs["json"]["messages"][0]["content"]
        assert "### Your Personality ###\nBlunt and precise" in prompt
        assert "Your role on the council is: Editor." in prompt
        assert "- **Prose Guardian**:" in prompt
        assert "### Context Enrichment ###" in prompt
        assert "including {{user}}" in prompt
        assert "{{user}}: We enter the cave." in prompt
