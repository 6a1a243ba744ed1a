"""Integration tests for REST API endpoints.

Uses httpx AsyncClient with ASGITransport for async HTTP testing.
Components are the real ones from create_components(); council is disabled
unless a test enables it, so no provider calls are made.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from lumiverse.api.rest import create_app
from lumiverse.config import Settings, SettingsStore
from lumiverse.main import create_components, shutdown_components

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def components(tmp_path):
    settings = Settings(_env_file=None, settings_file=str(tmp_path / "settings.json"))
    comps = create_components(settings, SettingsStore(path=tmp_path / "settings.json"))
    yield comps
    await shutdown_components(comps)


@pytest_asyncio.fixture
async def client(components):
    app = create_app(
        pipeline=components["pipeline"],
        store=components["store"],
        bus=components["bus"],
        registry=components["registry"],
        capability=components["capability"],
    )
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def _inline_council() -> dict:
    return {
        "councilMode": True,
        "councilTools": {"enabled": True, "mode": "inline"},
        "councilMembers": [{"id": "aria", "itemName": "Aria", "tools": ["propose_twist"]}],
    }


# ---------------------------------------------------------------------------
# POST /intercept
# ---------------------------------------------------------------------------


class TestIntercept:
    @pytest.mark.asyncio
    async def test_intercept_normalizes_window(self, client):
        resp = await client.post("/intercept", json={
            "chat": [{"is_user": False, "mes": "a\n\n\n\nb"}],
            "contextSize": 4096,
            "abort": False,
            "type": "normal",
        })
        assert resp.status_code == 200
        body = resp.json()
        assert body["chat"] == [{"is_user": False, "mes": "a\n\nb"}]
        assert body["contextSize"] == 4096
        assert body["abort"] is False

    @pytest.mark.asyncio
    async def test_intercept_applies_truncation_setting(self, client):
        await client.put("/settings", json={"messageTruncation": {"enabled": True, "keepCount": 2}})
        chat = [{"is_user": i % 2 == 0, "mes": f"m{i}"} for i in range(6)]
        resp = await client.post("/intercept", json={"chat": chat})
        assert [m["mes"] for m in resp.json()["chat"]] == ["m4", "m5"]

    @pytest.mark.asyncio
    async def test_missing_chat_rejected(self, client):
        resp = await client.post("/intercept", json={"contextSize": 10})
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_invalid_json_rejected(self, client):
        resp = await client.post("/intercept", content=b"not json", headers={"content-type": "application/json"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid JSON body"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class TestSettingsEndpoints:
    @pytest.mark.asyncio
    async def test_get_defaults_in_camel_case(self, client):
        resp = await client.get("/settings")
        assert resp.status_code == 200
        body = resp.json()
        assert body["messageTruncation"] == {"enabled": False, "keepCount": 50}
        assert body["councilTools"]["mode"] == "sidecar"

    @pytest.mark.asyncio
    async def test_put_replaces_and_persists(self, client, tmp_path):
        resp = await client.put("/settings", json={"sovereignHand": {"enabled": True}})
        assert resp.status_code == 200
        assert resp.json()["sovereignHand"]["enabled"] is True
        assert (tmp_path / "settings.json").exists()

    @pytest.mark.asyncio
    async def test_put_invalid_keeps_previous(self, client):
        resp = await client.put("/settings", json={"councilTools": {"mode": "telepathy"}})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid settings"
        current = (await client.get("/settings")).json()
        assert current["councilTools"]["mode"] == "sidecar"


# ---------------------------------------------------------------------------
# Capture / council / tools
# ---------------------------------------------------------------------------


class TestCaptureAndCouncil:
    @pytest.mark.asyncio
    async def test_capture_after_sovereign_intercept(self, client):
        await client.put("/settings", json={"sovereignHand": {"enabled": True}})
        await client.post("/intercept", json={"chat": [
            {"is_user": False, "mes": "Welcome."},
            {"is_user": True, "mes": "Open the door"},
        ]})
        resp = await client.get("/capture")
        assert resp.json() == {"text": "Open the door", "captured": True}

    @pytest.mark.asyncio
    async def test_council_empty(self, client):
        resp = await client.get("/council")
        body = resp.json()
        assert body["results"] == []
        assert "No tools were executed" in body["deliberation"]

    @pytest.mark.asyncio
    async def test_inline_tools_listed_after_settings_change(self, client):
        assert (await client.get("/tools")).json() == {"tools": []}
        await client.put("/settings", json=_inline_council())
        tools = (await client.get("/tools")).json()["tools"]
        assert [t["name"] for t in tools] == ["lumiverse_council_aria_propose_twist"]

    @pytest.mark.asyncio
    async def test_inline_tool_call_recorded(self, client):
        await client.put("/settings", json=_inline_council())
        resp = await client.post("/tools/lumiverse_council_aria_propose_twist", json={"twist": "A storm"})
        body = resp.json()
        assert body["is_error"] is False
        assert "**Twist:** A storm" in body["result"]

        council = (await client.get("/council")).json()
        assert council["results"][0]["member_name"] == "Aria"
        assert "### **Aria** says:" in council["deliberation"]

    @pytest.mark.asyncio
    async def test_unknown_tool(self, client):
        resp = await client.post("/tools/nope", json={})
        assert resp.json()["is_error"] is True


# ---------------------------------------------------------------------------
# Events / health
# ---------------------------------------------------------------------------


class TestEventsAndHealth:
    @pytest.mark.asyncio
    async def test_generation_ended_closes_cycle(self, client):
        await client.post("/intercept", json={"chat": []})
        health = (await client.get("/health")).json()
        assert health["cycle"]["state"] == "root_active"
        assert health["cycle"]["active"] is True

        resp = await client.post("/events", json={"type": "generation_ended"})
        assert resp.status_code == 200
        assert resp.json() == {"accepted": "generation_ended", "cycle": "idle"}

    @pytest.mark.asyncio
    async def test_unknown_event_rejected(self, client):
        resp = await client.post("/events", json={"type": "app_ready"})
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_event_type_rejected(self, client):
        resp = await client.post("/events", json={"data": {}})
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["cycle"]["state"] == "idle"
        assert body["event_bus"] is True
        assert body["tool_results"] == 0
