"""Tests for Settings and PipelineSettings parsing."""

import json

import pytest
from pydantic import ValidationError

from lumiverse.config import (
    CouncilMember,
    PipelineSettings,
    Settings,
    SettingsStore,
    load_pipeline_settings,
)


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("LUMIVERSE_PORT", raising=False)
        s = Settings(_env_file=None)
        assert s.port == 8000
        assert s.settings_file == "lumiverse_settings.json"
        assert s.cycle_stale_warning_seconds == 600

    def test_prefixed_env_and_unprefixed_keys(self, monkeypatch):
        monkeypatch.setenv("LUMIVERSE_PORT", "9100")
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-env")
        s = Settings(_env_file=None)
        assert s.port == 9100
        assert s.anthropic_api_key == "sk-ant-env"


class TestPipelineSettings:
    def test_defaults_all_disabled(self):
        s = PipelineSettings()
        assert not s.sovereign_hand.enabled
        assert not s.message_truncation.enabled
        assert s.message_truncation.keep_count == 50
        assert not s.context_filters.any_enabled
        assert s.context_filters.markup.keep_depth == 3
        assert s.context_filters.domain_tags.keep_depth == 5
        assert s.council_tools.mode == "sidecar"
        assert s.council_tools.sidecar_context_window == 25

    def test_camel_case_host_json(self):
        s = PipelineSettings.model_validate({
            "sovereignHand": {"enabled": True, "excludeLastMessage": False},
            "messageTruncation": {"enabled": True, "keepCount": 20},
            "councilMode": True,
            "councilTools": {"enabled": True, "mode": "inline", "llm": {"provider": "openrouter", "maxTokens": 512}},
        })
        assert s.sovereign_hand.exclude_last_message is False
        assert s.message_truncation.keep_count == 20
        assert s.council_tools.mode == "inline"
        assert s.council_tools.llm.max_tokens == 512

    def test_negative_keep_depth_rejected(self):
        with pytest.raises(ValidationError):
            PipelineSettings.model_validate({"contextFilters": {"markup": {"keepDepth": -1}}})

    def test_unknown_mode_rejected(self):
        with pytest.raises(ValidationError):
            PipelineSettings.model_validate({"councilTools": {"mode": "telepathy"}})

    def test_member_identity(self):
        assert CouncilMember(pack_name="Pack", item_name="Aria").member_id == "Pack_Aria"
        assert CouncilMember(id="m1", display_name="Lady Aria", item_name="Aria").name == "Lady Aria"
        assert CouncilMember().name == "Unknown"


class TestSettingsFile:
    def test_missing_file_gives_defaults(self, tmp_path):
        s = load_pipeline_settings(tmp_path / "absent.json")
        assert s == PipelineSettings()

    def test_store_round_trip(self, tmp_path):
        path = tmp_path / "settings.json"
        store = SettingsStore(path=path)
        store.replace({"messageTruncation": {"enabled": True, "keepCount": 12}})
        assert json.loads(path.read_text())["messageTruncation"]["keepCount"] == 12

        reloaded = SettingsStore.from_file(path)
        assert reloaded().message_truncation.keep_count == 12

    def test_invalid_replace_keeps_previous(self):
        store = SettingsStore()
        with pytest.raises(ValidationError):
            store.replace({"messageTruncation": {"keepCount": "many"}})
        assert store().message_truncation.keep_count == 50
