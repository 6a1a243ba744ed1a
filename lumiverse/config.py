"""Settings via pydantic-settings with LUMIVERSE_ env prefix.

Two layers:

- ``Settings``: process configuration (server, logging, provider keys,
  timeouts). Read from the environment / ``.env``.
- ``PipelineSettings``: the per-user snapshot the host owns (filters,
  truncation, sovereign hand, council). Parsed from host JSON, which uses
  camelCase keys and, for the filter categories, older names
  (``htmlTags``, ``detailsBlocks``, ``loomItems``).

Provider keys use validation_alias to read the same unprefixed env vars the
provider SDKs use, so one .env drives every tool.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LUMIVERSE_", env_file=".env")

    # Runtime
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "info"
    settings_file: str = "lumiverse_settings.json"
    event_bus_enabled: bool = True

    # Provider credentials -- unprefixed aliases match the provider SDK env vars
    anthropic_api_key: str = Field("", validation_alias="ANTHROPIC_API_KEY")
    openai_api_key: str = Field("", validation_alias="OPENAI_API_KEY")
    openrouter_api_key: str = Field("", validation_alias="OPENROUTER_API_KEY")

    # Sidecar endpoints
    anthropic_base_url: str = "https://api.anthropic.com"
    openai_base_url: str = "https://api.openai.com"
    openrouter_base_url: str = "https://openrouter.ai/api"
    sidecar_timeout_connect: int = 10  # seconds
    sidecar_timeout_read: int = 120  # seconds

    # Cycle monitoring: warn when a cycle has been active this long and a
    # root-looking call is treated as nested. Never auto-clears the flag.
    cycle_stale_warning_seconds: int = 600


# ---------------------------------------------------------------------------
# Per-user pipeline settings (host snapshot)
# ---------------------------------------------------------------------------


class _HostModel(BaseModel):
    """Base for host JSON: camelCase keys, snake_case accepted too."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SovereignHandSettings(_HostModel):
    enabled: bool = False
    exclude_last_message: bool = True
    include_message_in_prompt: bool = True


class MarkupFilter(_HostModel):
    """Inline markup filter, with the font sub-filter riding on it."""

    enabled: bool = False
    keep_depth: int = Field(3, ge=0)
    strip_fonts: bool = False
    font_keep_depth: int = Field(3, ge=0)


class BlockFilter(_HostModel):
    enabled: bool = False
    keep_depth: int = Field(3, ge=0)


class DomainTagFilter(BlockFilter):
    keep_depth: int = Field(5, ge=0)


class ContextFilters(_HostModel):
    markup: MarkupFilter = Field(
        default_factory=MarkupFilter,
        validation_alias=AliasChoices("markup", "htmlTags", "html_tags"),
    )
    collapsible_blocks: BlockFilter = Field(
        default_factory=BlockFilter,
        validation_alias=AliasChoices("collapsibleBlocks", "collapsible_blocks", "detailsBlocks"),
    )
    domain_tags: DomainTagFilter = Field(
        default_factory=DomainTagFilter,
        validation_alias=AliasChoices("domainTags", "domain_tags", "loomItems"),
    )

    @property
    def any_enabled(self) -> bool:
        return (
            self.markup.enabled
            or self.markup.strip_fonts
            or self.collapsible_blocks.enabled
            or self.domain_tags.enabled
        )


class MessageTruncation(_HostModel):
    enabled: bool = False
    keep_count: int = 50


class CouncilLLM(_HostModel):
    """Dedicated sidecar model. ``api_key``/``endpoint`` only for provider=custom."""

    provider: Literal["anthropic", "openai", "openrouter", "custom"] = "anthropic"
    model: str = "claude-sonnet-4-5-20250514"
    endpoint: str = ""
    api_key: str = ""
    max_tokens: int = 4096
    temperature: float = 0.7


class CouncilToolsSettings(_HostModel):
    enabled: bool = False
    mode: Literal["sidecar", "inline"] = "sidecar"
    sidecar_context_window: int = 25
    allow_user_control: bool = False
    include_user_persona: bool = False
    include_character_info: bool = False
    include_world_info: bool = False
    llm: CouncilLLM = Field(default_factory=CouncilLLM)


class CouncilMember(_HostModel):
    """A council member. Persona fields are optional prose blocks."""

    id: str = ""
    pack_name: str = ""
    item_name: str = ""
    display_name: str = ""
    role: str = ""
    definition: str = ""
    personality: str = ""
    behavior: str = ""
    tools: list[str] = Field(default_factory=list)

    @property
    def name(self) -> str:
        return self.display_name or self.item_name or "Unknown"

    @property
    def member_id(self) -> str:
        return self.id or f"{self.pack_name}_{self.item_name}"


class PipelineSettings(_HostModel):
    sovereign_hand: SovereignHandSettings = Field(default_factory=SovereignHandSettings)
    context_filters: ContextFilters = Field(default_factory=ContextFilters)
    message_truncation: MessageTruncation = Field(default_factory=MessageTruncation)
    council_mode: bool = False
    council_members: list[CouncilMember] = Field(default_factory=list)
    council_tools: CouncilToolsSettings = Field(default_factory=CouncilToolsSettings)


def load_pipeline_settings(path: str | Path) -> PipelineSettings:
    """Load a settings snapshot from JSON, falling back to defaults if absent.

    Invalid JSON content raises (json.JSONDecodeError / ValidationError);
    a missing file is not an error.
    """
    p = Path(path)
    if not p.exists():
        logger.info("No pipeline settings at %s, using defaults", p)
        return PipelineSettings()
    data = json.loads(p.read_text(encoding="utf-8"))
    return PipelineSettings.model_validate(data)


class SettingsStore:
    """Holds the current PipelineSettings snapshot; callable as a settings source.

    ``replace`` validates first, so a bad payload leaves the previous
    snapshot in place. When a path is given the new snapshot is written back.
    """

    def __init__(self, initial: PipelineSettings | None = None, path: str | Path | None = None):
        self._current = initial or PipelineSettings()
        self._path = Path(path) if path else None

    @classmethod
    def from_file(cls, path: str | Path) -> SettingsStore:
        return cls(load_pipeline_settings(path), path)

    def __call__(self) -> PipelineSettings:
        return self._current

    def replace(self, data: dict) -> PipelineSettings:
        settings = PipelineSettings.model_validate(data)
        self._current = settings
        if self._path is not None:
            self._path.write_text(settings.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
            logger.info("Pipeline settings saved to %s", self._path)
        return settings
