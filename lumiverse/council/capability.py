"""Council capability gate.

A small object passed to whatever needs to know whether council tools are
live. Every check reads the current settings snapshot, so toggling council
mode or reassigning tools takes effect on the next call without
re-registration.
"""

from __future__ import annotations

from lumiverse.config import CouncilMember, CouncilToolsSettings
from lumiverse.pipeline.session import SettingsSource


class CouncilCapability:
    def __init__(self, settings_source: SettingsSource) -> None:
        self._settings_source = settings_source

    def tools_settings(self) -> CouncilToolsSettings:
        return self._settings_source().council_tools

    def members(self) -> list[CouncilMember]:
        return list(self._settings_source().council_members)

    def enabled(self) -> bool:
        """Council mode on, council tools on, and at least one member."""
        settings = self._settings_source()
        return bool(
            settings.council_mode
            and settings.council_tools.enabled
            and settings.council_members
        )

    def mode(self) -> str:
        return self.tools_settings().mode or "sidecar"

    def sidecar_active(self) -> bool:
        return self.enabled() and self.mode() == "sidecar"

    def inline_active(self) -> bool:
        return self.enabled() and self.mode() == "inline"

    def member_has_tool(self, member_id: str, tool_name: str) -> bool:
        for member in self.members():
            if member.member_id == member_id:
                return tool_name in member.tools
        return False
