"""Data types shared by the context pipeline and the council.

Host messages arrive as plain dicts owned by the caller. ``Message`` is a thin
view over one of them: it reads and writes the caller's dict, so every edit
made through it is visible to the host when the interceptor returns.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import BaseModel

# Order matters: filtering visits "content" before "mes".
TEXT_FIELDS: tuple[str, ...] = ("content", "mes")


class InvocationType(StrEnum):
    NORMAL = "normal"
    SWIPE = "swipe"
    REGENERATE = "regenerate"
    CONTINUE = "continue"
    QUIET = "quiet"
    IMPERSONATE = "impersonate"


# Invocation types that count as a user-visible turn for council execution.
# A missing type is treated as normal.
COUNCIL_INVOCATION_TYPES = frozenset({
    InvocationType.NORMAL,
    InvocationType.SWIPE,
    InvocationType.REGENERATE,
})


class Message:
    """Canonical view over a host message dict.

    Handles the two legacy-compatible text fields (``mes`` and ``content``).
    Entries that are not dicts behave as messages with no fields.
    """

    __slots__ = ("raw",)

    def __init__(self, raw: Any) -> None:
        self.raw: dict[str, Any] = raw if isinstance(raw, dict) else {}

    @classmethod
    def wrap(cls, raw: Any) -> Message:
        return cls(raw)

    @property
    def is_user(self) -> bool:
        return bool(self.raw.get("is_user"))

    @property
    def name(self) -> str | None:
        return self.raw.get("name")

    @property
    def text(self) -> str:
        """Primary text: ``mes`` first, then ``content``, else empty."""
        for key in ("mes", "content"):
            value = self.raw.get(key)
            if isinstance(value, str) and value:
                return value
        return ""

    def text_fields(self) -> list[tuple[str, str]]:
        """(field, value) for every text field holding a string."""
        return [(f, self.raw[f]) for f in TEXT_FIELDS if isinstance(self.raw.get(f), str)]

    def set_field(self, name: str, value: str) -> None:
        self.raw[name] = value


@dataclass
class SovereignCapture:
    """Side-channel copy of the most recent user turn."""

    text: str = ""
    captured: bool = False

    def set(self, text: str) -> None:
        self.text = text
        self.captured = True

    def clear(self) -> None:
        self.text = ""
        self.captured = False


class ToolResult(BaseModel):
    """One council tool contribution."""

    tool_name: str
    payload: str = ""
    produced_during_cycle: bool = True
    member_name: str = ""
    display_name: str = ""
    success: bool = True
    error: str | None = None


@dataclass
class InterceptResult:
    """What the interceptor hands back to the host."""

    window: list[Any]
    size_hint: int
    abort: bool
    tool_results: list[ToolResult] = field(default_factory=list)
