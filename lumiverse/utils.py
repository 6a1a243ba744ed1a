"""Shared utility functions for Lumiverse."""

from __future__ import annotations

import re

_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_BLANK_LINE_SANDWICH = re.compile(r"\n[ \t]*\n[ \t]*\n")


def collapse_blank_lines(text: str) -> str:
    """Collapse runs of blank lines left behind by empty substitutions.

    3+ consecutive newlines become exactly two (one paragraph break), then
    any whitespace-only line sitting between two other line breaks is
    collapsed the same way.
    """
    if not text:
        return text
    result = _EXCESS_NEWLINES.sub("\n\n", text)
    return _BLANK_LINE_SANDWICH.sub("\n\n", result)
