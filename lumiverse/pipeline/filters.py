"""Content filter policy -- which strippers apply at a given recency depth.

Depth is counted from the end of the window: the most recent message has
depth 0. A category strips a message iff it is enabled and
``depth >= keep_depth``; the most recent ``keep_depth`` messages keep their
markup.
"""

from __future__ import annotations

from collections.abc import Callable

from lumiverse.config import ContextFilters
from lumiverse.pipeline.stripping import (
    strip_collapsible_blocks,
    strip_domain_tags,
    strip_fonts,
    strip_markup,
)

Stripper = Callable[[str], str]


def depth_from_end(index: int, window_length: int) -> int:
    return window_length - 1 - index


def strippers_for_depth(filters: ContextFilters, depth: int) -> list[Stripper]:
    """Strippers that apply at ``depth``, in fixed application order.

    Fonts only strip when the markup filter itself is enabled.
    """
    markup = filters.markup
    selected: list[Stripper] = []
    if markup.enabled and depth >= markup.keep_depth:
        selected.append(strip_markup)
    if markup.enabled and markup.strip_fonts and depth >= markup.font_keep_depth:
        selected.append(strip_fonts)
    if filters.collapsible_blocks.enabled and depth >= filters.collapsible_blocks.keep_depth:
        selected.append(strip_collapsible_blocks)
    if filters.domain_tags.enabled and depth >= filters.domain_tags.keep_depth:
        selected.append(strip_domain_tags)
    return selected


def apply_filters(text: str, filters: ContextFilters, depth: int) -> str:
    for strip in strippers_for_depth(filters, depth):
        text = strip(text)
    return text
