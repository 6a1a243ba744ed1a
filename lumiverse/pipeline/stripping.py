"""Tag-stripping engine -- pure str -> str markup removal.

Four strippers, always applied by callers in this order so later stages
never see tags an earlier stage already removed:

1. strip_markup: inline formatting tags (inner text kept) plus ``div``
   containers (removed with their contents, except a hidden
   ``display:none`` container whose whole body is a fenced code block,
   which is unwrapped).
2. strip_fonts: ``<font>`` presentation tags, inner text kept.
3. strip_collapsible_blocks: ``<details>`` blocks removed with contents.
4. strip_domain_tags: pipeline-private tags, paired and self-closing.

Container passes resolve the innermost block first and repeat until the text
stops changing, capped at MAX_STRIP_ITERATIONS so adversarial nesting yields
a partial result instead of a hang.

All patterns are compiled once at import. Compiled ``re`` patterns carry no
scan position between calls; every ``sub`` starts at offset 0.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable

logger = logging.getLogger(__name__)

MAX_STRIP_ITERATIONS = 20

MARKUP_TAGS: tuple[str, ...] = (
    "span", "b", "i", "u", "em", "strong", "s", "strike",
    "sub", "sup", "mark", "small", "big",
)

DOMAIN_TAGS: tuple[str, ...] = (
    # summary markers
    "loom_sum",
    # conditional blocks
    "loom_if", "loom_else", "loom_endif",
    # out-of-character comment markers
    "lumia_ooc", "lumiaooc", "lumio_ooc", "lumioooc",
    # state / variable directives
    "loom_state", "loom_memory", "loom_context", "loom_inject",
    "loom_var", "loom_set", "loom_get",
    # ledger / record directives
    "loom_record", "loomrecord", "loom_ledger", "loomledger",
)

_FLAGS = re.IGNORECASE

_MARKUP_PATTERNS: dict[str, tuple[re.Pattern[str], re.Pattern[str]]] = {
    tag: (
        re.compile(rf"<{tag}(?:\s[^>]*)?>", _FLAGS),
        re.compile(rf"</{tag}>", _FLAGS),
    )
    for tag in MARKUP_TAGS
}

_DOMAIN_PATTERNS: dict[str, tuple[re.Pattern[str], re.Pattern[str]]] = {
    tag: (
        re.compile(rf"<{tag}(?:\s[^>]*)?>[\s\S]*?</{tag}>", _FLAGS),
        re.compile(rf"<{tag}(?:\s[^>]*)?/?>", _FLAGS),
    )
    for tag in DOMAIN_TAGS
}


def _innermost(tag: str) -> re.Pattern[str]:
    """Match a ``tag`` block whose body holds no further opening ``tag``.

    Group 1 is the attribute text of the opening tag, group 2 the body.
    """
    return re.compile(
        rf"<{tag}(\s[^>]*)?>((?:(?!<{tag}[\s/>])[\s\S])*?)</{tag}>",
        _FLAGS,
    )


_DIV_BLOCK = _innermost("div")
_DIV_CLOSE = re.compile(r"</div>", _FLAGS)
_DETAILS_BLOCK = _innermost("details")
_FENCED_CODE = re.compile(r"\A\s*```[\s\S]*```\s*\Z")
_HIDDEN_STYLE = re.compile(r"""style\s*=\s*["'][^"']*display\s*:\s*none""", _FLAGS)
_FONT_OPEN = re.compile(r"<font(?:\s[^>]*)?>", _FLAGS)
_FONT_CLOSE = re.compile(r"</font>", _FLAGS)


def _until_stable(text: str, step: Callable[[str], str], label: str) -> str:
    """Apply ``step`` until the text stops changing, at most MAX_STRIP_ITERATIONS times."""
    for _ in range(MAX_STRIP_ITERATIONS):
        updated = step(text)
        if updated == text:
            return updated
        text = updated
    logger.debug("%s stripping hit iteration cap (%d)", label, MAX_STRIP_ITERATIONS)
    return text


def _resolve_div(match: re.Match[str]) -> str:
    """Unwrap a hidden div holding only a code block; drop every other div."""
    attrs, body = match.group(1) or "", match.group(2)
    if _HIDDEN_STYLE.search(attrs) and _FENCED_CODE.match(body):
        return body
    return ""


def _strip_div_containers(text: str) -> str:
    result = _until_stable(text, lambda t: _DIV_BLOCK.sub(_resolve_div, t), "div")
    return _DIV_CLOSE.sub("", result)


def _strip_inline_tags(text: str) -> str:
    for open_re, close_re in _MARKUP_PATTERNS.values():
        text = open_re.sub("", text)
        text = close_re.sub("", text)
    return text


def strip_markup(text: str) -> str:
    """Remove inline formatting tags and UI-only div containers."""
    if not text:
        return text
    result = _strip_div_containers(text)
    return _until_stable(result, _strip_inline_tags, "markup")


def strip_fonts(text: str) -> str:
    """Remove <font> tags, keeping the text inside."""
    if not text:
        return text
    return _FONT_CLOSE.sub("", _FONT_OPEN.sub("", text))


def strip_collapsible_blocks(text: str) -> str:
    """Remove <details> blocks entirely (tag and contents)."""
    if not text:
        return text
    return _until_stable(text, lambda t: _DETAILS_BLOCK.sub("", t), "details")


def strip_domain_tags(text: str) -> str:
    """Remove pipeline-private tags: paired blocks with contents, then bare/self-closing tags."""
    if not text:
        return text
    for paired, bare in _DOMAIN_PATTERNS.values():
        text = paired.sub("", text)
        text = bare.sub("", text)
    return text
