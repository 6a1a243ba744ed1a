"""Sovereign Hand -- capture the latest user turn into a side channel.

The captured text feeds prompt macros elsewhere; optionally the turn itself
is pulled out of the window so the model only sees it through the macro.
"""

from __future__ import annotations

import logging
from typing import Any

from lumiverse.pipeline.schemas import Message, SovereignCapture

logger = logging.getLogger(__name__)


def find_last_user_index(window: list[Any]) -> int | None:
    for index in range(len(window) - 1, -1, -1):
        if Message.wrap(window[index]).is_user:
            return index
    return None


def extract(window: list[Any], capture: SovereignCapture, exclude_from_window: bool) -> int | None:
    """Copy the last user turn into ``capture``; optionally remove it from ``window``.

    With no user turn (continuation / narration-only chat) the capture is
    cleared. Returns the index of the captured turn, or None.
    """
    index = find_last_user_index(window)
    if index is None:
        capture.clear()
        logger.info("Sovereign Hand: no user message found (continuation mode)")
        return None

    capture.set(Message.wrap(window[index]).text)
    logger.info("Sovereign Hand: captured last user message at index %d", index)

    if exclude_from_window:
        del window[index]
        logger.info("Sovereign Hand: removed last user message from context array")
    return index
