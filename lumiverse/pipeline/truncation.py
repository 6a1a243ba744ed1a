"""Message truncation -- keep only the last N entries of the window."""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)


def truncate(window: list[Any], keep_count: int) -> int:
    """Drop the oldest entries in place so at most ``keep_count`` remain.

    No-op when ``keep_count <= 0`` or the window already fits. Returns the
    number of entries removed; they are gone for good as far as this
    window is concerned (the host keeps durable storage).
    """
    if keep_count <= 0 or len(window) <= keep_count:
        return 0
    removed = len(window) - keep_count
    del window[:removed]
    logger.info("Message truncation: removed %d older messages, keeping last %d", removed, keep_count)
    return removed
