"""Generation-cycle tracker -- root vs nested invocation state machine.

When the model calls an inline tool mid-generation, the host re-runs the
whole generation, which re-enters the interceptor. Those nested passes
must not clear tool results or re-run sidecar tools.

States::

    IDLE --begin_invocation()--> ROOT_ACTIVE --begin_invocation()--> NESTED_ACTIVE
      ^                                |                                  |
      +------------- mark_end() -------+----------------------------------+

Only host terminal signals (generation ended / stopped, message rendered,
swipe) call mark_end(). There is no time-based expiry: a missed terminal
signal leaves the cycle active until the next one arrives. Such a stuck
cycle is reported (WARNING with the active duration), never auto-cleared.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from enum import StrEnum

logger = logging.getLogger(__name__)

CycleObserver = Callable[[], None]


class CycleState(StrEnum):
    IDLE = "idle"
    ROOT_ACTIVE = "root_active"
    NESTED_ACTIVE = "nested_active"


class GenerationCycle:
    """Tracks whether a root generation cycle is in progress."""

    def __init__(
        self,
        stale_warning_seconds: float = 600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._state = CycleState.IDLE
        self._started_at: float | None = None
        self._stale_warning_seconds = stale_warning_seconds
        self._clock = clock
        self._start_observers: list[CycleObserver] = []
        self._end_observers: list[CycleObserver] = []

    @property
    def state(self) -> CycleState:
        return self._state

    def is_active(self) -> bool:
        return self._state is not CycleState.IDLE

    def active_seconds(self) -> float:
        """Seconds since the current root cycle started (0.0 when idle)."""
        if self._started_at is None:
            return 0.0
        return self._clock() - self._started_at

    def on_start(self, observer: CycleObserver) -> None:
        self._start_observers.append(observer)

    def on_end(self, observer: CycleObserver) -> None:
        self._end_observers.append(observer)

    def mark_start(self) -> bool:
        """IDLE -> ROOT_ACTIVE. Returns False (no-op) if a cycle is already active."""
        if self.is_active():
            return False
        self._state = CycleState.ROOT_ACTIVE
        self._started_at = self._clock()
        self._notify(self._start_observers, "start")
        return True

    def mark_end(self) -> None:
        """Any state -> IDLE. Safe to call repeatedly."""
        was_active = self.is_active()
        self._state = CycleState.IDLE
        self._started_at = None
        if was_active:
            logger.debug("Generation cycle ended")
        self._notify(self._end_observers, "end")

    def begin_invocation(self, nested: bool | None = None) -> bool:
        """Enter the cycle for one interceptor call. Returns True for a root invocation.

        ``nested=None`` infers from the current state. ``nested=True`` is the
        explicit signal from a tool-call path and always yields nested
        semantics. ``nested=False`` asserts a root call; if a cycle is still
        active it cannot become a second root and is treated as nested.
        """
        if nested is True:
            if not self.is_active():
                logger.warning("Nested invocation without an active root cycle")
            self._state = CycleState.NESTED_ACTIVE
            return False

        if self.mark_start():
            return True

        self._state = CycleState.NESTED_ACTIVE
        active_for = self.active_seconds()
        if nested is False or active_for > self._stale_warning_seconds:
            logger.warning(
                "Root invocation observed an active cycle (active for %.0fs); "
                "treating as nested. A terminal host event may have been missed.",
                active_for,
            )
        else:
            logger.info("Recursive interceptor call detected, preserving tool results")
        return False

    @staticmethod
    def _notify(observers: list[CycleObserver], label: str) -> None:
        for observer in observers:
            try:
                observer()
            except Exception:
                logger.exception("Cycle %s observer %r failed", label, observer)
