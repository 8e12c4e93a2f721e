"""
Rate Limiter
============
Per-researcher access accounting over height-derived cycles.

The cycle index is ``(height - cycle_start_height) // cycle_duration``
(0 while ``height`` is below the start). Before every access check,
``record_cycle_rollover`` re-stamps the start to the present height,
but only while the index is still 0: once a later cycle has been
entered the start stays put and the index keeps growing.

Admission is inclusive (``count <= limit``), so a researcher gets
``limit + 1`` accesses per cycle.
"""

from typing import Optional

import structlog

from authorization.persistence import LedgerDB
from authorization.settings import AuthorizationSettings
from core.clock import HeightSource

logger = structlog.get_logger(__name__)


def compute_cycle(height: int, cycle_start_height: int, cycle_duration: int) -> int:
    """Cycle index for ``height`` given the stored window start and duration."""
    if height < cycle_start_height:
        return 0
    return (height - cycle_start_height) // cycle_duration


class RateLimiter:
    """Derives the current cycle and owns per-(researcher, cycle) counts."""

    def __init__(
        self,
        db: LedgerDB,
        settings: AuthorizationSettings,
        clock: HeightSource,
    ):
        self._db = db
        self.settings = settings
        self._clock = clock

    def current_cycle(self, height: Optional[int] = None) -> int:
        if height is None:
            height = self._clock.current_height()
        return compute_cycle(
            height,
            self.settings.cycle_start_height,
            self.settings.cycle_duration,
        )

    def count_for(self, researcher: str) -> int:
        """Accesses granted to ``researcher`` in the current cycle."""
        return self._db.get_access_count(researcher, self.current_cycle())

    def record_cycle_rollover(self) -> int:
        """
        Re-stamp the cycle start while still inside cycle 0.

        Must run inside the caller's transaction so that a rejected
        request leaves the start untouched.

        Returns:
            The cycle index after the rollover step.
        """
        height = self._clock.current_height()
        start = self.settings.cycle_start_height
        cycle = compute_cycle(height, start, self.settings.cycle_duration)
        if cycle == 0 and height >= start and height != start:
            self.settings.restamp_cycle_start(height)
            logger.debug("Cycle start re-stamped", previous=start, height=height)
        return self.current_cycle(height)

    def admit(self, researcher: str) -> bool:
        """True while the researcher's count is within the inclusive limit."""
        return self.count_for(researcher) <= self.settings.access_limit_per_cycle

    def increment(self, researcher: str, cycle: int) -> int:
        """Add one access to (researcher, cycle) and return the new count."""
        count = self._db.get_access_count(researcher, cycle) + 1
        self._db.set_access_count(researcher, cycle, count)
        return count
