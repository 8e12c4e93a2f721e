"""
Researcher Registry
===================
Set of researchers verified by the authority, plus the authority-gated
setters for the rate-limit window.
"""

from typing import Optional

import structlog

from authorization.persistence import LedgerDB
from authorization.settings import (
    ACCESS_LIMIT_PER_CYCLE,
    CYCLE_DURATION,
    AuthorizationSettings,
)
from core.clock import HeightSource

logger = structlog.get_logger(__name__)


class ResearcherRegistry:
    """Verified-researcher set managed by the single authority."""

    def __init__(
        self,
        db: LedgerDB,
        settings: AuthorizationSettings,
        clock: Optional[HeightSource] = None,
    ):
        self._db = db
        self.settings = settings
        self._clock = clock

    def verify_researcher(self, caller: str, researcher: str) -> bool:
        """
        Mark ``researcher`` as verified. Idempotent.

        Args:
            caller: Identity making the call; must be the authority.
            researcher: Identity to verify.

        Returns:
            True once the researcher is verified.

        Raises:
            NotAuthorizedError: If ``caller`` is not the authority.
        """
        with self._db.transaction():
            self.settings.require_authority(caller, "verify researchers")
            height = self._clock.current_height() if self._clock else None
            newly_added = self._db.add_verified_researcher(researcher, height)

        logger.info(
            "Researcher verified",
            researcher=researcher,
            already_verified=not newly_added,
        )
        return True

    def is_verified(self, researcher: str) -> bool:
        return self._db.is_verified(researcher)

    def set_access_limit_per_cycle(self, caller: str, limit: int) -> bool:
        """
        Replace the number of accesses admitted per researcher per cycle.

        Raises:
            NotAuthorizedError: If ``caller`` is not the authority.
            InvalidParameterError: If ``limit`` is not strictly positive.
        """
        self.settings.update_tunable(caller, ACCESS_LIMIT_PER_CYCLE, limit)
        return True

    def set_cycle_duration(self, caller: str, duration: int) -> bool:
        """
        Replace the length of a rate-limit cycle, in heights.

        Raises:
            NotAuthorizedError: If ``caller`` is not the authority.
            InvalidParameterError: If ``duration`` is not strictly positive.
        """
        self.settings.update_tunable(caller, CYCLE_DURATION, duration)
        return True

    @property
    def verified_count(self) -> int:
        return self._db.count_verified_researchers()
