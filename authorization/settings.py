"""
Authorization Settings
======================
The single authority identity and the process-wide tunables
(consent ceiling, rate-limit window), persisted in the ledger's
``settings`` table.

One ``AuthorizationSettings`` handle is shared by the consent ledger,
the researcher registry and the rate limiter. Values already stored in
the ledger take precedence over the defaults supplied at construction.
"""

from typing import Any, Dict, Optional

import structlog

from authorization.persistence import LedgerDB
from core.exceptions import NotAuthorizedError
from core.validation import NULL_IDENTITY, require_identity, require_positive

logger = structlog.get_logger(__name__)

AUTHORITY = "authority"
MAX_CONSENTS = "max_consents"
ACCESS_LIMIT_PER_CYCLE = "access_limit_per_cycle"
CYCLE_DURATION = "cycle_duration"
CYCLE_START_HEIGHT = "cycle_start_height"

DEFAULT_TUNABLES: Dict[str, int] = {
    MAX_CONSENTS: 10000,
    ACCESS_LIMIT_PER_CYCLE: 10,
    CYCLE_DURATION: 1000,
    CYCLE_START_HEIGHT: 0,
}


class AuthorizationSettings:
    """Authority identity and rate-limit / consent tunables."""

    def __init__(
        self,
        db: LedgerDB,
        authority: Optional[str] = None,
        null_identity: str = NULL_IDENTITY,
        **tunables: int,
    ):
        """
        Initialize settings and seed missing values.

        Args:
            db: Ledger database.
            authority: Authority fixed at deployment. Ignored (with a
                warning) if a different authority is already stored.
            null_identity: Reserved identity rejected as a principal.
            **tunables: Overrides for DEFAULT_TUNABLES keys.
        """
        unknown = set(tunables) - set(DEFAULT_TUNABLES)
        if unknown:
            raise TypeError(f"Unknown tunables: {sorted(unknown)}")

        self._db = db
        self.null_identity = null_identity

        seeds: Dict[str, Any] = {**DEFAULT_TUNABLES, **tunables}
        with self._db.transaction():
            for key, value in seeds.items():
                if key == CYCLE_START_HEIGHT:
                    if not isinstance(value, int) or value < 0:
                        raise ValueError(f"{key} must be a non-negative integer")
                else:
                    require_positive(value, key)
                self._db.insert_setting_if_absent(key, value)

            if authority is not None:
                require_identity(authority, self.null_identity)
                if not self._db.insert_setting_if_absent(AUTHORITY, authority):
                    stored = self._db.get_setting(AUTHORITY)
                    if stored != authority:
                        logger.warning(
                            "Configured authority ignored, ledger already has one",
                            configured=authority,
                            stored=stored,
                        )

    # -------------------------------------------------------------------------
    # Authority
    # -------------------------------------------------------------------------

    @property
    def authority(self) -> Optional[str]:
        return self._db.get_setting(AUTHORITY)

    def set_authority(self, identity: str) -> None:
        """
        Fix the authority identity. Can only happen once.

        Raises:
            InvalidResearcherError: If ``identity`` is the null identity.
            NotAuthorizedError: If an authority is already set.
        """
        require_identity(identity, self.null_identity)
        with self._db.transaction():
            if not self._db.insert_setting_if_absent(AUTHORITY, identity):
                raise NotAuthorizedError(identity, "set the authority")
        logger.info("Authority set", authority=identity)

    def is_authority(self, caller: Optional[str]) -> bool:
        authority = self.authority
        return authority is not None and caller == authority

    def require_authority(self, caller: Optional[str], operation: str) -> None:
        """Raise NotAuthorizedError unless ``caller`` is the authority."""
        if not self.is_authority(caller):
            logger.warning("Authority check failed", caller=caller, operation=operation)
            raise NotAuthorizedError(caller, operation)

    # -------------------------------------------------------------------------
    # Tunables
    # -------------------------------------------------------------------------

    def _get_int(self, key: str) -> int:
        value = self._db.get_setting(key)
        return DEFAULT_TUNABLES[key] if value is None else int(value)

    @property
    def max_consents(self) -> int:
        return self._get_int(MAX_CONSENTS)

    @property
    def access_limit_per_cycle(self) -> int:
        return self._get_int(ACCESS_LIMIT_PER_CYCLE)

    @property
    def cycle_duration(self) -> int:
        return self._get_int(CYCLE_DURATION)

    @property
    def cycle_start_height(self) -> int:
        return self._get_int(CYCLE_START_HEIGHT)

    def update_tunable(self, caller: str, key: str, value: int) -> None:
        """
        Replace a positive tunable on behalf of the authority.

        Raises:
            NotAuthorizedError: If ``caller`` is not the authority.
            InvalidParameterError: If ``value`` is not a positive integer.
        """
        if key not in (MAX_CONSENTS, ACCESS_LIMIT_PER_CYCLE, CYCLE_DURATION):
            raise KeyError(key)
        with self._db.transaction():
            self.require_authority(caller, f"set {key}")
            require_positive(value, key)
            self._db.put_setting(key, value)
        logger.info("Tunable updated", key=key, value=value, caller=caller)

    def restamp_cycle_start(self, height: int) -> None:
        """Move the cycle start. Only the rate limiter calls this."""
        self._db.put_setting(CYCLE_START_HEIGHT, height)

    def snapshot(self) -> Dict[str, Any]:
        """Current authority and tunables."""
        return {
            AUTHORITY: self.authority,
            MAX_CONSENTS: self.max_consents,
            ACCESS_LIMIT_PER_CYCLE: self.access_limit_per_cycle,
            CYCLE_DURATION: self.cycle_duration,
            CYCLE_START_HEIGHT: self.cycle_start_height,
        }
