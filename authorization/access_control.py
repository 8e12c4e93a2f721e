"""
Access Orchestrator
===================
Entry point for researcher access requests.

``request_access`` makes one atomic authorization decision out of
researcher verification, rate-limit admission, access-type validation,
data-registry state and patient consent. Checks run in that order and
stop at the first failure; only a request that passes all of them is
logged and counted.
"""

from typing import Any, Dict, List, Optional, Protocol, Union

import structlog

from authorization.data_registry import DataRegistry
from authorization.event_journal import EventJournal
from authorization.persistence import ACCESS_COUNTER, LedgerDB
from authorization.rate_limiter import RateLimiter
from authorization.researcher_registry import ResearcherRegistry
from core.clock import HeightSource
from core.exceptions import (
    AccessLimitExceededError,
    ConsentCheckFailedError,
    ConsentRequiredError,
    DataInactiveError,
    DataNotFoundError,
    ResearcherNotVerifiedError,
)
from core.models import AccessGranted, AccessLogEntry, AccessType, DataRecord
from core.validation import parse_access_type

logger = structlog.get_logger(__name__)


class ConsentChecker(Protocol):
    """Anything that can tell whether a patient's record carries a live grant."""

    def check_consent(self, patient: str, data_id: int, researcher: str) -> bool:
        ...


class AccessOrchestrator:
    """
    Authorizes and logs researcher access to patient data.

    Collaborators are injected so that the data registry and the
    consent checker can be replaced by fakes; their failures are
    reported as DataNotFoundError and ConsentCheckFailedError.
    """

    def __init__(
        self,
        db: LedgerDB,
        clock: HeightSource,
        researchers: ResearcherRegistry,
        rate_limiter: RateLimiter,
        consents: ConsentChecker,
        data_registry: DataRegistry,
        journal: Optional[EventJournal] = None,
    ):
        self._db = db
        self._clock = clock
        self.researchers = researchers
        self.rate_limiter = rate_limiter
        self.consents = consents
        self.data_registry = data_registry
        self.journal = journal if journal is not None else EventJournal()

    def request_access(
        self,
        caller: str,
        data_id: int,
        access_type: Union[str, AccessType],
    ) -> int:
        """
        Request access to a data record.

        Args:
            caller: Researcher identity making the request.
            data_id: Data record to access.
            access_type: 'read-only' or 'read-write'.

        Returns:
            Log id of the new access log entry.

        Raises:
            ResearcherNotVerifiedError, AccessLimitExceededError,
            InvalidAccessTypeError, DataNotFoundError, DataInactiveError,
            ConsentCheckFailedError, ConsentRequiredError: Checked in that
            order. Nothing is written when any of them is raised.
        """
        try:
            with self._db.transaction():
                cycle = self.rate_limiter.record_cycle_rollover()

                if not self.researchers.is_verified(caller):
                    raise ResearcherNotVerifiedError(caller)

                if not self.rate_limiter.admit(caller):
                    raise AccessLimitExceededError(
                        caller,
                        cycle,
                        self.rate_limiter.count_for(caller),
                        self.rate_limiter.settings.access_limit_per_cycle,
                    )

                access_type = parse_access_type(access_type)
                record = self._lookup_record(caller, data_id)

                if not record.active:
                    raise DataInactiveError(data_id, researcher=caller)

                self._require_consent(record.owner, data_id, caller)

                height = self._clock.current_height()
                log_id = self._db.get_counter(ACCESS_COUNTER)
                entry = AccessLogEntry(
                    log_id=log_id,
                    data_id=data_id,
                    researcher=caller,
                    patient=record.owner,
                    access_type=access_type,
                    timestamp=height,
                )
                self._db.append_access_log(entry)
                self.rate_limiter.increment(caller, cycle)
                self._db.set_counter(ACCESS_COUNTER, log_id + 1)
        except Exception as e:
            logger.warning(
                "Access request rejected",
                researcher=caller,
                data_id=data_id,
                error=getattr(e, "error_code", type(e).__name__),
            )
            raise

        logger.info(
            "Access granted",
            log_id=log_id,
            researcher=caller,
            patient=record.owner,
            data_id=data_id,
            access_type=access_type.value,
            cycle=cycle,
        )
        self.journal.record(
            AccessGranted(log_id=log_id, data_id=data_id, researcher=caller, height=height)
        )
        return log_id

    def _lookup_record(self, caller: str, data_id: int) -> DataRecord:
        try:
            record = self.data_registry.get_record(data_id)
        except Exception as e:
            raise DataNotFoundError(data_id, researcher=caller) from e
        if record is None:
            raise DataNotFoundError(data_id, researcher=caller)
        return record

    def _require_consent(self, patient: str, data_id: int, caller: str) -> None:
        try:
            consented = self.consents.check_consent(patient, data_id, caller)
        except Exception as e:
            raise ConsentCheckFailedError(patient, data_id, caller, str(e)) from e
        if not consented:
            raise ConsentRequiredError(patient, data_id, caller)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_access_log(self, log_id: int) -> Optional[AccessLogEntry]:
        stored = self._db.get_access_log(log_id)
        return AccessLogEntry(**stored) if stored else None

    def get_access_count_by_researcher(self, researcher: str) -> int:
        """Accesses granted to ``researcher`` in the current cycle."""
        return self.rate_limiter.count_for(researcher)

    def get_total_access_count(self) -> int:
        return self._db.get_counter(ACCESS_COUNTER)

    def get_access_logs(
        self,
        researcher: Optional[str] = None,
        patient: Optional[str] = None,
        data_id: Optional[int] = None,
        limit: int = 1000,
    ) -> List[AccessLogEntry]:
        """Access log entries matching the filters, oldest first."""
        rows = self._db.query_access_logs(
            researcher=researcher, patient=patient, data_id=data_id, limit=limit
        )
        return [AccessLogEntry(**row) for row in rows]

    def get_usage_report(self, researcher: str) -> Dict[str, Any]:
        """Usage summary for a researcher."""
        entries = self.get_access_logs(researcher=researcher)
        return {
            "researcher": researcher,
            "verified": self.researchers.is_verified(researcher),
            "current_cycle": self.rate_limiter.current_cycle(),
            "accesses_this_cycle": self.get_access_count_by_researcher(researcher),
            "total_accesses": len(entries),
            "data_ids_accessed": sorted({e.data_id for e in entries}),
            "last_access_height": entries[-1].timestamp if entries else None,
        }
