"""
HDS Consent Engine Exceptions
=============================
Error taxonomy for the consent and access authorization engine.

Every rejection is raised as a typed exception carrying a stable
``error_code``. A raised error always means the operation left no
trace in the ledger and emitted no event.
"""

from typing import Any, Optional


class HDSError(Exception):
    """Base exception for all consent engine errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message

    def to_dict(self) -> dict:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


# =============================================================================
# Authority & Tunables
# =============================================================================


class AuthorizationError(HDSError):
    """Base exception for authority-gated operations."""

    pass


class NotAuthorizedError(AuthorizationError):
    """Raised when the caller is not allowed to perform an operation."""

    def __init__(self, caller: Optional[str], operation: str):
        super().__init__(
            f"{caller!r} is not authorized to {operation}",
            error_code="NOT_AUTHORIZED",
            details={"caller": caller, "operation": operation},
        )
        self.caller = caller
        self.operation = operation


class InvalidParameterError(AuthorizationError):
    """Raised when a tunable is set to a non-positive value."""

    def __init__(self, parameter: str, value: Any):
        super().__init__(
            f"Invalid value for {parameter}: {value!r} (must be a positive integer)",
            error_code="INVALID_PARAMETER",
            details={"parameter": parameter, "value": value},
        )
        self.parameter = parameter
        self.value = value


# =============================================================================
# Consent Ledger
# =============================================================================


class ConsentError(HDSError):
    """Base exception for consent ledger errors."""

    def __init__(
        self,
        message: str,
        error_code: str,
        patient: Optional[str] = None,
        data_id: Optional[int] = None,
        **extra: Any,
    ):
        super().__init__(
            message,
            error_code=error_code,
            details={"patient": patient, "data_id": data_id, **extra},
        )
        self.patient = patient
        self.data_id = data_id


class InvalidDataIdError(ConsentError):
    """Raised when a data identifier is not strictly positive."""

    def __init__(self, data_id: Any):
        super().__init__(
            f"Invalid data id: {data_id!r}",
            error_code="INVALID_DATA_ID",
            data_id=data_id,
        )


class InvalidDurationError(ConsentError):
    """Raised when a consent duration is not strictly positive."""

    def __init__(self, duration: Any):
        super().__init__(
            f"Invalid consent duration: {duration!r}",
            error_code="INVALID_DURATION",
            duration=duration,
        )
        self.duration = duration


class InvalidResearcherError(ConsentError):
    """Raised when the reserved null identity is supplied as a principal."""

    def __init__(self, identity: Any):
        super().__init__(
            f"Invalid identity: {identity!r}",
            error_code="INVALID_RESEARCHER",
            identity=identity,
        )
        self.identity = identity


class InvalidAccessTypeError(ConsentError):
    """Raised when an access type is neither read-only nor read-write."""

    def __init__(self, access_type: Any):
        super().__init__(
            f"Invalid access type: {access_type!r}",
            error_code="INVALID_ACCESS_TYPE",
            access_type=access_type,
        )
        self.access_type = access_type


class InvalidPatientError(ConsentError):
    """Raised when the caller is not a recognized patient identity."""

    def __init__(self, patient: str):
        super().__init__(
            f"{patient!r} is not a recognized patient",
            error_code="INVALID_PATIENT",
            patient=patient,
        )


class ConsentNotFoundError(ConsentError):
    """Raised when no consent record exists for (patient, data_id)."""

    def __init__(self, patient: str, data_id: int):
        super().__init__(
            f"No consent found for patient {patient!r} and data {data_id}",
            error_code="CONSENT_NOT_FOUND",
            patient=patient,
            data_id=data_id,
        )


class AlreadyRevokedError(ConsentError):
    """Raised when revoking a consent that is already revoked."""

    def __init__(self, patient: str, data_id: int):
        super().__init__(
            f"Consent for patient {patient!r} and data {data_id} is already revoked",
            error_code="ALREADY_REVOKED",
            patient=patient,
            data_id=data_id,
        )


class MaxConsentsExceededError(ConsentError):
    """Raised when a patient has reached the global consent ceiling."""

    def __init__(self, patient: str, count: int, max_consents: int):
        super().__init__(
            f"Patient {patient!r} reached the consent limit ({count}/{max_consents})",
            error_code="MAX_CONSENTS_EXCEEDED",
            patient=patient,
            count=count,
            max_consents=max_consents,
        )
        self.count = count
        self.max_consents = max_consents


# =============================================================================
# Access Orchestrator
# =============================================================================


class AccessError(HDSError):
    """Base exception for access request rejections."""

    def __init__(
        self,
        message: str,
        error_code: str,
        researcher: Optional[str] = None,
        data_id: Optional[int] = None,
        **extra: Any,
    ):
        super().__init__(
            message,
            error_code=error_code,
            details={"researcher": researcher, "data_id": data_id, **extra},
        )
        self.researcher = researcher
        self.data_id = data_id


class ResearcherNotVerifiedError(AccessError):
    """Raised when an unverified researcher requests access."""

    def __init__(self, researcher: str):
        super().__init__(
            f"Researcher {researcher!r} is not verified",
            error_code="RESEARCHER_NOT_VERIFIED",
            researcher=researcher,
        )


class AccessLimitExceededError(AccessError):
    """Raised when a researcher exhausted the accesses of the current cycle."""

    def __init__(self, researcher: str, cycle: int, count: int, limit: int):
        super().__init__(
            f"Researcher {researcher!r} exceeded the access limit for cycle {cycle} "
            f"({count} accesses, limit {limit})",
            error_code="ACCESS_LIMIT_EXCEEDED",
            researcher=researcher,
            cycle=cycle,
            count=count,
            limit=limit,
        )
        self.cycle = cycle
        self.count = count
        self.limit = limit


class DataNotFoundError(AccessError):
    """Raised when the data registry has no usable record for a data id."""

    def __init__(self, data_id: int, researcher: Optional[str] = None):
        super().__init__(
            f"Data record {data_id} not found",
            error_code="DATA_NOT_FOUND",
            researcher=researcher,
            data_id=data_id,
        )


class DataInactiveError(AccessError):
    """Raised when the requested data record is inactive."""

    def __init__(self, data_id: int, researcher: Optional[str] = None):
        super().__init__(
            f"Data record {data_id} is inactive",
            error_code="DATA_INACTIVE",
            researcher=researcher,
            data_id=data_id,
        )


class ConsentRequiredError(AccessError):
    """Raised when no valid consent covers the requested record."""

    def __init__(self, patient: str, data_id: int, researcher: str):
        super().__init__(
            f"No valid consent from {patient!r} for data {data_id}",
            error_code="CONSENT_REQUIRED",
            researcher=researcher,
            data_id=data_id,
            patient=patient,
        )
        self.patient = patient


class ConsentCheckFailedError(AccessError):
    """Raised when the consent lookup itself fails."""

    def __init__(self, patient: str, data_id: int, researcher: str, reason: str):
        super().__init__(
            f"Consent check failed for data {data_id}: {reason}",
            error_code="CONSENT_CHECK_FAILED",
            researcher=researcher,
            data_id=data_id,
            patient=patient,
            reason=reason,
        )
        self.patient = patient
        self.reason = reason


# =============================================================================
# Infrastructure
# =============================================================================


class DataRegistryError(HDSError):
    """Raised when the external data registry cannot be queried."""

    def __init__(self, endpoint: str, reason: str):
        super().__init__(
            f"Data registry request to {endpoint} failed: {reason}",
            error_code="DATA_REGISTRY_ERROR",
            details={"endpoint": endpoint, "reason": reason},
        )
        self.endpoint = endpoint
        self.reason = reason


class LedgerStorageError(HDSError):
    """Raised when the ledger store rejects a write."""

    def __init__(self, message: str, table: Optional[str] = None):
        super().__init__(
            message,
            error_code="LEDGER_STORAGE_ERROR",
            details={"table": table},
        )
        self.table = table


class EventJournalError(HDSError):
    """Raised when emitted events cannot be written to the journal file."""

    def __init__(self, message: str, event: Optional[dict] = None):
        super().__init__(
            message,
            error_code="EVENT_JOURNAL_ERROR",
            details={"event": event},
        )


class ClockError(HDSError):
    """Raised when a height source would move backwards."""

    def __init__(self, current: int, requested: int):
        super().__init__(
            f"Height cannot go backwards: {requested} < {current}",
            error_code="CLOCK_ERROR",
            details={"current": current, "requested": requested},
        )


class ConfigurationError(HDSError):
    """Exception raised for configuration errors."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        super().__init__(
            message,
            error_code="CONFIGURATION_ERROR",
            details={"config_key": config_key},
        )
