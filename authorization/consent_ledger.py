"""
Consent Ledger Module
=====================
Patient-owned consent records for data access by researchers.

A patient grants consent for one of their data records with
``set_consent`` and withdraws it with ``revoke_consent``. Records are
keyed by (patient, data_id): the caller identity is the patient, so a
patient can only ever touch their own records.
"""

from typing import Iterable, Optional, Protocol, Union

import structlog

from authorization.event_journal import EventJournal
from authorization.persistence import CONSENT_COUNTER, LedgerDB
from authorization.settings import MAX_CONSENTS, AuthorizationSettings
from core.clock import HeightSource
from core.exceptions import (
    AlreadyRevokedError,
    ConsentNotFoundError,
    InvalidPatientError,
    MaxConsentsExceededError,
)
from core.models import (
    AccessType,
    ConsentCount,
    ConsentRecord,
    ConsentRevoked,
    ConsentSet,
)
from core.validation import (
    parse_access_type,
    require_data_id,
    require_duration,
    require_identity,
)

logger = structlog.get_logger(__name__)


class PatientDirectory(Protocol):
    """Decides whether an identity may act as a patient."""

    def is_patient(self, identity: str) -> bool:
        ...


class OpenPatientDirectory:
    """Every caller is a patient of their own records."""

    def is_patient(self, identity: str) -> bool:
        return True


class StaticPatientDirectory:
    """Fixed set of recognized patient identities."""

    def __init__(self, identities: Iterable[str] = ()):
        self._identities = set(identities)

    def add(self, identity: str) -> None:
        self._identities.add(identity)

    def is_patient(self, identity: str) -> bool:
        return identity in self._identities


class ConsentLedger:
    """
    Manages the consent lifecycle: grant, query, revoke and expiry.

    Expiry is expressed in heights. A grant made at height ``h`` with
    duration ``d`` is valid up to and including height ``h + d``.
    """

    def __init__(
        self,
        db: LedgerDB,
        settings: AuthorizationSettings,
        clock: HeightSource,
        journal: Optional[EventJournal] = None,
        patients: Optional[PatientDirectory] = None,
    ):
        """
        Initialize consent ledger.

        Args:
            db: Ledger database.
            settings: Shared authority and tunables.
            clock: Height source for grant and expiry heights.
            journal: Event journal (a private one is created if None).
            patients: Patient directory (accepts everyone if None).
        """
        self._db = db
        self.settings = settings
        self._clock = clock
        self.journal = journal if journal is not None else EventJournal()
        self.patients = patients or OpenPatientDirectory()

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def set_consent(
        self,
        caller: str,
        data_id: int,
        researcher: str,
        duration: int,
        access_type: Union[str, AccessType],
    ) -> ConsentRecord:
        """
        Grant consent for ``data_id``, overwriting any prior record.

        Args:
            caller: Patient identity making the grant.
            data_id: Data record the consent covers.
            researcher: Grantee identity.
            duration: Validity in heights, counted from now.
            access_type: 'read-only' or 'read-write'.

        Returns:
            The stored ConsentRecord.

        Raises:
            InvalidDataIdError, InvalidDurationError, InvalidResearcherError,
            InvalidAccessTypeError, InvalidPatientError,
            MaxConsentsExceededError: Checked in that order.
        """
        with self._db.transaction():
            require_data_id(data_id)
            require_duration(duration)
            require_identity(researcher, self.settings.null_identity)
            access_type = parse_access_type(access_type)
            if not self.patients.is_patient(caller):
                raise InvalidPatientError(caller)

            count = self._db.get_consent_count(caller)
            max_consents = self.settings.max_consents
            if count >= max_consents:
                raise MaxConsentsExceededError(caller, count, max_consents)

            height = self._clock.current_height()
            previous = self._db.get_consent(caller, data_id)
            record = ConsentRecord(
                researcher=researcher,
                expiry_height=height + duration,
                allowed=True,
                access_type=access_type,
                granted_at_height=height,
                timestamp=height,
                version=previous["version"] + 1 if previous else 1,
            )
            self._db.save_consent(caller, data_id, record)
            self._db.set_consent_count(caller, count + 1)
            self._db.set_counter(CONSENT_COUNTER, self._db.get_counter(CONSENT_COUNTER) + 1)

        logger.info(
            "Consent set",
            patient=caller,
            data_id=data_id,
            researcher=researcher,
            expiry_height=record.expiry_height,
            access_type=access_type.value,
        )
        self.journal.record(
            ConsentSet(patient=caller, data_id=data_id, researcher=researcher, height=height)
        )
        return record

    def revoke_consent(self, caller: str, data_id: int, researcher: str) -> ConsentRecord:
        """
        Revoke the caller's consent for ``data_id``.

        The stored researcher is replaced with the ``researcher`` given
        here; access type and grant height are kept.

        Returns:
            The revoked ConsentRecord.

        Raises:
            ConsentNotFoundError: No record for (caller, data_id).
            AlreadyRevokedError: The record is already revoked.
            InvalidPatientError: The caller is not a recognized patient.
        """
        with self._db.transaction():
            stored = self._db.get_consent(caller, data_id)
            if stored is None:
                raise ConsentNotFoundError(caller, data_id)
            current = ConsentRecord(**stored)
            if not current.allowed:
                raise AlreadyRevokedError(caller, data_id)
            if not self.patients.is_patient(caller):
                raise InvalidPatientError(caller)

            height = self._clock.current_height()
            record = current.model_copy(
                update={
                    "researcher": researcher,
                    "allowed": False,
                    "expiry_height": 0,
                    "timestamp": height,
                    "version": current.version + 1,
                }
            )
            self._db.save_consent(caller, data_id, record)

        logger.info("Consent revoked", patient=caller, data_id=data_id, researcher=researcher)
        self.journal.record(
            ConsentRevoked(patient=caller, data_id=data_id, researcher=researcher, height=height)
        )
        return record

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def check_consent(self, patient: str, data_id: int, researcher: str) -> bool:
        """
        Check whether (patient, data_id) carries a live grant.

        ``researcher`` is accepted for interface compatibility but is not
        compared with the stored grantee: any allowed, unexpired record
        for the key passes.
        """
        record = self.get_consent(patient, data_id)
        if record is None:
            return False
        valid = record.is_valid_at(self._clock.current_height())
        logger.debug(
            "Consent checked",
            patient=patient,
            data_id=data_id,
            researcher=researcher,
            valid=valid,
        )
        return valid

    def get_consent(self, patient: str, data_id: int) -> Optional[ConsentRecord]:
        stored = self._db.get_consent(patient, data_id)
        return ConsentRecord(**stored) if stored else None

    def get_consent_count(self, patient: str) -> ConsentCount:
        return ConsentCount(count=self._db.get_consent_count(patient))

    def get_total_consent_count(self) -> int:
        """Successful grants across all patients."""
        return self._db.get_counter(CONSENT_COUNTER)

    # -------------------------------------------------------------------------
    # Authority-gated settings
    # -------------------------------------------------------------------------

    def set_authority(self, identity: str) -> bool:
        """One-time authority assignment; see AuthorizationSettings.set_authority."""
        self.settings.set_authority(identity)
        return True

    def set_max_consents(self, caller: str, max_consents: int) -> bool:
        """
        Replace the per-patient consent ceiling.

        Raises:
            NotAuthorizedError: If ``caller`` is not the authority.
            InvalidParameterError: If ``max_consents`` is not strictly positive.
        """
        self.settings.update_tunable(caller, MAX_CONSENTS, max_consents)
        return True
