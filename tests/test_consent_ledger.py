"""
Tests for the Consent Ledger
============================
"""

import pytest

from authorization.consent_ledger import ConsentLedger, StaticPatientDirectory
from authorization.settings import AuthorizationSettings
from core.exceptions import (
    AlreadyRevokedError,
    ConsentError,
    ConsentNotFoundError,
    InvalidAccessTypeError,
    InvalidDataIdError,
    InvalidDurationError,
    InvalidParameterError,
    InvalidPatientError,
    InvalidResearcherError,
    MaxConsentsExceededError,
    NotAuthorizedError,
)
from core.models import AccessType, ConsentRevoked, ConsentSet
from core.validation import NULL_IDENTITY

from conftest import AUTHORITY, OTHER_PATIENT, OTHER_RESEARCHER, PATIENT, RESEARCHER


@pytest.fixture
def ledger(db, settings, clock, journal):
    return ConsentLedger(db, settings, clock, journal=journal)


class TestSetConsent:
    """Tests for granting consent."""

    def test_grant_then_check_at_same_height(self, ledger):
        """A fresh grant is valid at the height it was made."""
        ledger.set_consent(PATIENT, 1, RESEARCHER, 10, "read-only")
        assert ledger.check_consent(PATIENT, 1, RESEARCHER) is True

    @pytest.mark.parametrize("access_type", ["read-only", "read-write", AccessType.READ_WRITE])
    def test_grant_accepts_both_access_types(self, ledger, access_type):
        record = ledger.set_consent(PATIENT, 7, RESEARCHER, 1, access_type)
        assert record.access_type == AccessType(access_type)
        assert ledger.check_consent(PATIENT, 7, RESEARCHER) is True

    def test_record_fields(self, ledger, clock):
        """Expiry is grant height plus duration."""
        record = ledger.set_consent(PATIENT, 1, RESEARCHER, 25, AccessType.READ_WRITE)

        assert record.researcher == RESEARCHER
        assert record.allowed is True
        assert record.granted_at_height == clock.current_height()
        assert record.expiry_height == clock.current_height() + 25
        assert record.version == 1
        assert ledger.get_consent(PATIENT, 1) == record

    def test_consent_expires_after_expiry_height(self, ledger, clock):
        """Consent is valid through the expiry height and invalid after it."""
        ledger.set_consent(PATIENT, 1, RESEARCHER, 10, "read-only")

        clock.advance(10)
        assert ledger.check_consent(PATIENT, 1, RESEARCHER) is True

        clock.advance(1)
        assert ledger.check_consent(PATIENT, 1, RESEARCHER) is False

    def test_consent_counts_increment(self, ledger):
        ledger.set_consent(PATIENT, 1, RESEARCHER, 10, "read-only")
        ledger.set_consent(PATIENT, 1, RESEARCHER, 10, "read-only")
        ledger.set_consent(PATIENT, 2, RESEARCHER, 10, "read-only")

        assert ledger.get_consent_count(PATIENT).count == 3
        assert ledger.get_consent_count(OTHER_PATIENT).count == 0
        assert ledger.get_total_consent_count() == 3

    def test_emits_consent_set(self, ledger, journal, clock):
        ledger.set_consent(PATIENT, 3, RESEARCHER, 10, "read-only")

        events = journal.events(ConsentSet)
        assert len(events) == 1
        assert events[0].payload() == {
            "patient": PATIENT,
            "data_id": 3,
            "researcher": RESEARCHER,
        }
        assert events[0].height == clock.current_height()


class TestSetConsentValidation:
    """Tests for validation order and rejection of invalid grants."""

    @pytest.mark.parametrize("data_id", [0, -1, "1", 1.0, True])
    def test_invalid_data_id(self, ledger, data_id):
        with pytest.raises(InvalidDataIdError):
            ledger.set_consent(PATIENT, data_id, RESEARCHER, 10, "read-only")

    @pytest.mark.parametrize("duration", [0, -5, None])
    def test_invalid_duration(self, ledger, duration):
        with pytest.raises(InvalidDurationError):
            ledger.set_consent(PATIENT, 1, RESEARCHER, duration, "read-only")

    def test_null_researcher_rejected(self, ledger):
        with pytest.raises(InvalidResearcherError):
            ledger.set_consent(PATIENT, 1, NULL_IDENTITY, 10, "read-only")

    def test_invalid_access_type(self, ledger):
        with pytest.raises(InvalidAccessTypeError) as exc_info:
            ledger.set_consent(PATIENT, 1, RESEARCHER, 10, "admin")
        assert exc_info.value.error_code == "INVALID_ACCESS_TYPE"
        assert isinstance(exc_info.value, ConsentError)
        assert exc_info.value.details["access_type"] == "admin"

    def test_validation_order(self, ledger):
        """Data id is checked before duration, duration before researcher."""
        with pytest.raises(InvalidDataIdError):
            ledger.set_consent(PATIENT, 0, NULL_IDENTITY, 0, "bogus")
        with pytest.raises(InvalidDurationError):
            ledger.set_consent(PATIENT, 1, NULL_IDENTITY, 0, "bogus")
        with pytest.raises(InvalidResearcherError):
            ledger.set_consent(PATIENT, 1, NULL_IDENTITY, 1, "bogus")
        with pytest.raises(InvalidAccessTypeError):
            ledger.set_consent(PATIENT, 1, RESEARCHER, 1, "bogus")

    def test_unrecognized_patient(self, db, settings, clock, journal):
        """Only identities known to the patient directory may grant."""
        ledger = ConsentLedger(
            db, settings, clock, journal=journal, patients=StaticPatientDirectory([PATIENT])
        )
        with pytest.raises(InvalidPatientError):
            ledger.set_consent(OTHER_PATIENT, 1, RESEARCHER, 10, "read-only")

        ledger.set_consent(PATIENT, 1, RESEARCHER, 10, "read-only")
        assert ledger.get_consent(OTHER_PATIENT, 1) is None

    def test_max_consents_exceeded(self, ledger):
        ledger.set_max_consents(AUTHORITY, 2)
        ledger.set_consent(PATIENT, 1, RESEARCHER, 10, "read-only")
        ledger.set_consent(PATIENT, 2, RESEARCHER, 10, "read-only")

        with pytest.raises(MaxConsentsExceededError) as exc_info:
            ledger.set_consent(PATIENT, 3, RESEARCHER, 10, "read-only")

        assert exc_info.value.details["count"] == 2
        assert ledger.get_consent(PATIENT, 3) is None
        # Other patients keep their own quota
        ledger.set_consent(OTHER_PATIENT, 3, RESEARCHER, 10, "read-only")

    def test_rejection_leaves_no_trace(self, ledger, journal):
        with pytest.raises(InvalidDurationError):
            ledger.set_consent(PATIENT, 1, RESEARCHER, 0, "read-only")

        assert ledger.get_consent(PATIENT, 1) is None
        assert ledger.get_consent_count(PATIENT).count == 0
        assert ledger.get_total_consent_count() == 0
        assert len(journal) == 0


class TestRevokeConsent:
    """Tests for revocation."""

    def test_revoke(self, ledger, clock, journal):
        ledger.set_consent(PATIENT, 1, RESEARCHER, 10, "read-write")
        clock.advance(3)

        record = ledger.revoke_consent(PATIENT, 1, RESEARCHER)

        assert record.allowed is False
        assert record.expiry_height == 0
        assert record.timestamp == clock.current_height()
        assert ledger.check_consent(PATIENT, 1, RESEARCHER) is False
        assert journal.events(ConsentRevoked)[0].payload() == {
            "patient": PATIENT,
            "data_id": 1,
            "researcher": RESEARCHER,
        }

    def test_revoke_missing_consent(self, ledger):
        with pytest.raises(ConsentNotFoundError):
            ledger.revoke_consent(PATIENT, 1, RESEARCHER)

    def test_revoke_twice_fails(self, ledger):
        ledger.set_consent(PATIENT, 1, RESEARCHER, 10, "read-only")
        ledger.revoke_consent(PATIENT, 1, RESEARCHER)

        with pytest.raises(AlreadyRevokedError):
            ledger.revoke_consent(PATIENT, 1, RESEARCHER)

    def test_regrant_after_revoke(self, ledger):
        """Revocation ends a grant instance, not the key."""
        ledger.set_consent(PATIENT, 1, RESEARCHER, 10, "read-only")
        ledger.revoke_consent(PATIENT, 1, RESEARCHER)

        record = ledger.set_consent(PATIENT, 1, RESEARCHER, 10, "read-only")

        assert record.allowed is True
        assert ledger.check_consent(PATIENT, 1, RESEARCHER) is True

    def test_revoke_overwrites_researcher_with_argument(self, ledger):
        """The researcher passed to revoke replaces the stored grantee."""
        granted = ledger.set_consent(PATIENT, 1, RESEARCHER, 10, "read-write")

        revoked = ledger.revoke_consent(PATIENT, 1, OTHER_RESEARCHER)

        assert revoked.researcher == OTHER_RESEARCHER
        assert revoked.access_type == granted.access_type
        assert revoked.granted_at_height == granted.granted_at_height

    def test_only_own_records(self, ledger):
        """The caller identity is the patient half of the key."""
        ledger.set_consent(PATIENT, 1, RESEARCHER, 10, "read-only")

        with pytest.raises(ConsentNotFoundError):
            ledger.revoke_consent(OTHER_PATIENT, 1, RESEARCHER)
        assert ledger.check_consent(PATIENT, 1, RESEARCHER) is True

    def test_not_found_checked_before_patient(self, db, settings, clock):
        ledger = ConsentLedger(db, settings, clock, patients=StaticPatientDirectory())
        with pytest.raises(ConsentNotFoundError):
            ledger.revoke_consent(PATIENT, 1, RESEARCHER)


class TestVersioning:
    """Tests for overwrite semantics of the per-record version."""

    def test_version_strictly_increases(self, ledger):
        v1 = ledger.set_consent(PATIENT, 1, RESEARCHER, 10, "read-only").version
        v2 = ledger.set_consent(PATIENT, 1, RESEARCHER, 20, "read-only").version
        v3 = ledger.revoke_consent(PATIENT, 1, RESEARCHER).version
        v4 = ledger.set_consent(PATIENT, 1, RESEARCHER, 20, "read-only").version

        assert v1 < v2 < v3 < v4

    def test_overwrite_keeps_researcher(self, ledger):
        """Re-granting with new terms keeps the grantee unless revoked."""
        ledger.set_consent(PATIENT, 1, RESEARCHER, 10, "read-only")
        record = ledger.set_consent(PATIENT, 1, RESEARCHER, 50, "read-write")

        assert record.researcher == RESEARCHER
        assert record.access_type == AccessType.READ_WRITE
        assert record.version == 2


class TestCheckConsent:
    """Tests for consent validity checks."""

    def test_missing_record(self, ledger):
        assert ledger.check_consent(PATIENT, 99, RESEARCHER) is False
        assert ledger.get_consent(PATIENT, 99) is None

    def test_researcher_argument_not_compared(self, ledger):
        """Any researcher argument passes while the record is live."""
        ledger.set_consent(PATIENT, 1, RESEARCHER, 10, "read-only")
        assert ledger.check_consent(PATIENT, 1, OTHER_RESEARCHER) is True


class TestLedgerAuthority:
    """Tests for authority-gated ledger settings."""

    def test_set_authority_once(self, db, clock):
        ledger = ConsentLedger(db, AuthorizationSettings(db), clock)
        assert ledger.set_authority(AUTHORITY) is True

        with pytest.raises(NotAuthorizedError):
            ledger.set_authority(RESEARCHER)
        assert ledger.settings.authority == AUTHORITY

    def test_set_authority_null_identity(self, db, clock):
        ledger = ConsentLedger(db, AuthorizationSettings(db), clock)
        with pytest.raises(InvalidResearcherError):
            ledger.set_authority(NULL_IDENTITY)
        assert ledger.settings.authority is None

    def test_set_max_consents_requires_authority(self, ledger):
        with pytest.raises(NotAuthorizedError):
            ledger.set_max_consents(PATIENT, 5)
        assert ledger.settings.max_consents == 10000

    def test_set_max_consents_must_be_positive(self, ledger):
        with pytest.raises(InvalidParameterError):
            ledger.set_max_consents(AUTHORITY, 0)
        assert ledger.set_max_consents(AUTHORITY, 5) is True
        assert ledger.settings.max_consents == 5
