"""Shared fixtures for the consent engine tests."""

import sys
from pathlib import Path

import pytest

# Ensure project root is on sys.path
sys.path.insert(0, str(Path(__file__).parent.parent))

from authorization.engine import ConsentAccessEngine
from authorization.event_journal import EventJournal
from authorization.persistence import LedgerDB
from authorization.settings import AuthorizationSettings
from core.clock import ManualClock


AUTHORITY = "ST1AUTHORITY0000000000000000000"
RESEARCHER = "ST2RESEARCHER000000000000000000"
OTHER_RESEARCHER = "ST3RESEARCHER000000000000000000"
PATIENT = "ST4PATIENT000000000000000000000"
OTHER_PATIENT = "ST5PATIENT000000000000000000000"


@pytest.fixture
def db():
    ledger_db = LedgerDB(":memory:")
    yield ledger_db
    ledger_db.close()


@pytest.fixture
def clock():
    return ManualClock(height=100)


@pytest.fixture
def journal():
    return EventJournal()


@pytest.fixture
def settings(db):
    return AuthorizationSettings(db, authority=AUTHORITY)


@pytest.fixture
def engine(clock, journal):
    eng = ConsentAccessEngine(clock=clock, journal=journal, authority=AUTHORITY)
    yield eng
    eng.close()


@pytest.fixture
def granted_engine(engine):
    """Engine with a verified researcher, one active record and a live consent on it."""
    engine.researchers.verify_researcher(AUTHORITY, RESEARCHER)
    engine.data_registry.register(1, owner=PATIENT)
    engine.consents.set_consent(PATIENT, 1, RESEARCHER, 500, "read-only")
    return engine
