"""
HDS Consent Engine Authorization Layer
======================================
Consent ledger, researcher registry, rate limiting and access
orchestration over a shared transactional ledger store.
"""

from .persistence import LedgerDB
from .event_journal import EventJournal
from .settings import AuthorizationSettings
from .consent_ledger import (
    ConsentLedger,
    OpenPatientDirectory,
    PatientDirectory,
    StaticPatientDirectory,
)
from .researcher_registry import ResearcherRegistry
from .rate_limiter import RateLimiter, compute_cycle
from .data_registry import DataRegistry, HttpDataRegistry, InMemoryDataRegistry
from .access_control import AccessOrchestrator, ConsentChecker
from .engine import ConsentAccessEngine

__all__ = [
    # Persistence
    "LedgerDB",
    "EventJournal",
    "AuthorizationSettings",
    # Consent Ledger
    "ConsentLedger",
    "PatientDirectory",
    "OpenPatientDirectory",
    "StaticPatientDirectory",
    # Researchers and Rate Limiting
    "ResearcherRegistry",
    "RateLimiter",
    "compute_cycle",
    # Access
    "DataRegistry",
    "InMemoryDataRegistry",
    "HttpDataRegistry",
    "AccessOrchestrator",
    "ConsentChecker",
    # Engine
    "ConsentAccessEngine",
]
