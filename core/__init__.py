"""
HDS Consent Engine Core Module
==============================
Models, error taxonomy, validation helpers and height sources shared by
the authorization components.
"""

from .clock import HeightSource, ManualClock, WallClockHeight
from .models import (
    AccessGranted,
    AccessLogEntry,
    AccessType,
    ConsentCount,
    ConsentRecord,
    ConsentRevoked,
    ConsentSet,
    DataRecord,
    LedgerEvent,
)
from .validation import NULL_IDENTITY

__all__ = [
    # Clock
    "HeightSource",
    "ManualClock",
    "WallClockHeight",
    # Models
    "AccessGranted",
    "AccessLogEntry",
    "AccessType",
    "ConsentCount",
    "ConsentRecord",
    "ConsentRevoked",
    "ConsentSet",
    "DataRecord",
    "LedgerEvent",
    "NULL_IDENTITY",
]
