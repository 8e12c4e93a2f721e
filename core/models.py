"""
HDS Consent Engine Data Models
==============================
Pydantic models for the records, collaborator payloads and events used
throughout the consent and access authorization engine.
"""

from enum import Enum
from typing import Any, Dict, Literal

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Enums
# =============================================================================


class AccessType(str, Enum):
    """Kind of access a consent grants or a researcher requests."""

    READ_ONLY = "read-only"
    READ_WRITE = "read-write"


# =============================================================================
# Consent Ledger Models
# =============================================================================


class ConsentRecord(BaseModel):
    """
    Consent given by a patient for one of their data records.

    Keyed by (patient, data_id) in the ledger. A revoked record keeps
    its row with ``allowed=False`` and ``expiry_height=0`` until the
    patient grants again.
    """

    researcher: str = Field(..., description="Grantee identity")
    expiry_height: int = Field(..., ge=0, description="Last height the grant is valid at")
    allowed: bool = Field(default=True)
    access_type: AccessType = Field(..., description="Granted access type")
    granted_at_height: int = Field(..., ge=0)
    timestamp: int = Field(..., ge=0, description="Height of the last write")
    version: int = Field(default=1, ge=1, description="Bumped on every overwrite")

    def is_valid_at(self, height: int) -> bool:
        """Check if the grant is live at the given height."""
        return self.allowed and self.expiry_height >= height


class ConsentCount(BaseModel):
    """Number of consents a patient has ever set."""

    count: int = Field(default=0, ge=0)


# =============================================================================
# Access Models
# =============================================================================


class DataRecord(BaseModel):
    """Ownership and activity of a data record, as known to the data registry."""

    owner: str = Field(..., description="Patient identity owning the record")
    active: bool = Field(default=True)


class AccessLogEntry(BaseModel):
    """Immutable audit row written for every granted access."""

    model_config = ConfigDict(frozen=True)

    log_id: int = Field(..., ge=0)
    data_id: int
    researcher: str
    patient: str
    access_type: AccessType
    timestamp: int = Field(..., ge=0, description="Height at which access was granted")


# =============================================================================
# Events
# =============================================================================


class LedgerEvent(BaseModel):
    """Base class for events published after a state change commits."""

    model_config = ConfigDict(frozen=True)

    event: str
    height: int = Field(..., ge=0, description="Height at which the event was emitted")

    def payload(self) -> Dict[str, Any]:
        """Event fields as consumers see them."""
        return self.model_dump(mode="json", exclude={"event", "height"})

    def to_log_entry(self) -> dict:
        """Convert to structured log entry."""
        return {"event": self.event, "height": self.height, **self.payload()}


class ConsentSet(LedgerEvent):
    """A patient granted (or re-granted) consent for a data record."""

    event: Literal["ConsentSet"] = "ConsentSet"
    patient: str
    data_id: int
    researcher: str


class ConsentRevoked(LedgerEvent):
    """A patient revoked a consent."""

    event: Literal["ConsentRevoked"] = "ConsentRevoked"
    patient: str
    data_id: int
    researcher: str


class AccessGranted(LedgerEvent):
    """A researcher was granted access and the access was logged."""

    event: Literal["AccessGranted"] = "AccessGranted"
    log_id: int
    data_id: int
    researcher: str
