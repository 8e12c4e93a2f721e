"""
Data Registry Collaborators
===========================
The data registry owns ``data_id -> (owner, active)``. The access
orchestrator only needs ``get_record``; this module provides the
interface plus an in-memory registry and an HTTP client for a remote
registry service.
"""

import threading
from typing import Dict, Optional, Protocol

import requests
import structlog
from pydantic import ValidationError

from core.exceptions import DataRegistryError
from core.models import DataRecord

logger = structlog.get_logger(__name__)


class DataRegistry(Protocol):
    """Lookup of data ownership and activity."""

    def get_record(self, data_id: int) -> Optional[DataRecord]:
        """Return the record, or None if the registry does not know ``data_id``."""
        ...


class InMemoryDataRegistry:
    """Registry kept in process memory (tests, simulations, embedding)."""

    def __init__(self):
        self._records: Dict[int, DataRecord] = {}
        self._lock = threading.Lock()

    def register(self, data_id: int, owner: str, active: bool = True) -> DataRecord:
        record = DataRecord(owner=owner, active=active)
        with self._lock:
            self._records[data_id] = record
        logger.debug("Data record registered", data_id=data_id, owner=owner, active=active)
        return record

    def set_active(self, data_id: int, active: bool) -> bool:
        """Toggle a record's activity. Returns False for unknown ids."""
        with self._lock:
            record = self._records.get(data_id)
            if record is None:
                return False
            self._records[data_id] = record.model_copy(update={"active": active})
        return True

    def get_record(self, data_id: int) -> Optional[DataRecord]:
        with self._lock:
            return self._records.get(data_id)

    def __len__(self) -> int:
        return len(self._records)


class HttpDataRegistry:
    """
    Client for a remote data registry.

    Expects ``GET {base_url}/records/{data_id}`` to answer 200 with
    ``{"owner": str, "active": bool}`` or 404 for unknown ids.
    """

    def __init__(
        self,
        base_url: str,
        auth_token: Optional[str] = None,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

        if auth_token:
            self.session.headers["Authorization"] = f"Bearer {auth_token}"

        self.session.headers["Accept"] = "application/json"

    def get_record(self, data_id: int) -> Optional[DataRecord]:
        """
        Fetch a record from the registry.

        Raises:
            DataRegistryError: On transport errors, non-404 error statuses
                or malformed bodies.
        """
        url = f"{self.base_url}/records/{data_id}"
        try:
            response = self.session.get(url, timeout=self.timeout)
            if response.status_code == 404:
                logger.debug("Data record not in registry", data_id=data_id)
                return None
            response.raise_for_status()
            return DataRecord(**response.json())
        except requests.RequestException as e:
            logger.warning("Data registry request failed", url=url, error=str(e))
            raise DataRegistryError(url, str(e)) from e
        except (ValueError, TypeError, ValidationError) as e:
            raise DataRegistryError(url, f"malformed record: {e}") from e

    def close(self) -> None:
        self.session.close()
