"""
Event Journal Module
====================
Audit trail of the events published by the consent ledger and the
access orchestrator (``ConsentSet``, ``ConsentRevoked``, ``AccessGranted``).

Components record events only after their state change has committed,
so the journal never contains an event for a rejected operation.
"""

import json
import threading
from collections import deque
from pathlib import Path
from typing import List, Optional, Type

import structlog

from core.exceptions import EventJournalError
from core.models import LedgerEvent

logger = structlog.get_logger(__name__)


class EventJournal:
    """
    In-memory event journal with an optional append-only file sink.

    The most recent ``history_size`` events are kept in emission order.
    When ``storage_path`` is given, events are also buffered and appended
    to ``events.<format>`` in that directory, one entry per line. A failed
    write while recording is logged and the batch stays buffered for the
    next flush.
    """

    def __init__(
        self,
        storage_path: Optional[str] = None,
        log_format: str = "json",
        buffer_size: int = 100,
        history_size: int = 10000,
    ):
        """
        Initialize event journal.

        Args:
            storage_path: Directory for the journal file (in-memory only if None).
            log_format: Output format ('json', 'csv').
            buffer_size: Number of events buffered before a file write.
            history_size: Number of events kept in memory (oldest dropped first).
        """
        if log_format not in ("json", "csv"):
            raise ValueError(f"Unsupported journal format: {log_format}")

        self.storage_path = Path(storage_path) if storage_path else None
        self.log_format = log_format
        self._buffer_size = max(1, buffer_size)
        self.history_size = max(1, history_size)

        if self.storage_path is not None:
            self.storage_path.mkdir(parents=True, exist_ok=True)

        self._events: deque = deque(maxlen=self.history_size)
        self._buffer: List[LedgerEvent] = []
        self._lock = threading.Lock()

    @property
    def file_path(self) -> Optional[Path]:
        if self.storage_path is None:
            return None
        return self.storage_path / f"events.{self.log_format}"

    def record(self, event: LedgerEvent) -> None:
        """
        Record an emitted event.

        Args:
            event: The event to record.
        """
        with self._lock:
            self._events.append(event)
            if self.storage_path is not None:
                self._buffer.append(event)
                if len(self._buffer) >= self._buffer_size:
                    try:
                        self._flush_buffer()
                    except EventJournalError as e:
                        logger.error(
                            "Journal flush failed, events kept buffered",
                            buffered=len(self._buffer),
                            error=e.message,
                        )

        logger.info(
            "Ledger event recorded",
            event_type=event.event,
            height=event.height,
            **event.payload(),
        )

    def events(self, event_type: Optional[Type[LedgerEvent]] = None) -> List[LedgerEvent]:
        """Retained events in emission order, optionally filtered by type."""
        with self._lock:
            events = list(self._events)
        if event_type is None:
            return events
        return [e for e in events if isinstance(e, event_type)]

    def __len__(self) -> int:
        return len(self._events)

    @property
    def pending(self) -> int:
        """Number of events waiting for a file write."""
        return len(self._buffer)

    def flush(self) -> None:
        """
        Force flush any buffered events.

        Raises:
            EventJournalError: If the write fails. The events stay buffered.
        """
        with self._lock:
            self._flush_buffer()

    def _flush_buffer(self) -> None:
        if not self._buffer:
            return
        self._write_to_file(self._buffer)
        self._buffer.clear()

    def _write_to_file(self, events: List[LedgerEvent]) -> None:
        """Append events to the journal file."""
        if self.log_format == "json":
            lines = [json.dumps(event.to_log_entry()) for event in events]
        else:
            lines = [self._event_to_csv(event) for event in events]

        # One write per batch
        try:
            with open(self.file_path, "a", encoding="utf-8") as f:
                f.write("\n".join(lines) + "\n")
        except OSError as e:
            raise EventJournalError(
                f"Failed to write journal events: {e}",
                event=events[0].to_log_entry() if events else None,
            ) from e

        logger.debug("Journal flushed", count=len(events), path=str(self.file_path))

    def _event_to_csv(self, event: LedgerEvent) -> str:
        entry = event.to_log_entry()
        return ",".join(str(v) for v in entry.values())
