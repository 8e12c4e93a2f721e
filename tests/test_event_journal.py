"""
Tests for the Event Journal
===========================
"""

import json

import pytest

from authorization.event_journal import EventJournal
from core.exceptions import EventJournalError
from core.models import AccessGranted, ConsentRevoked, ConsentSet


def consent_set(height=1):
    return ConsentSet(patient="P1", data_id=1, researcher="R1", height=height)


class TestEventJournal:
    """Tests for in-memory recording."""

    def test_records_in_order(self):
        journal = EventJournal()
        journal.record(consent_set())
        journal.record(ConsentRevoked(patient="P1", data_id=1, researcher="R1", height=2))
        journal.record(AccessGranted(log_id=0, data_id=1, researcher="R1", height=3))

        assert [e.event for e in journal.events()] == [
            "ConsentSet",
            "ConsentRevoked",
            "AccessGranted",
        ]
        assert len(journal) == 3
        assert journal.events(AccessGranted)[0].log_id == 0

    def test_log_entry_shape(self):
        assert consent_set(height=7).to_log_entry() == {
            "event": "ConsentSet",
            "height": 7,
            "patient": "P1",
            "data_id": 1,
            "researcher": "R1",
        }

    def test_unsupported_format(self):
        with pytest.raises(ValueError):
            EventJournal(log_format="xml")

    def test_no_file_without_storage(self):
        journal = EventJournal()
        journal.record(consent_set())
        journal.flush()
        assert journal.file_path is None


class TestJournalFileSink:
    """Tests for the append-only file sink."""

    def test_json_lines(self, tmp_path):
        journal = EventJournal(storage_path=str(tmp_path), buffer_size=1)
        journal.record(consent_set())
        journal.record(AccessGranted(log_id=0, data_id=1, researcher="R1", height=2))

        lines = journal.file_path.read_text().splitlines()
        assert journal.file_path.name == "events.json"
        assert [json.loads(line)["event"] for line in lines] == ["ConsentSet", "AccessGranted"]

    def test_buffered_until_flush(self, tmp_path):
        journal = EventJournal(storage_path=str(tmp_path), buffer_size=10)
        journal.record(consent_set())
        assert not journal.file_path.exists()

        journal.flush()
        assert len(journal.file_path.read_text().splitlines()) == 1

    def test_csv_format(self, tmp_path):
        journal = EventJournal(storage_path=str(tmp_path), log_format="csv", buffer_size=1)
        journal.record(consent_set(height=4))

        assert journal.file_path.read_text().strip() == "ConsentSet,4,P1,1,R1"

    def test_write_failure_keeps_batch(self, tmp_path):
        """A failed write while recording is logged, not raised."""
        blocker = tmp_path / "events.json"
        blocker.mkdir()
        journal = EventJournal(storage_path=str(tmp_path), buffer_size=1)

        journal.record(consent_set())
        assert len(journal) == 1
        assert journal.pending == 1

        with pytest.raises(EventJournalError) as exc_info:
            journal.flush()
        assert exc_info.value.error_code == "EVENT_JOURNAL_ERROR"
        assert journal.pending == 1

        blocker.rmdir()
        journal.record(consent_set(height=2))
        assert journal.pending == 0
        lines = journal.file_path.read_text().splitlines()
        assert [json.loads(line)["height"] for line in lines] == [1, 2]


class TestJournalHistory:
    """Tests for the bounded in-memory history."""

    def test_oldest_events_dropped(self):
        journal = EventJournal(history_size=3)
        for height in range(1, 6):
            journal.record(consent_set(height=height))

        assert len(journal) == 3
        assert [e.height for e in journal.events()] == [3, 4, 5]

    def test_file_sink_keeps_everything(self, tmp_path):
        journal = EventJournal(storage_path=str(tmp_path), buffer_size=2, history_size=1)
        for height in range(1, 5):
            journal.record(consent_set(height=height))

        assert [e.height for e in journal.events()] == [4]
        assert len(journal.file_path.read_text().splitlines()) == 4
