"""
SQLite persistence backend for the consent and access ledger.

Holds every persisted table of the engine: consent records and counts,
verified researchers, authority and tunables, per-cycle access counts,
the access log and the global counters.

All access goes through one connection guarded by a re-entrant lock.
``transaction()`` holds that lock for the whole block and opens the
outermost level with ``BEGIN IMMEDIATE``, so an operation either
commits every write it staged or none of them.
"""

import json
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import structlog

from core.exceptions import LedgerStorageError
from core.models import AccessLogEntry, ConsentRecord

logger = structlog.get_logger(__name__)

DEFAULT_DB_PATH = Path("data/consent_ledger.db")

ACCESS_COUNTER = "access_counter"
CONSENT_COUNTER = "consent_counter"


class LedgerDB:
    """Thread-safe, transactional SQLite backend for ledger state."""

    def __init__(self, db_path: Optional[str] = None, timeout: float = 30.0):
        """
        Initialize ledger database.

        Args:
            db_path: Path to SQLite database file. Use ':memory:' for testing.
                     Defaults to 'data/consent_ledger.db'.
            timeout: Seconds to wait for another process holding the write lock.
        """
        if db_path == ":memory:":
            self.db_path = ":memory:"
        else:
            self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.RLock()
        self._depth = 0
        self._conn: Optional[sqlite3.Connection] = sqlite3.connect(
            str(self.db_path),
            timeout=timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        self._conn.row_factory = sqlite3.Row
        if self.db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise LedgerStorageError("Ledger database is closed")
        return self._conn

    def _init_schema(self):
        """Create tables if they don't exist."""
        conn = self._get_conn()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS consents (
                patient TEXT NOT NULL,
                data_id INTEGER NOT NULL,
                researcher TEXT NOT NULL,
                expiry_height INTEGER NOT NULL,
                allowed INTEGER NOT NULL,
                access_type TEXT NOT NULL,
                granted_at_height INTEGER NOT NULL,
                timestamp INTEGER NOT NULL,
                version INTEGER NOT NULL DEFAULT 1,
                PRIMARY KEY (patient, data_id)
            );

            CREATE TABLE IF NOT EXISTS consent_counts (
                patient TEXT PRIMARY KEY,
                count INTEGER NOT NULL DEFAULT 0
            );

            CREATE TABLE IF NOT EXISTS verified_researchers (
                researcher TEXT PRIMARY KEY,
                verified_at_height INTEGER
            );

            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS researcher_access_counts (
                researcher TEXT NOT NULL,
                cycle INTEGER NOT NULL,
                count INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (researcher, cycle)
            );

            CREATE TABLE IF NOT EXISTS access_logs (
                log_id INTEGER PRIMARY KEY,
                data_id INTEGER NOT NULL,
                researcher TEXT NOT NULL,
                patient TEXT NOT NULL,
                access_type TEXT NOT NULL,
                timestamp INTEGER NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_access_logs_researcher
                ON access_logs(researcher);
            CREATE INDEX IF NOT EXISTS idx_access_logs_patient
                ON access_logs(patient);

            CREATE TABLE IF NOT EXISTS counters (
                name TEXT PRIMARY KEY,
                value INTEGER NOT NULL DEFAULT 0
            );
        """)

    def close(self):
        """Close the connection. Further calls raise LedgerStorageError."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run a block atomically.

        The outermost level commits on normal exit and rolls back if the
        block raises. Nested levels map to savepoints and join the
        outer transaction.
        """
        with self._lock:
            conn = self._get_conn()
            if self._depth == 0:
                conn.execute("BEGIN IMMEDIATE")
                self._depth = 1
                try:
                    yield conn
                except BaseException:
                    conn.execute("ROLLBACK")
                    raise
                else:
                    conn.execute("COMMIT")
                finally:
                    self._depth = 0
                return

            self._depth += 1
            savepoint = f"sp_{self._depth}"
            conn.execute(f"SAVEPOINT {savepoint}")
            try:
                yield conn
            except BaseException:
                conn.execute(f"ROLLBACK TO {savepoint}")
                conn.execute(f"RELEASE {savepoint}")
                raise
            else:
                conn.execute(f"RELEASE {savepoint}")
            finally:
                self._depth -= 1

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    # =========================================================================
    # SETTINGS
    # =========================================================================

    def get_setting(self, key: str) -> Optional[Any]:
        """Get a setting value, or None if it was never written."""
        with self._lock:
            row = self._get_conn().execute(
                "SELECT value FROM settings WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return None
        return json.loads(row["value"])

    def put_setting(self, key: str, value: Any) -> None:
        """Save or replace a setting."""
        with self._lock:
            self._get_conn().execute(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                (key, json.dumps(value)),
            )

    def insert_setting_if_absent(self, key: str, value: Any) -> bool:
        """Write a setting only if it has no value yet. Returns True if written."""
        with self._lock:
            cursor = self._get_conn().execute(
                "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?)",
                (key, json.dumps(value)),
            )
        return cursor.rowcount > 0

    # =========================================================================
    # CONSENTS
    # =========================================================================

    def get_consent(self, patient: str, data_id: int) -> Optional[Dict[str, Any]]:
        """Get consent by key. Returns raw dict (caller converts to ConsentRecord)."""
        with self._lock:
            row = self._get_conn().execute(
                "SELECT * FROM consents WHERE patient = ? AND data_id = ?",
                (patient, data_id),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_consent_dict(row)

    def save_consent(self, patient: str, data_id: int, record: ConsentRecord) -> None:
        """Save or overwrite the consent record for (patient, data_id)."""
        data = record.model_dump(mode="json")
        with self._lock:
            self._get_conn().execute(
                """INSERT OR REPLACE INTO consents
                   (patient, data_id, researcher, expiry_height, allowed,
                    access_type, granted_at_height, timestamp, version)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    patient,
                    data_id,
                    data["researcher"],
                    data["expiry_height"],
                    1 if data["allowed"] else 0,
                    data["access_type"],
                    data["granted_at_height"],
                    data["timestamp"],
                    data["version"],
                ),
            )

    def get_consent_count(self, patient: str) -> int:
        with self._lock:
            row = self._get_conn().execute(
                "SELECT count FROM consent_counts WHERE patient = ?", (patient,)
            ).fetchone()
        return row["count"] if row else 0

    def set_consent_count(self, patient: str, count: int) -> None:
        with self._lock:
            self._get_conn().execute(
                "INSERT OR REPLACE INTO consent_counts (patient, count) VALUES (?, ?)",
                (patient, count),
            )

    def _row_to_consent_dict(self, row: sqlite3.Row) -> Dict[str, Any]:
        """Convert SQLite row to a dict suitable for ConsentRecord construction."""
        return {
            "researcher": row["researcher"],
            "expiry_height": row["expiry_height"],
            "allowed": bool(row["allowed"]),
            "access_type": row["access_type"],
            "granted_at_height": row["granted_at_height"],
            "timestamp": row["timestamp"],
            "version": row["version"],
        }

    # =========================================================================
    # VERIFIED RESEARCHERS
    # =========================================================================

    def is_verified(self, researcher: str) -> bool:
        with self._lock:
            row = self._get_conn().execute(
                "SELECT 1 FROM verified_researchers WHERE researcher = ? LIMIT 1",
                (researcher,),
            ).fetchone()
        return row is not None

    def add_verified_researcher(self, researcher: str, height: Optional[int] = None) -> bool:
        """Mark a researcher as verified. Returns False if already verified."""
        with self._lock:
            cursor = self._get_conn().execute(
                "INSERT OR IGNORE INTO verified_researchers (researcher, verified_at_height) VALUES (?, ?)",
                (researcher, height),
            )
        return cursor.rowcount > 0

    def count_verified_researchers(self) -> int:
        with self._lock:
            row = self._get_conn().execute(
                "SELECT COUNT(*) AS cnt FROM verified_researchers"
            ).fetchone()
        return row["cnt"]

    # =========================================================================
    # RATE LIMIT COUNTS
    # =========================================================================

    def get_access_count(self, researcher: str, cycle: int) -> int:
        with self._lock:
            row = self._get_conn().execute(
                "SELECT count FROM researcher_access_counts WHERE researcher = ? AND cycle = ?",
                (researcher, cycle),
            ).fetchone()
        return row["count"] if row else 0

    def set_access_count(self, researcher: str, cycle: int, count: int) -> None:
        with self._lock:
            self._get_conn().execute(
                """INSERT OR REPLACE INTO researcher_access_counts
                   (researcher, cycle, count) VALUES (?, ?, ?)""",
                (researcher, cycle, count),
            )

    # =========================================================================
    # ACCESS LOG
    # =========================================================================

    def append_access_log(self, entry: AccessLogEntry) -> None:
        """
        Append an access log row.

        Raises:
            LedgerStorageError: If the log id is already taken.
        """
        data = entry.model_dump(mode="json")
        try:
            with self._lock:
                self._get_conn().execute(
                    """INSERT INTO access_logs
                       (log_id, data_id, researcher, patient, access_type, timestamp)
                       VALUES (?, ?, ?, ?, ?, ?)""",
                    (
                        data["log_id"],
                        data["data_id"],
                        data["researcher"],
                        data["patient"],
                        data["access_type"],
                        data["timestamp"],
                    ),
                )
        except sqlite3.IntegrityError as e:
            raise LedgerStorageError(
                f"Access log {entry.log_id} already exists: {e}",
                table="access_logs",
            ) from e

    def get_access_log(self, log_id: int) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._get_conn().execute(
                "SELECT * FROM access_logs WHERE log_id = ?", (log_id,)
            ).fetchone()
        if row is None:
            return None
        return dict(row)

    def query_access_logs(
        self,
        researcher: Optional[str] = None,
        patient: Optional[str] = None,
        data_id: Optional[int] = None,
        limit: int = 1000,
    ) -> List[Dict[str, Any]]:
        """Query the access log with optional filters, oldest first."""
        query = "SELECT * FROM access_logs WHERE 1=1"
        params: list = []
        if researcher:
            query += " AND researcher = ?"
            params.append(researcher)
        if patient:
            query += " AND patient = ?"
            params.append(patient)
        if data_id is not None:
            query += " AND data_id = ?"
            params.append(data_id)

        query += " ORDER BY log_id ASC LIMIT ?"
        params.append(limit)

        with self._lock:
            rows = self._get_conn().execute(query, params).fetchall()
        return [dict(r) for r in rows]

    # =========================================================================
    # COUNTERS
    # =========================================================================

    def get_counter(self, name: str) -> int:
        with self._lock:
            row = self._get_conn().execute(
                "SELECT value FROM counters WHERE name = ?", (name,)
            ).fetchone()
        return row["value"] if row else 0

    def set_counter(self, name: str, value: int) -> None:
        with self._lock:
            self._get_conn().execute(
                "INSERT OR REPLACE INTO counters (name, value) VALUES (?, ?)",
                (name, value),
            )
