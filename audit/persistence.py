"""
SQLite persistence backend for data access audit records.

Uses WAL journal mode for concurrent read/write access and thread-local
connections, since writes run on executor threads.
"""

import asyncio
import json
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.models import AuditRecord
from core.exceptions import AuditWriteError


DEFAULT_DB_PATH = Path("data/access_audit.db")


class SQLiteAuditSink:
    """Thread-safe SQLite audit sink. Records are insert-only."""

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize audit database.

        Args:
            db_path: Path to SQLite database file. Use ':memory:' for testing
                     (each thread then sees its own database).
                     Defaults to 'data/access_audit.db'.
        """
        if db_path == ":memory:":
            self.db_path = ":memory:"
        else:
            self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._local = threading.local()
        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        """Get thread-local connection."""
        if getattr(self._local, "conn", None) is None:
            self._local.conn = sqlite3.connect(str(self.db_path))
            self._local.conn.row_factory = sqlite3.Row
            self._local.conn.execute("PRAGMA journal_mode=WAL")
            self._init_schema_on(self._local.conn)
        return self._local.conn

    def _init_schema(self) -> None:
        self._get_conn()

    @staticmethod
    def _init_schema_on(conn: sqlite3.Connection) -> None:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS data_access_audit (
                record_id TEXT PRIMARY KEY,
                timestamp TEXT NOT NULL,
                outcome TEXT NOT NULL,
                requester_id TEXT NOT NULL,
                requester_role TEXT,
                subject_id TEXT NOT NULL,
                data_categories TEXT NOT NULL DEFAULT '[]',
                purpose TEXT,
                access_type TEXT NOT NULL,
                facility_id TEXT,
                provider_id TEXT,
                service_type TEXT,
                emergency_override INTEGER DEFAULT 0,
                justification TEXT,
                allowed INTEGER NOT NULL,
                consent_verified INTEGER NOT NULL,
                risk_tier TEXT NOT NULL,
                audit_required INTEGER NOT NULL,
                error TEXT,
                network_origin TEXT,
                user_agent TEXT,
                session_id TEXT,
                created_at TEXT DEFAULT (datetime('now'))
            );
            CREATE INDEX IF NOT EXISTS idx_access_audit_subject
                ON data_access_audit(subject_id);
            CREATE INDEX IF NOT EXISTS idx_access_audit_requester
                ON data_access_audit(requester_id);
            CREATE INDEX IF NOT EXISTS idx_access_audit_timestamp
                ON data_access_audit(timestamp);
        """)
        conn.commit()

    def close(self) -> None:
        """Close thread-local connection."""
        if getattr(self._local, "conn", None) is not None:
            self._local.conn.close()
            self._local.conn = None

    # =========================================================================
    # WRITE
    # =========================================================================

    async def write(self, record: AuditRecord) -> bool:
        if self.db_path == ":memory:":
            # An executor thread would get a separate in-memory database.
            self.save_record(record)
        else:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self.save_record, record)
        return True

    def save_record(self, record: AuditRecord) -> None:
        """Insert one audit record. Existing records are never replaced."""
        data = record.to_log_entry()
        conn = self._get_conn()
        try:
            conn.execute(
                """INSERT INTO data_access_audit
                   (record_id, timestamp, outcome, requester_id, requester_role,
                    subject_id, data_categories, purpose, access_type,
                    facility_id, provider_id, service_type, emergency_override,
                    justification, allowed, consent_verified, risk_tier,
                    audit_required, error, network_origin, user_agent, session_id)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?,
                           ?, ?, ?, ?)""",
                (
                    data["record_id"],
                    data["timestamp"],
                    data["outcome"],
                    data["requester_id"],
                    data["requester_role"],
                    data["subject_id"],
                    json.dumps(data["data_categories"]),
                    data["purpose"],
                    data["access_type"],
                    data.get("facility_id"),
                    data.get("provider_id"),
                    data.get("service_type"),
                    1 if data["emergency_override"] else 0,
                    data.get("justification"),
                    1 if data["allowed"] else 0,
                    1 if data["consent_verified"] else 0,
                    data["risk_tier"],
                    1 if data["audit_required"] else 0,
                    data.get("error"),
                    data["network_origin"],
                    data["user_agent"],
                    data["session_id"],
                ),
            )
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise AuditWriteError(f"Failed to persist audit record: {e}", record_id=record.record_id)

    # =========================================================================
    # QUERY
    # =========================================================================

    def query(
        self,
        subject_id: Optional[str] = None,
        requester_id: Optional[str] = None,
        allowed: Optional[bool] = None,
        limit: int = 1000,
    ) -> List[Dict[str, Any]]:
        """Query audit records with optional filters, newest first."""
        conn = self._get_conn()
        query = "SELECT * FROM data_access_audit WHERE 1=1"
        params: list = []
        if subject_id:
            query += " AND subject_id = ?"
            params.append(subject_id)
        if requester_id:
            query += " AND requester_id = ?"
            params.append(requester_id)
        if allowed is not None:
            query += " AND allowed = ?"
            params.append(1 if allowed else 0)

        query += " ORDER BY timestamp DESC LIMIT ?"
        params.append(limit)

        rows = conn.execute(query, params).fetchall()
        return [self._row_to_dict(r) for r in rows]

    def count(self) -> int:
        conn = self._get_conn()
        row = conn.execute("SELECT COUNT(*) AS cnt FROM data_access_audit").fetchone()
        return row["cnt"]

    def _row_to_dict(self, row: sqlite3.Row) -> Dict[str, Any]:
        """Convert SQLite row to a dict suitable for AuditRecord construction."""
        entry = {key: row[key] for key in row.keys() if key != "created_at"}
        entry["data_categories"] = json.loads(row["data_categories"])
        for flag in ("emergency_override", "allowed", "consent_verified", "audit_required"):
            entry[flag] = bool(row[flag])
        return entry
