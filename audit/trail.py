"""
Audit Trail Module
==================
Audit sinks for data access decisions: in-memory, structured file
(optionally encrypted) and a retrying wrapper that alerts on repeated
failures.
"""

import asyncio
import json
import threading
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional
import structlog

from core.models import AuditRecord, utcnow
from core.exceptions import AuditWriteError
from access.collaborators import AuditSink, EncryptionProvider

logger = structlog.get_logger(__name__)


class InMemoryAuditSink:
    """Append-only in-process audit store (tests, simulation mode)."""

    def __init__(self):
        self._records: List[AuditRecord] = []
        self._lock = threading.Lock()

    async def write(self, record: AuditRecord) -> bool:
        with self._lock:
            self._records.append(record)
        return True

    @property
    def records(self) -> List[AuditRecord]:
        with self._lock:
            return list(self._records)

    def query(
        self,
        subject_id: Optional[str] = None,
        requester_id: Optional[str] = None,
        allowed: Optional[bool] = None,
    ) -> List[AuditRecord]:
        """Filter stored records."""
        results = self.records
        if subject_id is not None:
            results = [r for r in results if r.subject_id == subject_id]
        if requester_id is not None:
            results = [r for r in results if r.requester_id == requester_id]
        if allowed is not None:
            results = [r for r in results if r.allowed == allowed]
        return results

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class StructuredFileAuditSink:
    """
    JSON-lines audit files, one per UTC day.

    With an encryption provider each line holds the key id and the
    ciphertext of the record instead of the record itself.
    """

    def __init__(
        self,
        storage_path: Optional[str] = None,
        encryption: Optional[EncryptionProvider] = None,
        file_prefix: str = "access_audit",
    ):
        """
        Initialize file audit sink.

        Args:
            storage_path: Directory for audit files.
            encryption: Optional provider used to encrypt each record.
            file_prefix: File name prefix.
        """
        self.storage_path = Path(storage_path) if storage_path else Path("logs/audit")
        self.storage_path.mkdir(parents=True, exist_ok=True)
        self.encryption = encryption
        self.file_prefix = file_prefix
        self._lock = threading.Lock()

    def file_for(self, day: date) -> Path:
        return self.storage_path / f"{self.file_prefix}_{day.isoformat()}.jsonl"

    async def write(self, record: AuditRecord) -> bool:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._append, record)
        return True

    def _append(self, record: AuditRecord) -> None:
        line = self._encode(record)
        file_path = self.file_for(record.timestamp.date())
        try:
            with self._lock, open(file_path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            raise AuditWriteError(
                f"Failed to write audit record to {file_path}: {e}",
                record_id=record.record_id,
            )

    def _encode(self, record: AuditRecord) -> str:
        payload = json.dumps(record.to_log_entry(), sort_keys=True)
        if self.encryption is None:
            return payload
        token = self.encryption.encrypt(payload.encode("utf-8"))
        return json.dumps({"key_id": self.encryption.key_id, "ciphertext": token.decode("ascii")})

    def read_records(self, day: Optional[date] = None) -> List[AuditRecord]:
        """Read back (and decrypt) the records written on ``day`` (UTC)."""
        day = day or utcnow().date()
        file_path = self.file_for(day)
        if not file_path.is_file():
            return []

        records: List[AuditRecord] = []
        with open(file_path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    records.append(AuditRecord.model_validate(self._decode(line)))
        return records

    def _decode(self, line: str) -> Dict[str, Any]:
        entry = json.loads(line)
        if "ciphertext" not in entry:
            return entry
        if self.encryption is None:
            raise AuditWriteError("Encrypted audit file read without an encryption provider")
        plaintext = self.encryption.decrypt(entry["ciphertext"].encode("ascii"))
        return json.loads(plaintext.decode("utf-8"))


class RetryingAuditSink:
    """
    Retries a wrapped sink and raises alerts through the log.

    A write that still fails after ``max_retries`` retries is reported at
    error level; ``alert_threshold`` consecutive failed writes escalate to
    critical. The wrapper itself never raises.
    """

    def __init__(
        self,
        sink: AuditSink,
        max_retries: int = 3,
        retry_delay: float = 0.1,
        alert_threshold: int = 3,
    ):
        self.sink = sink
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.alert_threshold = alert_threshold
        self.consecutive_failures = 0
        self.total_failures = 0

    async def write(self, record: AuditRecord) -> bool:
        last_error: Optional[str] = None
        for attempt in range(self.max_retries + 1):
            try:
                if await self.sink.write(record):
                    self.consecutive_failures = 0
                    return True
                last_error = "sink rejected record"
            except Exception as e:
                last_error = str(e)
            if attempt < self.max_retries:
                logger.warning(
                    "Audit write retry",
                    record_id=record.record_id,
                    attempt=attempt + 1,
                    error=last_error,
                )
                await asyncio.sleep(self.retry_delay * (2 ** attempt))

        self.consecutive_failures += 1
        self.total_failures += 1
        logger.error(
            "Audit write failed after retries",
            record_id=record.record_id,
            retries=self.max_retries,
            error=last_error,
        )
        if self.consecutive_failures >= self.alert_threshold:
            logger.critical(
                "Repeated audit write failures",
                consecutive_failures=self.consecutive_failures,
                sink=type(self.sink).__name__,
            )
        return False
