"""
Consent Guard Audit Layer
=========================
Audit sinks for access decisions and the factory that builds one from
the ``audit`` configuration section.
"""

import os
from typing import Any, Dict, Optional

from core.exceptions import ConfigurationError
from .encryption import FernetEncryptionProvider
from .trail import InMemoryAuditSink, StructuredFileAuditSink, RetryingAuditSink
from .persistence import SQLiteAuditSink

AUDIT_KEY_ENV = "CONSENT_GUARD_AUDIT_KEY"

AUDIT_BACKENDS = ("memory", "structured_file", "sqlite")


def create_audit_sink(audit_cfg: Optional[Dict[str, Any]] = None):
    """
    Build an audit sink from the ``audit`` config section.

    Args:
        audit_cfg: Audit configuration (backend, storage_path, db_path,
                   encrypt, encryption_key, max_retries, retry_delay,
                   alert_threshold).

    Returns:
        An AuditSink, wrapped in RetryingAuditSink when max_retries > 0.
    """
    audit_cfg = audit_cfg or {}
    backend = audit_cfg.get("backend", "structured_file")

    if backend == "memory":
        sink = InMemoryAuditSink()
    elif backend == "structured_file":
        encryption = None
        if audit_cfg.get("encrypt", False):
            key = audit_cfg.get("encryption_key") or os.environ.get(AUDIT_KEY_ENV)
            encryption = FernetEncryptionProvider(key)
        sink = StructuredFileAuditSink(
            storage_path=audit_cfg.get("storage_path"),
            encryption=encryption,
        )
    elif backend == "sqlite":
        sink = SQLiteAuditSink(audit_cfg.get("db_path"))
    else:
        raise ConfigurationError(
            f"Unknown audit backend '{backend}'. Expected one of {AUDIT_BACKENDS}",
            config_key="audit.backend",
        )

    max_retries = int(audit_cfg.get("max_retries", 0))
    if max_retries > 0:
        sink = RetryingAuditSink(
            sink,
            max_retries=max_retries,
            retry_delay=float(audit_cfg.get("retry_delay", 0.1)),
            alert_threshold=int(audit_cfg.get("alert_threshold", 3)),
        )
    return sink


__all__ = [
    "FernetEncryptionProvider",
    "InMemoryAuditSink",
    "StructuredFileAuditSink",
    "RetryingAuditSink",
    "SQLiteAuditSink",
    "create_audit_sink",
    "AUDIT_KEY_ENV",
]
