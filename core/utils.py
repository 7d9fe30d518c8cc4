"""
Consent Guard Utility Functions
===============================
Logging setup, hashing and identifier helpers shared across packages.
"""

import hashlib
import json
import logging
import secrets
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

import structlog


# =============================================================================
# Logging Setup
# =============================================================================


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[str] = None,
) -> structlog.BoundLogger:
    """
    Configure structured logging for the access engine.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        log_format: Output format (json, console).
        log_file: Optional file path for log output.

    Returns:
        Configured logger instance.
    """
    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        renderer,
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper()),
        handlers=handlers,
    )

    return structlog.get_logger()


def redact_id(identifier: Optional[str], keep: int = 8) -> str:
    """Shorten an identifier for log output."""
    if not identifier:
        return "<none>"
    if len(identifier) <= keep:
        return identifier
    return identifier[:keep] + "..."


# =============================================================================
# Hashing and Integrity
# =============================================================================


def compute_hash(data: Union[str, bytes, Dict, List], algorithm: str = "sha256") -> str:
    """
    Compute cryptographic hash of data.

    Dictionaries and lists are serialized as canonical JSON first, so
    structurally equal inputs hash identically.

    Args:
        data: Data to hash (string, bytes, dictionary or list).
        algorithm: Hash algorithm (sha256, sha512).

    Returns:
        Hexadecimal hash string.
    """
    if isinstance(data, (dict, list)):
        data = json.dumps(data, sort_keys=True, separators=(",", ":"))
    if isinstance(data, str):
        data = data.encode("utf-8")

    hasher = hashlib.new(algorithm)
    hasher.update(data)
    return hasher.hexdigest()


# =============================================================================
# ID Generation
# =============================================================================


def generate_id(prefix: str = "", length: int = 16) -> str:
    """
    Generate a unique identifier.

    Args:
        prefix: Optional prefix for the ID.
        length: Length of the random portion.

    Returns:
        Unique identifier string.
    """
    random_part = secrets.token_hex(length // 2)
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")

    if prefix:
        return f"{prefix}-{timestamp}-{random_part}"
    return f"{timestamp}-{random_part}"
