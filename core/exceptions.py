"""
Consent Guard Custom Exceptions
===============================
Custom exception classes for the consent-gated access engine.

These are raised inside the decision pipeline and by the reference
collaborators. The engine never lets them reach its callers: they are
converted into systemic-fault decisions.
"""

from typing import Optional, Any


class ConsentGuardError(Exception):
    """Base exception for all Consent Guard errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message

    def to_dict(self) -> dict:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


# =============================================================================
# Collaborator Exceptions
# =============================================================================


class CollaboratorError(ConsentGuardError):
    """Exception raised when an external collaborator fails."""

    def __init__(
        self,
        message: str,
        collaborator: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        super().__init__(
            message,
            error_code="COLLABORATOR_ERROR",
            details={"collaborator": collaborator, "operation": operation},
        )
        self.collaborator = collaborator
        self.operation = operation


class CollaboratorTimeoutError(CollaboratorError):
    """Exception raised when a collaborator call exceeds its time bound."""

    def __init__(self, collaborator: str, operation: str, timeout: float):
        super().__init__(
            f"{collaborator}.{operation} did not respond within {timeout:.2f}s",
            collaborator=collaborator,
            operation=operation,
        )
        self.error_code = "COLLABORATOR_TIMEOUT"
        self.timeout = timeout


class MalformedCollaboratorResponseError(CollaboratorError):
    """Exception raised when a collaborator returns data of the wrong shape."""

    def __init__(self, collaborator: str, operation: str, received: Any):
        super().__init__(
            f"{collaborator}.{operation} returned malformed data "
            f"({type(received).__name__})",
            collaborator=collaborator,
            operation=operation,
        )
        self.error_code = "MALFORMED_RESPONSE"
        self.received_type = type(received).__name__


# =============================================================================
# Audit Exceptions
# =============================================================================


class AuditError(ConsentGuardError):
    """Base exception for audit subsystem errors."""

    pass


class AuditWriteError(AuditError):
    """Exception raised when an audit record cannot be persisted."""

    def __init__(self, message: str, record_id: Optional[str] = None):
        super().__init__(
            message,
            error_code="AUDIT_WRITE_ERROR",
            details={"record_id": record_id},
        )
        self.record_id = record_id


class EncryptionError(AuditError):
    """Exception raised during encryption/decryption of audit payloads."""

    def __init__(self, message: str, operation: str):
        super().__init__(
            message,
            error_code="ENCRYPTION_ERROR",
            details={"operation": operation},
        )
        self.operation = operation


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigurationError(ConsentGuardError):
    """Exception raised for configuration errors."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        super().__init__(
            message,
            error_code="CONFIGURATION_ERROR",
            details={"config_key": config_key},
        )
