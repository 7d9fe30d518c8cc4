"""
Consent Guard Core Module
=========================
Data models, exceptions and utilities shared by the access engine,
the reference collaborators and the audit subsystem.
"""

from .models import (
    AccessType,
    SensitivityTier,
    RiskTier,
    ConsentStatus,
    ConsentType,
    AuditOutcome,
    AccessRequest,
    UserProfile,
    AuthorizationOutcome,
    CategoryConsent,
    ConsentOutcome,
    AccessDecision,
    AuditContext,
    AuditRecord,
    ConsentScope,
    ConsentRecord,
)
from .exceptions import (
    ConsentGuardError,
    CollaboratorError,
    CollaboratorTimeoutError,
    MalformedCollaboratorResponseError,
    AuditError,
    AuditWriteError,
    EncryptionError,
    ConfigurationError,
)

__all__ = [
    # Enums
    "AccessType",
    "SensitivityTier",
    "RiskTier",
    "ConsentStatus",
    "ConsentType",
    "AuditOutcome",
    # Models
    "AccessRequest",
    "UserProfile",
    "AuthorizationOutcome",
    "CategoryConsent",
    "ConsentOutcome",
    "AccessDecision",
    "AuditContext",
    "AuditRecord",
    "ConsentScope",
    "ConsentRecord",
    # Exceptions
    "ConsentGuardError",
    "CollaboratorError",
    "CollaboratorTimeoutError",
    "MalformedCollaboratorResponseError",
    "AuditError",
    "AuditWriteError",
    "EncryptionError",
    "ConfigurationError",
]
