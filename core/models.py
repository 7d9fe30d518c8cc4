"""
Consent Guard Data Models
=========================
Pydantic models for the records exchanged between the access engine,
its collaborators and its callers.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


# =============================================================================
# Enums
# =============================================================================


class AccessType(str, Enum):
    """Kind of access requested on patient data."""

    VIEW = "view"
    EDIT = "edit"
    EXPORT = "export"
    SHARE = "share"


class SensitivityTier(str, Enum):
    """Sensitivity classification of a data category."""

    NORMAL = "normal"
    ELEVATED = "elevated"
    CRITICAL = "critical"


class RiskTier(str, Enum):
    """Overall risk of releasing the data covered by a decision."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ConsentStatus(str, Enum):
    """Lifecycle status of a consent record."""

    GRANTED = "granted"
    REVOKED = "revoked"
    SUSPENDED = "suspended"
    EXPIRED = "expired"


class ConsentType(str, Enum):
    """Legal/clinical context a consent was given for."""

    TREATMENT = "treatment"
    PAYMENT = "payment"
    OPERATIONS = "operations"
    RESEARCH = "research"
    EMERGENCY = "emergency"
    MARKETING = "marketing"


class AuditOutcome(str, Enum):
    """Terminal state of a non-cached evaluation."""

    COMPLETED = "completed"
    DENIED_UNAUTHORIZED = "denied_unauthorized"
    DENIED_NO_CONSENT = "denied_no_consent"
    SYSTEMIC_FAULT = "systemic_fault"


# =============================================================================
# Requests & Collaborator Facts
# =============================================================================


class AccessRequest(BaseModel):
    """
    Request to access categorized data of a single patient.

    Categories keep their submission order; duplicates are dropped
    (first occurrence wins) so evaluation sees each category once.
    """

    model_config = ConfigDict(frozen=True)

    requester_id: str = Field(..., min_length=1, description="Requesting user identifier")
    requester_role: str = Field(..., description="Role label claimed by the requester")
    subject_id: str = Field(..., min_length=1, description="Patient identifier")
    data_categories: Tuple[str, ...] = Field(
        ..., description="Requested data categories, in request order"
    )
    purpose: str = Field(..., description="Declared purpose of use")
    access_type: AccessType = Field(default=AccessType.VIEW)
    facility_id: Optional[str] = None
    provider_id: Optional[str] = None
    service_type: Optional[str] = None
    emergency_override: bool = False
    justification: Optional[str] = None

    @field_validator("data_categories", mode="before")
    @classmethod
    def dedupe_categories(cls, v: Any) -> Tuple[str, ...]:
        if isinstance(v, str):
            v = [v]
        seen: List[str] = []
        for category in v:
            if category not in seen:
                seen.append(category)
        if not seen:
            raise ValueError("At least one data category must be requested")
        return tuple(seen)


class UserProfile(BaseModel):
    """Identity facts resolved by the user directory."""

    user_id: str
    active: bool = True
    roles: FrozenSet[str] = Field(default_factory=frozenset)
    permissions: FrozenSet[str] = Field(default_factory=frozenset)
    facilities: FrozenSet[str] = Field(default_factory=frozenset)


class AuthorizationOutcome(BaseModel):
    """Result of the role/permission/facility check for one request."""

    authorized: bool
    reason: Optional[str] = None

    @classmethod
    def granted(cls) -> "AuthorizationOutcome":
        return cls(authorized=True)

    @classmethod
    def denied(cls, reason: str) -> "AuthorizationOutcome":
        return cls(authorized=False, reason=reason)


class CategoryConsent(BaseModel):
    """Consent fact for a single data category."""

    category: str
    sensitivity: SensitivityTier = SensitivityTier.NORMAL
    requires_explicit_consent: bool = False
    description: Optional[str] = None


class ConsentOutcome(BaseModel):
    """Per-request answer of the consent verifier."""

    consent_valid: bool
    consent_id: Optional[str] = None
    consent_type: Optional[ConsentType] = None
    categories: List[CategoryConsent] = Field(default_factory=list)
    risk_tier: RiskTier = RiskTier.LOW
    audit_required: bool = False
    justification: Optional[str] = None
    expires_at: Optional[datetime] = None

    @model_validator(mode="after")
    def require_justification_when_invalid(self) -> "ConsentOutcome":
        if not self.consent_valid and not self.justification:
            self.justification = "Consent could not be verified"
        return self

    def for_category(self, category: str) -> Optional[CategoryConsent]:
        """Return the consent entry matching ``category``, if any."""
        for entry in self.categories:
            if entry.category == category:
                return entry
        return None


# =============================================================================
# Decisions
# =============================================================================


class AccessDecision(BaseModel):
    """
    Decision returned to callers and memoized by the decision cache.

    ``accessible`` and ``restricted`` never overlap, and a decision is
    allowed exactly when something is accessible. Policy denials carry
    ``denial_reason``; systemic faults carry ``error``.
    """

    model_config = ConfigDict(frozen=True)

    allowed: bool
    consent_verified: bool
    accessible: Tuple[str, ...] = ()
    restricted: Tuple[str, ...] = ()
    risk_tier: RiskTier
    audit_required: bool
    restriction_reasons: Tuple[str, ...] = ()
    denial_reason: Optional[str] = None
    error: Optional[str] = None

    @model_validator(mode="after")
    def check_partition(self) -> "AccessDecision":
        overlap = set(self.accessible) & set(self.restricted)
        if overlap:
            raise ValueError(f"Categories both accessible and restricted: {sorted(overlap)}")
        if self.allowed != bool(self.accessible):
            raise ValueError("allowed must be true exactly when categories are accessible")
        return self

    @property
    def is_systemic_fault(self) -> bool:
        return self.error is not None

    @classmethod
    def denied(cls, categories: Tuple[str, ...], reason: str) -> "AccessDecision":
        """Policy denial: every requested category is restricted."""
        return cls(
            allowed=False,
            consent_verified=False,
            restricted=tuple(categories),
            risk_tier=RiskTier.CRITICAL,
            audit_required=True,
            denial_reason=reason,
        )

    @classmethod
    def fault(cls, categories: Tuple[str, ...], error: str) -> "AccessDecision":
        """Fail-closed decision for an unexpected pipeline failure."""
        return cls(
            allowed=False,
            consent_verified=False,
            restricted=tuple(categories),
            risk_tier=RiskTier.CRITICAL,
            audit_required=True,
            error=error,
        )


# =============================================================================
# Audit Models
# =============================================================================


class AuditContext(BaseModel):
    """Caller context attached to audit records."""

    network_origin: str = "unknown"
    user_agent: str = "unknown"
    session_id: str = "unknown"


class AuditRecord(BaseModel):
    """Immutable, append-only record of one decision attempt."""

    model_config = ConfigDict(frozen=True)

    record_id: str = Field(..., description="Unique record identifier")
    timestamp: datetime = Field(default_factory=utcnow)
    outcome: AuditOutcome
    requester_id: str
    requester_role: str
    subject_id: str
    data_categories: Tuple[str, ...]
    purpose: str
    access_type: AccessType
    facility_id: Optional[str] = None
    provider_id: Optional[str] = None
    service_type: Optional[str] = None
    emergency_override: bool = False
    justification: Optional[str] = None
    allowed: bool
    consent_verified: bool
    risk_tier: RiskTier
    audit_required: bool
    error: Optional[str] = None
    network_origin: str = "unknown"
    user_agent: str = "unknown"
    session_id: str = "unknown"

    def to_log_entry(self) -> Dict[str, Any]:
        """Convert to a flat, JSON-serializable entry."""
        return self.model_dump(mode="json")


# =============================================================================
# Consent Records (reference verifier)
# =============================================================================


class ConsentScope(BaseModel):
    """Where and for what a consent applies. Empty lists mean unrestricted."""

    facilities: List[str] = Field(default_factory=list)
    providers: List[str] = Field(default_factory=list)
    services: List[str] = Field(default_factory=list)
    purposes: List[str] = Field(default_factory=list)


class ConsentRecord(BaseModel):
    """A patient's consent as held by the reference consent registry."""

    consent_id: str
    subject_id: str
    consent_type: ConsentType = ConsentType.TREATMENT
    status: ConsentStatus = ConsentStatus.GRANTED
    categories: List[CategoryConsent] = Field(default_factory=list)
    scope: ConsentScope = Field(default_factory=ConsentScope)
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    revoked_by: Optional[str] = None
    revoked_reason: Optional[str] = None

    def is_active(self, now: Optional[datetime] = None) -> bool:
        """Granted and not past its expiry."""
        now = now or utcnow()
        if self.status != ConsentStatus.GRANTED:
            return False
        return self.expires_at is None or self.expires_at > now

    def covered_categories(self) -> List[str]:
        return [entry.category for entry in self.categories]
