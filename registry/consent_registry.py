"""
Consent Registry Module
=======================
In-memory consent verifier. Selects the applicable consent for a request
(scope, priority, coverage), reports per-category sensitivity and derives
the risk tier and audit requirement for the engine.
"""

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence
import structlog

from core.models import (
    CategoryConsent,
    ConsentOutcome,
    ConsentRecord,
    ConsentStatus,
    ConsentType,
    RiskTier,
    SensitivityTier,
    utcnow,
)
from core.utils import redact_id

logger = structlog.get_logger(__name__)


DEFAULT_AUDIT_CATEGORY_THRESHOLD = 5

# Lower rank wins.
CONSENT_PRIORITY = {
    ConsentType.EMERGENCY: 0,
    ConsentType.TREATMENT: 1,
}
DEFAULT_PRIORITY = 2


@dataclass
class ConsentSummary:
    """Consent counts for one patient."""

    subject_id: str
    total: int = 0
    active: int = 0
    expired: int = 0
    revoked: int = 0
    last_consent_at: Optional[datetime] = None
    next_expiry: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "total": self.total,
            "active": self.active,
            "expired": self.expired,
            "revoked": self.revoked,
            "last_consent_at": self.last_consent_at.isoformat() if self.last_consent_at else None,
            "next_expiry": self.next_expiry.isoformat() if self.next_expiry else None,
        }


def assess_risk(categories: Sequence[CategoryConsent]) -> RiskTier:
    """Highest risk implied by the granted categories."""
    if any(c.sensitivity == SensitivityTier.CRITICAL for c in categories):
        return RiskTier.CRITICAL
    if any(c.sensitivity == SensitivityTier.ELEVATED for c in categories):
        return RiskTier.HIGH
    if any(c.requires_explicit_consent for c in categories):
        return RiskTier.MEDIUM
    return RiskTier.LOW


class InMemoryConsentRegistry:
    """
    ConsentVerifier backed by in-memory consent records.

    Example:
        >>> registry = InMemoryConsentRegistry()
        >>> registry.add_consent(record)
        >>> outcome = await registry.verify("patient-1", "dr-1", "doctor",
        ...                                 ["demographics"], "treatment")
    """

    def __init__(
        self,
        audit_category_threshold: int = DEFAULT_AUDIT_CATEGORY_THRESHOLD,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.audit_category_threshold = audit_category_threshold
        self._clock = clock
        self._consents: Dict[str, ConsentRecord] = {}
        self._lock = threading.Lock()

    # =========================================================================
    # Record management
    # =========================================================================

    def add_consent(self, record: ConsentRecord) -> ConsentRecord:
        """Load an existing consent record into the registry."""
        with self._lock:
            self._consents[record.consent_id] = record
        logger.debug(
            "Consent loaded",
            consent_id=record.consent_id,
            subject_id=redact_id(record.subject_id),
            consent_type=record.consent_type.value,
        )
        return record

    def get_consents(self, subject_id: str) -> List[ConsentRecord]:
        with self._lock:
            return [c for c in self._consents.values() if c.subject_id == subject_id]

    def revoke_consent(self, consent_id: str, reason: str, revoked_by: str) -> bool:
        """
        Revoke a consent.

        Returns:
            True if the consent was found and revoked, False otherwise
        """
        with self._lock:
            record = self._consents.get(consent_id)
            if record is None or record.status == ConsentStatus.REVOKED:
                return False
            self._consents[consent_id] = record.model_copy(
                update={
                    "status": ConsentStatus.REVOKED,
                    "revoked_at": self._clock(),
                    "revoked_by": revoked_by,
                    "revoked_reason": reason,
                }
            )
        logger.info(
            "Consent revoked",
            consent_id=consent_id,
            subject_id=redact_id(record.subject_id),
            revoked_by=revoked_by,
        )
        return True

    def get_consent_summary(self, subject_id: str) -> ConsentSummary:
        now = self._clock()
        summary = ConsentSummary(subject_id=subject_id)
        for record in self.get_consents(subject_id):
            summary.total += 1
            if record.status == ConsentStatus.REVOKED:
                summary.revoked += 1
            elif record.status == ConsentStatus.EXPIRED or (
                record.expires_at is not None and record.expires_at <= now
            ):
                summary.expired += 1
            elif record.is_active(now):
                summary.active += 1
                if record.expires_at is not None and (
                    summary.next_expiry is None or record.expires_at < summary.next_expiry
                ):
                    summary.next_expiry = record.expires_at
            if summary.last_consent_at is None or record.created_at > summary.last_consent_at:
                summary.last_consent_at = record.created_at
        return summary

    # =========================================================================
    # Verification
    # =========================================================================

    async def verify(
        self,
        subject_id: str,
        requester_id: str,
        requester_role: str,
        categories: Sequence[str],
        purpose: str,
        facility_id: Optional[str] = None,
        provider_id: Optional[str] = None,
        service_type: Optional[str] = None,
        emergency_override: bool = False,
    ) -> ConsentOutcome:
        if emergency_override:
            return self._emergency_outcome(subject_id, requester_id, categories)

        now = self._clock()
        active = [c for c in self.get_consents(subject_id) if c.is_active(now)]
        if not active:
            return self._violation(
                subject_id, requester_id, "No active consent found for patient"
            )

        applicable = [
            c for c in active
            if self._in_scope(c, purpose, facility_id, provider_id, service_type)
        ]
        if not applicable:
            return self._violation(
                subject_id, requester_id, "No consent applies to the request scope"
            )

        candidates = []
        for record in applicable:
            granted = {entry.category: entry for entry in record.categories}
            covered = [granted[c] for c in categories if c in granted]
            if covered:
                candidates.append((record, covered))
        if not candidates:
            return self._violation(
                subject_id, requester_id, "Consent does not cover the requested data categories"
            )

        candidates.sort(
            key=lambda item: (
                len(item[1]) < len(categories),
                CONSENT_PRIORITY.get(item[0].consent_type, DEFAULT_PRIORITY),
                -item[0].created_at.timestamp(),
            )
        )
        record, covered = candidates[0]

        risk = assess_risk(covered)
        audit_required = (
            risk in (RiskTier.HIGH, RiskTier.CRITICAL)
            or len(categories) > self.audit_category_threshold
            or len(covered) < len(categories)
        )

        logger.info(
            "Consent verified",
            subject_id=redact_id(subject_id),
            consent_id=record.consent_id,
            covered=len(covered),
            requested=len(categories),
            risk=risk.value,
        )

        return ConsentOutcome(
            consent_valid=True,
            consent_id=record.consent_id,
            consent_type=record.consent_type,
            categories=covered,
            risk_tier=risk,
            audit_required=audit_required,
            justification=(
                f"Consent {record.consent_id} ({record.consent_type.value}) covers "
                f"{len(covered)} of {len(categories)} requested categories"
            ),
            expires_at=record.expires_at,
        )

    @staticmethod
    def _in_scope(
        record: ConsentRecord,
        purpose: str,
        facility_id: Optional[str],
        provider_id: Optional[str],
        service_type: Optional[str],
    ) -> bool:
        scope = record.scope
        if scope.purposes and purpose not in scope.purposes:
            return False
        if facility_id and scope.facilities and facility_id not in scope.facilities:
            return False
        if provider_id and scope.providers and provider_id not in scope.providers:
            return False
        if service_type and scope.services and service_type not in scope.services:
            return False
        return True

    def _emergency_outcome(
        self, subject_id: str, requester_id: str, categories: Sequence[str]
    ) -> ConsentOutcome:
        logger.warning(
            "Emergency consent override",
            subject_id=redact_id(subject_id),
            requester_id=requester_id,
            categories=len(categories),
        )
        return ConsentOutcome(
            consent_valid=True,
            consent_type=ConsentType.EMERGENCY,
            categories=[
                CategoryConsent(
                    category=c,
                    sensitivity=SensitivityTier.ELEVATED,
                    requires_explicit_consent=False,
                    description="Emergency access",
                )
                for c in categories
            ],
            risk_tier=RiskTier.CRITICAL,
            audit_required=True,
            justification="Emergency override invoked; access requires immediate audit review",
        )

    @staticmethod
    def _violation(subject_id: str, requester_id: str, reason: str) -> ConsentOutcome:
        logger.warning(
            "Consent violation",
            subject_id=redact_id(subject_id),
            requester_id=requester_id,
            reason=reason,
        )
        return ConsentOutcome(consent_valid=False, justification=reason)
