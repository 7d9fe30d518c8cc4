"""
Restriction Evaluator Module
============================
Splits requested categories into releasable and restricted sets using
the consent verifier's per-category answers.
"""

from dataclasses import dataclass
from typing import Iterable, List, Tuple

from core.models import ConsentOutcome, SensitivityTier


@dataclass(frozen=True)
class RestrictionResult:
    """Partition of the requested categories."""

    allowed: Tuple[str, ...]
    restricted: Tuple[str, ...]
    audit_required: bool
    reasons: Tuple[str, ...]


class RestrictionEvaluator:
    """
    Pure, deterministic category partitioning.

    Identical inputs always yield identical partitions, which is what
    makes memoized decisions safe to serve.
    """

    @staticmethod
    def no_consent_reason(category: str) -> str:
        return f"No consent for category: {category}"

    @staticmethod
    def critical_reason(category: str) -> str:
        return f"Critical sensitivity data requires special authorization: {category}"

    def evaluate(self, categories: Iterable[str], consent: ConsentOutcome) -> RestrictionResult:
        """
        Partition ``categories`` in input order.

        Args:
            categories: Requested categories (deduplicated).
            consent: Consent verifier outcome for the request.

        Returns:
            RestrictionResult with allowed/restricted sets, the aggregated
            audit flag and one reason per restricted category.
        """
        allowed: List[str] = []
        restricted: List[str] = []
        reasons: List[str] = []
        audit_required = consent.audit_required

        for category in categories:
            entry = consent.for_category(category)

            if entry is None:
                restricted.append(category)
                reasons.append(self.no_consent_reason(category))
                continue

            if entry.sensitivity == SensitivityTier.CRITICAL:
                restricted.append(category)
                reasons.append(self.critical_reason(category))
                audit_required = True
                continue

            # Released without a further verification step; flagged for audit.
            if entry.requires_explicit_consent:
                audit_required = True

            allowed.append(category)

        return RestrictionResult(
            allowed=tuple(allowed),
            restricted=tuple(restricted),
            audit_required=audit_required,
            reasons=tuple(reasons),
        )
