"""
Tests for Restriction Evaluator
===============================
"""

from core.models import CategoryConsent, ConsentOutcome, RiskTier, SensitivityTier
from access.restrictions import RestrictionEvaluator


def _consent(*entries, audit_required=False):
    return ConsentOutcome(
        consent_valid=True,
        categories=list(entries),
        risk_tier=RiskTier.LOW,
        audit_required=audit_required,
    )


class TestRestrictionEvaluator:
    """Tests for category partitioning."""

    def test_all_consented(self):
        consent = _consent(
            CategoryConsent(category="demographics"),
            CategoryConsent(category="lab_results"),
        )
        result = RestrictionEvaluator().evaluate(["demographics", "lab_results"], consent)

        assert result.allowed == ("demographics", "lab_results")
        assert result.restricted == ()
        assert result.reasons == ()
        assert result.audit_required is False

    def test_missing_consent_restricted(self):
        consent = _consent(CategoryConsent(category="demographics"))
        result = RestrictionEvaluator().evaluate(["demographics", "imaging"], consent)

        assert result.allowed == ("demographics",)
        assert result.restricted == ("imaging",)
        assert result.reasons == ("No consent for category: imaging",)

    def test_critical_always_restricted(self):
        consent = _consent(
            CategoryConsent(category="genetic_information", sensitivity=SensitivityTier.CRITICAL)
        )
        result = RestrictionEvaluator().evaluate(["genetic_information"], consent)

        assert result.allowed == ()
        assert result.restricted == ("genetic_information",)
        assert "Critical sensitivity" in result.reasons[0]
        assert result.audit_required is True

    def test_explicit_consent_allowed_but_audited(self):
        consent = _consent(
            CategoryConsent(
                category="mental_health",
                sensitivity=SensitivityTier.ELEVATED,
                requires_explicit_consent=True,
            )
        )
        result = RestrictionEvaluator().evaluate(["mental_health"], consent)

        assert result.allowed == ("mental_health",)
        assert result.audit_required is True

    def test_consent_audit_flag_propagates(self):
        consent = _consent(CategoryConsent(category="demographics"), audit_required=True)
        result = RestrictionEvaluator().evaluate(["demographics"], consent)

        assert result.audit_required is True

    def test_reasons_follow_input_order(self):
        consent = _consent(
            CategoryConsent(category="b", sensitivity=SensitivityTier.CRITICAL),
            CategoryConsent(category="d"),
        )
        result = RestrictionEvaluator().evaluate(["c", "d", "b", "a"], consent)

        assert result.restricted == ("c", "b", "a")
        assert result.reasons == (
            "No consent for category: c",
            "Critical sensitivity data requires special authorization: b",
            "No consent for category: a",
        )

    def test_partition_is_exact_and_deterministic(self):
        consent = _consent(
            CategoryConsent(category="x"),
            CategoryConsent(category="y", sensitivity=SensitivityTier.CRITICAL),
            CategoryConsent(category="z", requires_explicit_consent=True),
        )
        categories = ["w", "x", "y", "z"]
        evaluator = RestrictionEvaluator()
        first = evaluator.evaluate(categories, consent)
        second = evaluator.evaluate(categories, consent)

        assert first == second
        assert set(first.allowed) | set(first.restricted) == set(categories)
        assert not set(first.allowed) & set(first.restricted)
