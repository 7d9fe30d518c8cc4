"""
Tests for Core Models, Exceptions and Utilities
===============================================
"""

import pytest
from pydantic import ValidationError

from core.models import (
    AccessDecision,
    AccessRequest,
    AccessType,
    ConsentOutcome,
    RiskTier,
)
from core.exceptions import (
    CollaboratorTimeoutError,
    ConsentGuardError,
    MalformedCollaboratorResponseError,
)
from core.utils import compute_hash, generate_id, redact_id


class TestAccessRequest:

    def test_categories_deduplicated_in_order(self):
        request = AccessRequest(
            requester_id="dr-1",
            requester_role="doctor",
            subject_id="p-1",
            data_categories=["b", "a", "b", "c", "a"],
            purpose="treatment",
        )

        assert request.data_categories == ("b", "a", "c")
        assert request.access_type == AccessType.VIEW

    def test_empty_categories_rejected(self):
        with pytest.raises(ValidationError):
            AccessRequest(
                requester_id="dr-1",
                requester_role="doctor",
                subject_id="p-1",
                data_categories=[],
                purpose="treatment",
            )

    def test_immutable(self):
        request = AccessRequest(
            requester_id="dr-1",
            requester_role="doctor",
            subject_id="p-1",
            data_categories="demographics",
            purpose="treatment",
        )

        assert request.data_categories == ("demographics",)
        with pytest.raises(ValidationError):
            request.subject_id = "p-2"

    def test_unknown_access_type(self):
        with pytest.raises(ValidationError):
            AccessRequest(
                requester_id="dr-1",
                requester_role="doctor",
                subject_id="p-1",
                data_categories=["a"],
                purpose="treatment",
                access_type="print",
            )


class TestAccessDecision:

    def test_overlap_rejected(self):
        with pytest.raises(ValidationError):
            AccessDecision(
                allowed=True,
                consent_verified=True,
                accessible=("a",),
                restricted=("a",),
                risk_tier=RiskTier.LOW,
                audit_required=False,
            )

    def test_allowed_requires_accessible(self):
        with pytest.raises(ValidationError):
            AccessDecision(
                allowed=True,
                consent_verified=True,
                restricted=("a",),
                risk_tier=RiskTier.LOW,
                audit_required=False,
            )

    def test_denied_and_fault_restrict_everything(self):
        denied = AccessDecision.denied(("a", "b"), "User not authorized: inactive")
        fault = AccessDecision.fault(("a", "b"), "Verification failed: boom")

        for decision in (denied, fault):
            assert decision.allowed is False
            assert decision.accessible == ()
            assert decision.restricted == ("a", "b")
            assert decision.risk_tier == RiskTier.CRITICAL
            assert decision.audit_required is True
        assert denied.is_systemic_fault is False
        assert fault.is_systemic_fault is True


class TestConsentOutcome:

    def test_invalid_outcome_gets_justification(self):
        outcome = ConsentOutcome(consent_valid=False)
        assert outcome.justification

    def test_for_category(self):
        outcome = ConsentOutcome.model_validate(
            {"consent_valid": True, "categories": [{"category": "a", "sensitivity": "critical"}]}
        )
        assert outcome.for_category("a").sensitivity.value == "critical"
        assert outcome.for_category("b") is None


class TestExceptions:

    def test_error_code_in_message(self):
        error = CollaboratorTimeoutError("ConsentVerifier", "verify", 1.5)

        assert isinstance(error, ConsentGuardError)
        assert str(error).startswith("[COLLABORATOR_TIMEOUT]")
        assert error.to_dict()["details"]["collaborator"] == "ConsentVerifier"

    def test_malformed_response_names_type(self):
        error = MalformedCollaboratorResponseError("UserDirectory", "resolve", 42)
        assert "int" in str(error)


class TestUtils:

    def test_compute_hash_canonical(self):
        assert compute_hash({"a": 1, "b": [1, 2]}) == compute_hash({"b": [1, 2], "a": 1})
        assert compute_hash({"a": "x"}) != compute_hash({"a": "y"})
        assert len(compute_hash("text")) == 64

    def test_generate_id(self):
        first = generate_id("access")
        second = generate_id("access")

        assert first.startswith("access-")
        assert first != second

    def test_redact_id(self):
        assert redact_id("patient-123456789") == "patient-..."
        assert redact_id("short") == "short"
        assert redact_id(None) == "<none>"
