"""
Basic Access Check Example
==========================
Demonstrates consent-gated access decisions with Consent Guard.

This example shows how to:
1. Register users and patient consents in the reference collaborators
2. Build an access decision engine with an audit sink
3. Evaluate full, partial, cached and emergency requests
4. Read back the audit trail
"""

import asyncio
from datetime import timedelta

from core.models import (
    AccessRequest,
    AccessType,
    AuditContext,
    CategoryConsent,
    ConsentRecord,
    ConsentScope,
    ConsentType,
    SensitivityTier,
    utcnow,
)
from core.utils import setup_logging
from access import AccessDecisionEngine
from audit import InMemoryAuditSink
from registry import InMemoryConsentRegistry, InMemoryUserDirectory


def print_decision(label: str, decision) -> None:
    status = "ALLOWED" if decision.allowed else "DENIED"
    print(f"  - {label}: {status} (risk={decision.risk_tier.value}, audit={decision.audit_required})")
    if decision.accessible:
        print(f"      accessible: {', '.join(decision.accessible)}")
    if decision.restricted:
        print(f"      restricted: {', '.join(decision.restricted)}")
    for reason in decision.restriction_reasons:
        print(f"      reason: {reason}")
    if decision.denial_reason:
        print(f"      denial: {decision.denial_reason}")
    if decision.error:
        print(f"      error: {decision.error}")


async def run_access_checks():
    """Run a series of access evaluations against one patient."""

    setup_logging(level="WARNING", log_format="console")
    print("\n" + "=" * 60)
    print("Consent Guard - Basic Access Check Example")
    print("=" * 60 + "\n")

    # =========================================================================
    # STEP 1: COLLABORATORS
    # =========================================================================
    print("[1/4] Registering users and consents...")

    directory = InMemoryUserDirectory()
    directory.register_user(
        "dr-rossi",
        roles=["doctor"],
        permissions=["patient_data_access"],
        facilities=["hospital-001"],
    )
    directory.register_user(
        "dr-bianchi",
        roles=["psychiatrist"],
        permissions=["patient_data_access", "mental_health_data_access"],
        facilities=["hospital-001"],
    )
    directory.register_user(
        "er-verdi",
        roles=["emergency_physician"],
        permissions=["patient_data_access", "break_glass"],
    )

    registry = InMemoryConsentRegistry()
    registry.add_consent(
        ConsentRecord(
            consent_id="consent-001",
            subject_id="patient-12345678",
            consent_type=ConsentType.TREATMENT,
            categories=[
                CategoryConsent(category="demographics"),
                CategoryConsent(category="lab_results"),
                CategoryConsent(
                    category="mental_health",
                    sensitivity=SensitivityTier.ELEVATED,
                    requires_explicit_consent=True,
                ),
            ],
            scope=ConsentScope(purposes=["treatment"]),
            expires_at=utcnow() + timedelta(days=365),
        )
    )
    print(f"  - Users: {len(directory)}")
    print(f"  - Consent summary: {registry.get_consent_summary('patient-12345678').to_dict()}")

    # =========================================================================
    # STEP 2: ENGINE
    # =========================================================================
    print("\n[2/4] Building access decision engine...")

    sink = InMemoryAuditSink()
    engine = AccessDecisionEngine(
        user_directory=directory,
        consent_verifier=registry,
        audit_sink=sink,
        cache_ttl=60.0,
        collaborator_timeout=2.0,
    )
    context = AuditContext(network_origin="10.0.0.12", user_agent="ward-terminal", session_id="s-42")

    # =========================================================================
    # STEP 3: EVALUATIONS
    # =========================================================================
    print("\n[3/4] Evaluating requests...")

    routine = AccessRequest(
        requester_id="dr-rossi",
        requester_role="doctor",
        subject_id="patient-12345678",
        data_categories=["demographics", "lab_results"],
        purpose="treatment",
        facility_id="hospital-001",
    )
    print_decision("Routine view", await engine.evaluate(routine, context))
    print_decision("Routine view (cached)", await engine.evaluate(routine, context))

    partial = AccessRequest(
        requester_id="dr-rossi",
        requester_role="doctor",
        subject_id="patient-12345678",
        data_categories=["demographics", "imaging"],
        purpose="treatment",
        facility_id="hospital-001",
    )
    print_decision("Partial consent", await engine.evaluate(partial, context))

    sensitive = AccessRequest(
        requester_id="dr-bianchi",
        requester_role="psychiatrist",
        subject_id="patient-12345678",
        data_categories=["mental_health"],
        purpose="treatment",
        facility_id="hospital-001",
    )
    print_decision("Mental health", await engine.evaluate(sensitive, context))

    export = AccessRequest(
        requester_id="dr-rossi",
        requester_role="doctor",
        subject_id="patient-12345678",
        data_categories=["lab_results"],
        purpose="treatment",
        access_type=AccessType.EXPORT,
        facility_id="hospital-001",
    )
    print_decision("Export without permission", await engine.evaluate(export, context))

    emergency = AccessRequest(
        requester_id="er-verdi",
        requester_role="emergency_physician",
        subject_id="patient-12345678",
        data_categories=["demographics", "lab_results", "allergies"],
        purpose="emergency_care",
        emergency_override=True,
        justification="Unconscious patient in ER",
    )
    print_decision("Emergency override", await engine.evaluate(emergency, context))

    # =========================================================================
    # STEP 4: AUDIT TRAIL
    # =========================================================================
    print("\n[4/4] Audit trail...")
    await engine.drain_audit()
    for record in sink.records:
        print(f"  - {record.record_id}: {record.outcome.value} by {record.requester_id}")
    print(f"  - Cache: {engine.cache_stats()}")

    print("\n" + "=" * 60)
    print("Example completed")
    print("=" * 60 + "\n")


if __name__ == "__main__":
    asyncio.run(run_access_checks())
