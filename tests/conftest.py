"""Shared fixtures for the Consent Guard test suite."""

import sys
from pathlib import Path

import pytest

# Ensure project root is on sys.path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.models import (
    AccessRequest,
    CategoryConsent,
    ConsentRecord,
    ConsentType,
    SensitivityTier,
)
from access.decision_cache import DecisionCache
from access.engine import AccessDecisionEngine
from audit.trail import InMemoryAuditSink
from registry.consent_registry import InMemoryConsentRegistry
from registry.user_directory import InMemoryUserDirectory


PATIENT = "patient-00012345"
FACILITY = "hospital-001"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingVerifier:
    """Wraps a verifier and counts verify() calls."""

    def __init__(self, inner):
        self.inner = inner
        self.calls = 0

    async def verify(self, *args, **kwargs):
        self.calls += 1
        return await self.inner.verify(*args, **kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def directory():
    d = InMemoryUserDirectory()
    d.register_user(
        "dr-rossi",
        roles=["doctor"],
        permissions=["patient_data_access"],
        facilities=[FACILITY],
    )
    d.register_user(
        "dr-bianchi",
        roles=["psychiatrist"],
        permissions=["patient_data_access", "mental_health_data_access"],
        facilities=[FACILITY],
    )
    d.register_user(
        "analyst-neri",
        roles=["data_analyst"],
        permissions=["patient_data_access", "data_export", "genetic_data_access"],
        facilities=[FACILITY],
    )
    d.register_user(
        "nurse-gialli",
        roles=["nurse"],
        permissions=["patient_data_access"],
        facilities=[FACILITY],
        active=False,
    )
    d.register_user(
        "er-verdi",
        roles=["emergency_physician"],
        permissions=["break_glass"],
    )
    # Every normal role and permission, but no emergency privilege.
    d.register_user(
        "admin-blu",
        roles=["administrator", "doctor", "psychiatrist", "geneticist"],
        permissions=[
            "patient_data_access",
            "patient_data_modify",
            "data_export",
            "data_sharing",
            "mental_health_data_access",
            "substance_abuse_data_access",
            "genetic_data_access",
        ],
        facilities=[FACILITY],
    )
    return d


@pytest.fixture
def registry():
    r = InMemoryConsentRegistry()
    r.add_consent(
        ConsentRecord(
            consent_id="consent-demo",
            subject_id=PATIENT,
            consent_type=ConsentType.TREATMENT,
            categories=[
                CategoryConsent(category="demographics"),
                CategoryConsent(category="lab_results"),
                CategoryConsent(
                    category="mental_health",
                    sensitivity=SensitivityTier.ELEVATED,
                    requires_explicit_consent=True,
                ),
                CategoryConsent(
                    category="genetic_information",
                    sensitivity=SensitivityTier.CRITICAL,
                ),
            ],
        )
    )
    return r


@pytest.fixture
def verifier(registry):
    return CountingVerifier(registry)


@pytest.fixture
def sink():
    return InMemoryAuditSink()


@pytest.fixture
def engine(directory, verifier, sink, clock):
    return AccessDecisionEngine(
        user_directory=directory,
        consent_verifier=verifier,
        audit_sink=sink,
        cache=DecisionCache(default_ttl=120.0, clock=clock),
    )


@pytest.fixture
def make_request():
    def _make(**overrides):
        fields = {
            "requester_id": "dr-rossi",
            "requester_role": "doctor",
            "subject_id": PATIENT,
            "data_categories": ["demographics"],
            "purpose": "treatment",
            "facility_id": FACILITY,
        }
        fields.update(overrides)
        return AccessRequest(**fields)

    return _make
