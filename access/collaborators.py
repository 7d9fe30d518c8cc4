"""
Collaborator Contracts
======================
Interfaces the access engine consumes. Identity storage, consent
evaluation, audit persistence and encryption live outside the engine;
anything implementing these protocols can be injected.
"""

from typing import Optional, Protocol, Sequence, runtime_checkable

from core.models import AuditRecord, ConsentOutcome, UserProfile


@runtime_checkable
class UserDirectory(Protocol):
    """Resolves requesters to status, roles, permissions and facilities."""

    async def resolve(self, user_id: str) -> Optional[UserProfile]:
        """Return the user's profile, or None when unknown."""
        ...

    async def has_emergency_access(self, user_id: str) -> bool:
        """Whether the user holds the emergency-access (break-glass) privilege."""
        ...


@runtime_checkable
class ConsentVerifier(Protocol):
    """Answers per-category consent and sensitivity questions."""

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
        ...


@runtime_checkable
class AuditSink(Protocol):
    """Durable destination for audit records."""

    async def write(self, record: AuditRecord) -> bool:
        """Persist the record. Returns False (or raises) on failure."""
        ...


@runtime_checkable
class EncryptionProvider(Protocol):
    """Symmetric protection for audit payloads at rest."""

    @property
    def key_id(self) -> str:
        ...

    def encrypt(self, plaintext: bytes) -> bytes:
        ...

    def decrypt(self, ciphertext: bytes) -> bytes:
        ...
