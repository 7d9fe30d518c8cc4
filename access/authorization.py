"""
Authorization Checker Module
============================
Validates a requester against user directory facts and the policy tables,
including the emergency-override (break-glass) path.
"""

from typing import Any, Awaitable, Callable, Optional, TypeVar
import structlog

from core.models import AccessRequest, AuthorizationOutcome, UserProfile
from core.exceptions import MalformedCollaboratorResponseError
from core.utils import redact_id
from .collaborators import UserDirectory
from .policy_tables import PolicyTables

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Wraps each awaited collaborator call; the engine uses it to bound latency.
CallGuard = Callable[[str, str, Awaitable[T]], Awaitable[T]]


async def _unguarded(collaborator: str, operation: str, call: Awaitable[T]) -> T:
    return await call


class AuthorizationChecker:
    """
    Decides whether a requester may perform the requested access.

    Policy failures come back as denied outcomes with a reason. Directory
    failures (unreachable, malformed answers) propagate so the engine can
    tell a systemic fault from a policy denial.
    """

    REASON_NOT_FOUND = "User not found"
    REASON_INACTIVE = "User account is inactive"
    REASON_NO_EMERGENCY = "User does not have emergency access privileges"
    REASON_NO_ROLE = "User does not have required role for this data access"
    REASON_NO_PERMISSION = "User does not have required permissions for this data access"
    REASON_NO_FACILITY = "User does not have access to this facility"

    def __init__(
        self,
        directory: UserDirectory,
        policy: Optional[PolicyTables] = None,
        call_guard: Optional[CallGuard] = None,
    ):
        """
        Initialize authorization checker.

        Args:
            directory: User directory collaborator.
            policy: Policy tables (defaults when None).
            call_guard: Optional wrapper applied to every directory call.
        """
        self.directory = directory
        self.policy = policy or PolicyTables()
        self._guard = call_guard or _unguarded

    async def check(self, request: AccessRequest) -> AuthorizationOutcome:
        """Return the authorization outcome for ``request``."""
        user = await self._resolve(request.requester_id)
        if user is None:
            return self._deny(request, self.REASON_NOT_FOUND)

        if not user.active:
            return self._deny(request, self.REASON_INACTIVE)

        # Break-glass replaces the role/permission check, it never adds to it.
        if request.emergency_override:
            has_emergency = await self._guard(
                "UserDirectory",
                "has_emergency_access",
                self.directory.has_emergency_access(request.requester_id),
            )
            if has_emergency is not True:
                return self._deny(request, self.REASON_NO_EMERGENCY)
            logger.warning(
                "Emergency override authorized",
                requester_id=request.requester_id,
                subject_id=redact_id(request.subject_id),
            )
            return AuthorizationOutcome.granted()

        requirement = self.policy.requirements(request.data_categories, request.access_type)

        if not requirement.role_satisfied(user.roles):
            return self._deny(request, self.REASON_NO_ROLE)

        if not requirement.permissions_satisfied(user.permissions):
            logger.debug(
                "Missing permissions",
                requester_id=request.requester_id,
                missing=sorted(requirement.missing_permissions(user.permissions)),
            )
            return self._deny(request, self.REASON_NO_PERMISSION)

        if request.facility_id and request.facility_id not in user.facilities:
            return self._deny(request, self.REASON_NO_FACILITY)

        return AuthorizationOutcome.granted()

    async def _resolve(self, user_id: str) -> Optional[UserProfile]:
        raw: Any = await self._guard("UserDirectory", "resolve", self.directory.resolve(user_id))
        if raw is None or isinstance(raw, UserProfile):
            return raw
        if isinstance(raw, dict):
            try:
                return UserProfile.model_validate(raw)
            except ValueError:
                pass
        raise MalformedCollaboratorResponseError("UserDirectory", "resolve", raw)

    def _deny(self, request: AccessRequest, reason: str) -> AuthorizationOutcome:
        logger.info(
            "Authorization denied",
            requester_id=request.requester_id,
            access_type=request.access_type.value,
            reason=reason,
        )
        return AuthorizationOutcome.denied(reason)
