"""
Policy Tables Module
====================
Static mapping from (data category, access type) to the roles that are
eligible and the permissions that are required.

Roles and permissions compose in opposite directions:
- sensitive categories and secondary-use access types *extend* the set of
  eligible roles (holding any one of them is enough);
- sensitive categories and non-view access types *add* permissions that
  must all be held together with the base permission.
"""

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Set
import structlog

from core.models import AccessType
from core.exceptions import ConfigurationError

logger = structlog.get_logger(__name__)


MENTAL_HEALTH = "mental_health"
SUBSTANCE_ABUSE = "substance_abuse"
GENETIC_INFORMATION = "genetic_information"


@dataclass(frozen=True)
class PolicyRequirement:
    """Roles (any-of) and permissions (all-of) required for a request."""

    roles: FrozenSet[str]
    permissions: FrozenSet[str]

    def role_satisfied(self, held_roles: Iterable[str]) -> bool:
        return not self.roles.isdisjoint(held_roles)

    def permissions_satisfied(self, held_permissions: Iterable[str]) -> bool:
        return self.permissions.issubset(held_permissions)

    def missing_permissions(self, held_permissions: Iterable[str]) -> Set[str]:
        return set(self.permissions - frozenset(held_permissions))


class PolicyTables:
    """
    Role and permission requirements per category and access type.

    Defaults mirror the clinical deployment; every table can be replaced
    through the constructor or the ``policy`` section of config.yaml.
    """

    BASE_ROLES: FrozenSet[str] = frozenset(
        {"healthcare_provider", "nurse", "doctor", "administrator"}
    )

    CATEGORY_ROLES: Dict[str, FrozenSet[str]] = {
        MENTAL_HEALTH: frozenset(
            {"psychiatrist", "psychologist", "mental_health_specialist"}
        ),
        SUBSTANCE_ABUSE: frozenset(
            {"addiction_specialist", "substance_abuse_counselor"}
        ),
        GENETIC_INFORMATION: frozenset({"genetic_counselor", "geneticist"}),
    }

    ACCESS_TYPE_ROLES: Dict[AccessType, FrozenSet[str]] = {
        AccessType.EXPORT: frozenset({"data_analyst", "researcher"}),
        AccessType.SHARE: frozenset({"care_coordinator", "case_manager"}),
    }

    BASE_PERMISSION: str = "patient_data_access"

    CATEGORY_PERMISSIONS: Dict[str, str] = {
        MENTAL_HEALTH: "mental_health_data_access",
        SUBSTANCE_ABUSE: "substance_abuse_data_access",
        GENETIC_INFORMATION: "genetic_data_access",
    }

    ACCESS_TYPE_PERMISSIONS: Dict[AccessType, str] = {
        AccessType.EDIT: "patient_data_modify",
        AccessType.EXPORT: "data_export",
        AccessType.SHARE: "data_sharing",
    }

    def __init__(
        self,
        base_roles: Optional[Iterable[str]] = None,
        category_roles: Optional[Mapping[str, Iterable[str]]] = None,
        access_type_roles: Optional[Mapping[Any, Iterable[str]]] = None,
        base_permission: Optional[str] = None,
        category_permissions: Optional[Mapping[str, str]] = None,
        access_type_permissions: Optional[Mapping[Any, str]] = None,
    ):
        """
        Initialize policy tables.

        Args:
            base_roles: Roles always eligible.
            category_roles: Extra eligible roles per sensitive category.
            access_type_roles: Extra eligible roles per access type.
            base_permission: Permission required for every request.
            category_permissions: Additional permission per category.
            access_type_permissions: Additional permission per access type.
        """
        self.base_roles = frozenset(base_roles) if base_roles is not None else self.BASE_ROLES
        self.category_roles = (
            {k: frozenset(v) for k, v in category_roles.items()}
            if category_roles is not None
            else dict(self.CATEGORY_ROLES)
        )
        self.access_type_roles = (
            {_access_type(k): frozenset(v) for k, v in access_type_roles.items()}
            if access_type_roles is not None
            else dict(self.ACCESS_TYPE_ROLES)
        )
        self.base_permission = base_permission or self.BASE_PERMISSION
        self.category_permissions = (
            dict(category_permissions)
            if category_permissions is not None
            else dict(self.CATEGORY_PERMISSIONS)
        )
        self.access_type_permissions = (
            {_access_type(k): v for k, v in access_type_permissions.items()}
            if access_type_permissions is not None
            else dict(self.ACCESS_TYPE_PERMISSIONS)
        )

        if not self.base_roles:
            raise ConfigurationError("Policy tables need at least one base role", "policy.base_roles")

    @classmethod
    def from_config(cls, policy: Optional[Dict[str, Any]] = None) -> "PolicyTables":
        """Build tables from the ``policy`` section of the configuration."""
        policy = policy or {}
        tables = cls(
            base_roles=policy.get("base_roles"),
            category_roles=policy.get("category_roles"),
            access_type_roles=policy.get("access_type_roles"),
            base_permission=policy.get("base_permission"),
            category_permissions=policy.get("category_permissions"),
            access_type_permissions=policy.get("access_type_permissions"),
        )
        logger.debug(
            "Policy tables loaded",
            base_roles=len(tables.base_roles),
            sensitive_categories=sorted(tables.category_roles),
        )
        return tables

    def required_roles(self, categories: Iterable[str], access_type: AccessType) -> FrozenSet[str]:
        """Eligible roles: base set extended by category and access type."""
        roles = set(self.base_roles)
        for category in categories:
            roles |= self.category_roles.get(category, frozenset())
        roles |= self.access_type_roles.get(access_type, frozenset())
        return frozenset(roles)

    def required_permissions(
        self, categories: Iterable[str], access_type: AccessType
    ) -> FrozenSet[str]:
        """All permissions that must be held simultaneously."""
        permissions = {self.base_permission}
        for category in categories:
            extra = self.category_permissions.get(category)
            if extra:
                permissions.add(extra)
        extra = self.access_type_permissions.get(access_type)
        if extra:
            permissions.add(extra)
        return frozenset(permissions)

    def requirements(self, categories: Iterable[str], access_type: AccessType) -> PolicyRequirement:
        categories = list(categories)
        return PolicyRequirement(
            roles=self.required_roles(categories, access_type),
            permissions=self.required_permissions(categories, access_type),
        )


def _access_type(value: Any) -> AccessType:
    try:
        return AccessType(value)
    except ValueError:
        raise ConfigurationError(f"Unknown access type in policy tables: {value!r}", "policy")
