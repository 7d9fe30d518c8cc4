"""
Tests for Policy Tables and Authorization Checker
=================================================
"""

import pytest

from core.models import AccessType, UserProfile
from core.exceptions import ConfigurationError, MalformedCollaboratorResponseError
from access.authorization import AuthorizationChecker
from access.policy_tables import PolicyTables


class TestPolicyTables:
    """Tests for role/permission derivation."""

    def test_base_requirements_for_view(self):
        tables = PolicyTables()
        req = tables.requirements(["demographics"], AccessType.VIEW)

        assert req.roles == PolicyTables.BASE_ROLES
        assert req.permissions == frozenset({"patient_data_access"})

    def test_sensitive_category_extends_roles(self):
        """Specialist roles are added to, not substituted for, the base roles."""
        tables = PolicyTables()
        roles = tables.required_roles(["mental_health"], AccessType.VIEW)

        assert "doctor" in roles
        assert "psychiatrist" in roles
        assert "geneticist" not in roles

    def test_access_type_extends_roles(self):
        tables = PolicyTables()
        export_roles = tables.required_roles(["lab_results"], AccessType.EXPORT)
        share_roles = tables.required_roles(["lab_results"], AccessType.SHARE)

        assert {"data_analyst", "researcher"} <= export_roles
        assert {"care_coordinator", "case_manager"} <= share_roles
        assert "data_analyst" not in share_roles

    def test_permissions_are_additive(self):
        tables = PolicyTables()
        perms = tables.required_permissions(
            ["mental_health", "genetic_information"], AccessType.EDIT
        )

        assert perms == frozenset({
            "patient_data_access",
            "mental_health_data_access",
            "genetic_data_access",
            "patient_data_modify",
        })

    def test_missing_permissions(self):
        req = PolicyTables().requirements(["demographics"], AccessType.EXPORT)

        assert req.missing_permissions({"patient_data_access"}) == {"data_export"}
        assert req.permissions_satisfied({"patient_data_access", "data_export", "extra"})

    def test_from_config_overrides_tables(self):
        tables = PolicyTables.from_config({
            "base_roles": ["clinician"],
            "access_type_permissions": {"export": "bulk_export"},
        })

        assert tables.base_roles == frozenset({"clinician"})
        assert tables.required_permissions(["x"], AccessType.EXPORT) == frozenset(
            {"patient_data_access", "bulk_export"}
        )
        # Untouched tables keep their defaults
        assert "psychiatrist" in tables.required_roles(["mental_health"], AccessType.VIEW)

    def test_unknown_access_type_in_config(self):
        with pytest.raises(ConfigurationError):
            PolicyTables.from_config({"access_type_roles": {"print": ["clerk"]}})

    def test_empty_base_roles_rejected(self):
        with pytest.raises(ConfigurationError):
            PolicyTables(base_roles=[])


class TestAuthorizationChecker:
    """Tests for AuthorizationChecker."""

    @pytest.mark.asyncio
    async def test_authorized_doctor(self, directory, make_request):
        checker = AuthorizationChecker(directory)
        outcome = await checker.check(make_request())

        assert outcome.authorized is True
        assert outcome.reason is None

    @pytest.mark.asyncio
    async def test_unknown_user(self, directory, make_request):
        checker = AuthorizationChecker(directory)
        outcome = await checker.check(make_request(requester_id="ghost"))

        assert outcome.authorized is False
        assert outcome.reason == AuthorizationChecker.REASON_NOT_FOUND

    @pytest.mark.asyncio
    async def test_inactive_user(self, directory, make_request):
        checker = AuthorizationChecker(directory)
        outcome = await checker.check(
            make_request(requester_id="nurse-gialli", requester_role="nurse")
        )

        assert outcome.authorized is False
        assert "inactive" in outcome.reason

    @pytest.mark.asyncio
    async def test_missing_role(self, directory, make_request):
        directory.register_user("clerk-1", roles=["receptionist"], permissions=["patient_data_access"])
        checker = AuthorizationChecker(directory)
        outcome = await checker.check(make_request(requester_id="clerk-1", facility_id=None))

        assert outcome.authorized is False
        assert outcome.reason == AuthorizationChecker.REASON_NO_ROLE

    @pytest.mark.asyncio
    async def test_missing_category_permission(self, directory, make_request):
        checker = AuthorizationChecker(directory)
        outcome = await checker.check(make_request(data_categories=["mental_health"]))

        assert outcome.authorized is False
        assert outcome.reason == AuthorizationChecker.REASON_NO_PERMISSION

    @pytest.mark.asyncio
    async def test_missing_access_type_permission(self, directory, make_request):
        checker = AuthorizationChecker(directory)
        outcome = await checker.check(make_request(access_type=AccessType.EXPORT))

        assert outcome.authorized is False
        assert outcome.reason == AuthorizationChecker.REASON_NO_PERMISSION

    @pytest.mark.asyncio
    async def test_specialist_role_is_sufficient(self, directory, make_request):
        checker = AuthorizationChecker(directory)
        outcome = await checker.check(
            make_request(
                requester_id="dr-bianchi",
                requester_role="psychiatrist",
                data_categories=["mental_health"],
            )
        )

        assert outcome.authorized is True

    @pytest.mark.asyncio
    async def test_facility_membership_required(self, directory, make_request):
        checker = AuthorizationChecker(directory)
        outcome = await checker.check(make_request(facility_id="hospital-999"))

        assert outcome.authorized is False
        assert outcome.reason == AuthorizationChecker.REASON_NO_FACILITY

    @pytest.mark.asyncio
    async def test_no_facility_on_request(self, directory, make_request):
        checker = AuthorizationChecker(directory)
        outcome = await checker.check(make_request(facility_id=None))

        assert outcome.authorized is True

    @pytest.mark.asyncio
    async def test_emergency_override_with_privilege(self, directory, make_request):
        checker = AuthorizationChecker(directory)
        outcome = await checker.check(
            make_request(
                requester_id="er-verdi",
                requester_role="emergency_physician",
                data_categories=["genetic_information"],
                emergency_override=True,
            )
        )

        assert outcome.authorized is True

    @pytest.mark.asyncio
    async def test_emergency_override_without_privilege(self, directory, make_request):
        """Holding every normal role and permission does not enable break-glass."""
        checker = AuthorizationChecker(directory)
        outcome = await checker.check(
            make_request(
                requester_id="admin-blu",
                requester_role="administrator",
                emergency_override=True,
            )
        )

        assert outcome.authorized is False
        assert outcome.reason == AuthorizationChecker.REASON_NO_EMERGENCY

    @pytest.mark.asyncio
    async def test_dict_profile_accepted(self, make_request):
        class DictDirectory:
            async def resolve(self, user_id):
                return {
                    "user_id": user_id,
                    "active": True,
                    "roles": ["nurse"],
                    "permissions": ["patient_data_access"],
                    "facilities": [],
                }

            async def has_emergency_access(self, user_id):
                return False

        checker = AuthorizationChecker(DictDirectory())
        outcome = await checker.check(make_request(facility_id=None))

        assert outcome.authorized is True

    @pytest.mark.asyncio
    async def test_malformed_profile_raises(self, make_request):
        class BrokenDirectory:
            async def resolve(self, user_id):
                return ["not", "a", "profile"]

            async def has_emergency_access(self, user_id):
                return False

        checker = AuthorizationChecker(BrokenDirectory())

        with pytest.raises(MalformedCollaboratorResponseError):
            await checker.check(make_request())

    @pytest.mark.asyncio
    async def test_user_profile_instance_passthrough(self, make_request):
        profile = UserProfile(
            user_id="dr-x",
            roles=frozenset({"doctor"}),
            permissions=frozenset({"patient_data_access"}),
        )

        class StaticDirectory:
            async def resolve(self, user_id):
                return profile

            async def has_emergency_access(self, user_id):
                return False

        checker = AuthorizationChecker(StaticDirectory())
        outcome = await checker.check(make_request(requester_id="dr-x", facility_id=None))

        assert outcome.authorized is True
