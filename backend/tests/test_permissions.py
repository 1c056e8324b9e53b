# Overview: Pytest coverage for permission resolution, grants and revocation.

import pytest

from nexuspos.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from nexuspos.permissions import (
    DEFAULT_TYPE_PERMISSIONS,
    get_all_permission_codes,
    get_permission_definition,
    get_permissions_by_category,
    validate_permission_code,
)
from nexuspos.services import auth_service, permission_service
from nexuspos.services.permission_service import check_permission


class TestPermissionCatalogue:

    def test_codes_are_unique(self):
        codes = get_all_permission_codes()
        assert len(codes) == len(set(codes))

    def test_lookup_helpers(self):
        assert validate_permission_code("sales.cancel") is True
        assert validate_permission_code("sales.teleport") is False
        assert get_permission_definition("sales.refund")["category"] == "SALES"
        assert {p[0] for p in get_permissions_by_category("REPORTS")} == {
            "reports.inventory", "reports.sales", "reports.audit",
        }

    def test_default_sets_are_nested(self):
        owner = DEFAULT_TYPE_PERMISSIONS["owner"]
        admin = DEFAULT_TYPE_PERMISSIONS["admin"]
        cashier = DEFAULT_TYPE_PERMISSIONS["cashier"]

        assert cashier < admin < owner
        assert owner - admin == {"users.delete"}


class TestCheckPermission:

    @pytest.mark.parametrize("code,expected", [
        ("sales.create", True),
        ("sales.read", True),
        ("inventory.salida", True),
        ("cashier.close_shift", True),
        ("sales.cancel", False),
        ("sales.refund", False),
        ("products.adjust_price", False),
        ("inventory.entrada", False),
        ("reports.sales", False),
    ])
    def test_cashier_defaults(self, cashier, code, expected):
        assert check_permission(cashier.id, code, cashier.business_id) is expected

    def test_admin_cannot_delete_users(self, admin):
        assert check_permission(admin.id, "sales.cancel", admin.business_id) is True
        assert check_permission(admin.id, "users.delete", admin.business_id) is False

    def test_defaults_do_not_cross_businesses(self, owner, other_owner):
        assert check_permission(owner.id, "sales.create", owner.business_id) is True
        assert check_permission(owner.id, "sales.create", other_owner.business_id) is False

    def test_unknown_user_has_nothing(self, db_session):
        assert check_permission(999999, "sales.read") is False

    def test_inactive_user_loses_defaults(self, owner_ctx, admin):
        auth_service.deactivate_user(owner_ctx, admin.id)

        assert check_permission(admin.id, "sales.read", admin.business_id) is False
        assert permission_service.get_effective_permissions(admin.id, admin.business_id) == set()

    def test_inactive_user_loses_explicit_grants(self, owner_ctx, cashier):
        permission_service.assign_permission(owner_ctx, cashier.id, "sales.cancel")
        auth_service.deactivate_user(owner_ctx, cashier.id)

        assert check_permission(cashier.id, "sales.cancel") is False
        assert check_permission(cashier.id, "sales.cancel", cashier.business_id) is False
        assert permission_service.get_effective_permissions(cashier.id) == set()

    def test_require_permission_names_the_code(self, cashier):
        with pytest.raises(PermissionDeniedError) as exc_info:
            permission_service.require_permission(cashier.id, "sales.refund", cashier.business_id)

        assert exc_info.value.permission == "sales.refund"
        assert exc_info.value.details == {"required_permission": "sales.refund"}


class TestAssignments:

    def test_grant_adds_to_defaults(self, owner_ctx, cashier):
        permission_service.assign_permission(owner_ctx, cashier.id, "sales.cancel")

        assert check_permission(cashier.id, "sales.cancel", cashier.business_id) is True
        effective = permission_service.get_effective_permissions(cashier.id, cashier.business_id)
        assert "sales.cancel" in effective
        assert "sales.create" in effective

    def test_effective_set_matches_check(self, owner_ctx, cashier):
        permission_service.assign_permission(owner_ctx, cashier.id, "reports.sales")
        effective = permission_service.get_effective_permissions(cashier.id, cashier.business_id)

        for code in get_all_permission_codes():
            assert (code in effective) == check_permission(cashier.id, code, cashier.business_id)

    def test_duplicate_grant_conflicts(self, owner_ctx, cashier):
        permission_service.assign_permission(owner_ctx, cashier.id, "sales.cancel")

        with pytest.raises(ConflictError):
            permission_service.assign_permission(owner_ctx, cashier.id, "sales.cancel")

    def test_unknown_code_rejected(self, owner_ctx, cashier):
        with pytest.raises(ValidationError):
            permission_service.assign_permission(owner_ctx, cashier.id, "sales.teleport")

    def test_cashier_cannot_grant(self, cashier_ctx, cashier):
        with pytest.raises(PermissionDeniedError):
            permission_service.assign_permission(cashier_ctx, cashier.id, "sales.cancel")

    def test_cannot_grant_to_other_business(self, owner_ctx, other_owner):
        with pytest.raises(NotFoundError):
            permission_service.assign_permission(owner_ctx, other_owner.id, "sales.cancel")

    def test_revoke(self, owner_ctx, cashier):
        permission_service.assign_permission(owner_ctx, cashier.id, "sales.cancel")

        permission_service.revoke_permission(owner_ctx, cashier.id, "sales.cancel")

        assert check_permission(cashier.id, "sales.cancel", cashier.business_id) is False
        assert permission_service.get_user_permissions(cashier.id) == []

    def test_revoking_missing_grant(self, owner_ctx, cashier):
        with pytest.raises(NotFoundError):
            permission_service.revoke_permission(owner_ctx, cashier.id, "sales.create")

        # Defaults are not assignments and survive
        assert check_permission(cashier.id, "sales.create", cashier.business_id) is True
