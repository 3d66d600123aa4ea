"""
Permission checks: fail-closed lookups, the grants-all capability and
role/permission seeding.
"""

import pytest
from sqlalchemy.exc import OperationalError

from miniclinic.models import Role
from miniclinic.permissions import Module, Action, get_all_permission_codes
from miniclinic.services import permission_service, products_service
from miniclinic.services.permission_service import PermissionDeniedError


# ============================================================================
# check_permission
# ============================================================================

class TestCheckPermission:
    def test_unknown_user_is_denied(self, seed):
        assert permission_service.check_permission(999999, Module.PATIENTS, Action.READ) is False

    def test_none_user_is_denied(self, seed):
        assert permission_service.check_permission(None, Module.PATIENTS, Action.READ) is False

    def test_user_without_role_is_denied(self, no_role_user):
        assert permission_service.check_permission(no_role_user.id, Module.PATIENTS, Action.READ) is False
        assert permission_service.get_user_permissions(no_role_user.id) == set()

    def test_receptionist_has_inventory_create(self, receptionist_user):
        assert permission_service.check_permission(receptionist_user.id, Module.INVENTORY, Action.CREATE)

    def test_doctor_lacks_inventory_create(self, doctor_user):
        assert not permission_service.check_permission(doctor_user.id, Module.INVENTORY, Action.CREATE)

    def test_matching_is_exact(self, receptionist_user):
        assert not permission_service.check_permission(receptionist_user.id, "Inventory", Action.CREATE)
        assert not permission_service.check_permission(receptionist_user.id, Module.INVENTORY, "CREATE")

    def test_admin_passes_every_check(self, admin_user):
        assert permission_service.check_permission(admin_user.id, Module.AUDIT_LOGS, Action.DELETE)
        # Capability, not just seeded rows
        assert permission_service.check_permission(admin_user.id, "billing", "export")

    def test_require_permission_raises(self, doctor_user):
        with pytest.raises(PermissionDeniedError) as exc:
            permission_service.require_permission(doctor_user.id, Module.PAYMENTS, Action.CREATE)
        assert str(exc.value) == "Unauthorized"

    def test_lookup_failure_denies(self, receptionist_user, admin_user, monkeypatch):
        def unreachable(user_id):
            raise OperationalError("SELECT users", {}, Exception("database is locked"))

        monkeypatch.setattr(permission_service, "_load_user", unreachable)

        assert permission_service.check_permission(receptionist_user.id, Module.INVENTORY, Action.CREATE) is False
        assert permission_service.check_permission(admin_user.id, Module.PATIENTS, Action.READ) is False

    def test_lookup_failure_blocks_guarded_calls(self, receptionist_user, product, monkeypatch):
        def unreachable(user_id):
            raise RuntimeError("connection reset")

        monkeypatch.setattr(permission_service, "_load_user", unreachable)

        with pytest.raises(PermissionDeniedError):
            products_service.delete_product(receptionist_user.id, product.id)

# ============================================================================
# Seeding and role grants
# ============================================================================

class TestSeeding:
    def test_admin_role_grants_all(self, seed, db_session):
        admin = db_session.query(Role).filter_by(name="admin").one()
        assert admin.grants_all_permissions is True

    def test_seeding_is_idempotent(self, seed):
        assert permission_service.initialize_permissions() == 0
        assert permission_service.assign_default_role_permissions() == 0

    def test_admin_permissions_cover_all_codes(self, admin_user):
        assert permission_service.get_user_permissions(admin_user.id) == set(get_all_permission_codes())

    def test_is_admin(self, admin_user, receptionist_user, no_role_user):
        assert permission_service.is_admin(admin_user.id)
        assert not permission_service.is_admin(receptionist_user.id)
        assert not permission_service.is_admin(no_role_user.id)
        assert not permission_service.is_admin(None)

    def test_grant_and_revoke(self, doctor_user):
        permission_service.grant_permission_to_role("doctor", Module.INVENTORY, Action.READ)
        assert permission_service.check_permission(doctor_user.id, Module.INVENTORY, Action.READ)

        assert permission_service.revoke_permission_from_role("doctor", Module.INVENTORY, Action.READ) is True
        assert not permission_service.check_permission(doctor_user.id, Module.INVENTORY, Action.READ)
        assert permission_service.revoke_permission_from_role("doctor", Module.INVENTORY, Action.READ) is False

    def test_grant_unknown_role_raises(self, seed):
        with pytest.raises(ValueError):
            permission_service.grant_permission_to_role("janitor", Module.INVENTORY, Action.READ)
