"""
Module lock tests.

While products or inventory is locked only administrators may create,
update or delete there; reads stay open to anyone with read permission.
"""

import pytest

from miniclinic.models import AuditLog
from miniclinic.services import inventory_service, lock_service, products_service
from miniclinic.services.permission_service import PermissionDeniedError
from miniclinic.services.session_service import NotAuthenticatedError
from miniclinic.validation import ValidationError


NEW_PRODUCT = {"name": "Mouthwash", "price_cents": 2500}


class TestLockStatus:
    def test_unlocked_by_default(self, receptionist_user):
        assert lock_service.get_lock_status(receptionist_user.id, "products") == {
            "module": "products",
            "is_locked": False,
            "is_admin": False,
        }

    def test_admin_locks_and_unlocks(self, db_session, admin_user):
        lock_service.set_lock_status(admin_user.id, "inventory", True)
        assert lock_service.is_locked("inventory")
        assert not lock_service.is_locked("products")

        lock_service.set_lock_status(admin_user.id, "inventory", False)
        assert not lock_service.is_locked("inventory")

        actions = [a for (a,) in db_session.query(AuditLog.action).filter_by(module="inventory").order_by(AuditLog.id)]
        assert actions == ["lock", "unlock"]

    def test_non_admin_cannot_lock(self, receptionist_user):
        with pytest.raises(PermissionDeniedError) as exc:
            lock_service.set_lock_status(receptionist_user.id, "products", True)
        assert str(exc.value) == "Only administrators can change lock status"
        assert not lock_service.is_locked("products")

    def test_unknown_module(self, admin_user):
        with pytest.raises(ValidationError):
            lock_service.get_lock_status(admin_user.id, "patients")

    def test_anonymous(self, seed):
        with pytest.raises(NotAuthenticatedError):
            lock_service.get_lock_status(None, "products")


class TestLockedModules:
    def test_locked_products_reject_staff_writes(self, admin_user, receptionist_user):
        lock_service.set_lock_status(admin_user.id, "products", True)

        with pytest.raises(PermissionDeniedError) as exc:
            products_service.create_product(receptionist_user.id, NEW_PRODUCT)
        assert str(exc.value) == "Products are locked. Only administrators can make changes."

    def test_locked_products_still_readable(self, admin_user, receptionist_user, product):
        lock_service.set_lock_status(admin_user.id, "products", True)
        items = products_service.list_products(receptionist_user.id)
        assert [p["name"] for p in items] == ["Toothbrush"]

    def test_admin_writes_through_lock(self, admin_user):
        lock_service.set_lock_status(admin_user.id, "products", True)
        product = products_service.create_product(admin_user.id, NEW_PRODUCT)
        assert product["name"] == "Mouthwash"

    def test_locked_inventory_message(self, admin_user, receptionist_user):
        lock_service.set_lock_status(admin_user.id, "inventory", True)
        with pytest.raises(PermissionDeniedError) as exc:
            inventory_service.create_inventory_item(receptionist_user.id, {"name": "Gloves"})
        assert str(exc.value) == "Inventory items are locked. Only administrators can make changes."

    def test_permission_checked_before_lock(self, admin_user, doctor_user):
        lock_service.set_lock_status(admin_user.id, "products", True)
        assert lock_service.can_perform_action(doctor_user.id, "products", "create") == (False, "Unauthorized")

    def test_can_perform_action_anonymous(self, seed):
        assert lock_service.can_perform_action(None, "products", "read") == (False, "Not authenticated")


class TestLockRoutes:
    def test_get_lock(self, client, receptionist_headers):
        response = client.get("/api/settings/locks/products", headers=receptionist_headers)
        assert response.status_code == 200
        assert response.json["is_locked"] is False

    def test_put_lock_requires_boolean(self, client, admin_headers):
        response = client.put("/api/settings/locks/products", json={"locked": "yes"}, headers=admin_headers)
        assert response.status_code == 400

    def test_staff_lock_attempt_is_403(self, client, receptionist_headers):
        response = client.put("/api/settings/locks/products", json={"locked": True}, headers=receptionist_headers)
        assert response.status_code == 403
        assert response.json["error"] == "Only administrators can change lock status"

    def test_locked_create_is_403(self, client, admin_headers, receptionist_headers):
        client.put("/api/settings/locks/products", json={"locked": True}, headers=admin_headers)

        response = client.post("/api/products", json=NEW_PRODUCT, headers=receptionist_headers)
        assert response.status_code == 403
        assert response.json["error"] == "Products are locked. Only administrators can make changes."
