"""
Audit trail tests: field diffs, best-effort writes and append-only entries.
"""

import pytest

from miniclinic.models import AuditLog, Product, Sale
from miniclinic.services import audit_service, products_service, sales_service
from miniclinic.services.permission_service import PermissionDeniedError


class TestFormatChanges:
    def test_only_differences_reported(self):
        before = {"name": "Floss", "price_cents": 500, "sku": "F-1"}
        after = {"name": "Floss", "price_cents": 650, "sku": "F-1"}
        assert audit_service.format_changes(before, after) == {
            "price_cents": {"before": 500, "after": 650},
        }

    def test_missing_side_is_none(self):
        assert audit_service.format_changes({"a": 1}, {"b": 2}) == {
            "a": {"before": 1, "after": None},
            "b": {"before": None, "after": 2},
        }

    def test_identical_snapshots(self):
        assert audit_service.format_changes({"a": 1}, {"a": 1}) == {}

    def test_none_on_both_sides_is_not_a_change(self):
        assert audit_service.format_changes({"a": None}, {}) == {}
        assert audit_service.format_changes({}, {"a": None}) == {}
        assert audit_service.format_changes({"a": None}, {"a": 0}) == {"a": {"before": None, "after": 0}}


class TestCreateAuditLog:
    def test_entry_written(self, db_session, admin_user):
        audit_service.create_audit_log(
            user_id=admin_user.id,
            action="update",
            module="products",
            entity_id=7,
            entity_name="Floss",
            changes={"price_cents": {"before": 500, "after": 650}},
        )
        log = db_session.query(AuditLog).filter_by(module="products").one()
        assert log.entity_id == "7"
        assert log.changes["price_cents"]["after"] == 650

    def test_invalid_action_is_swallowed(self, db_session, admin_user):
        audit_service.create_audit_log(user_id=admin_user.id, action="explode", module="products")
        assert db_session.query(AuditLog).filter_by(module="products").count() == 0

    def test_entries_are_append_only(self, db_session, admin_user):
        audit_service.create_audit_log(user_id=admin_user.id, action="view", module="reports")
        log = db_session.query(AuditLog).filter_by(module="reports").one()

        log.entity_name = "tampered"
        with pytest.raises(ValueError):
            db_session.commit()
        db_session.rollback()

    def test_audit_failure_does_not_undo_sale(self, db_session, receptionist_user, product, monkeypatch):
        def failing_entry(**kwargs):
            raise RuntimeError("audit store unavailable")

        monkeypatch.setattr(audit_service, "AuditLog", failing_entry)

        sale = sales_service.create_sale(receptionist_user.id, {
            "product_id": product.id,
            "quantity": 2,
            "unit_price_cents": 1000,
            "cost_price_cents": 600,
        })

        monkeypatch.undo()
        db_session.expire_all()
        assert db_session.get(Sale, sale.id) is not None
        assert db_session.get(Product, product.id).stock_quantity == 9
        assert db_session.query(AuditLog).filter_by(module="inventory").count() == 0


class TestAuditedOperations:
    def test_product_update_records_diff(self, db_session, admin_user, product):
        products_service.update_product(admin_user.id, product.id, {"price_cents": 1200})

        log = db_session.query(AuditLog).filter_by(module="products", action="update").one()
        assert log.changes == {"price_cents": {"before": 1000, "after": 1200}}

    def test_noop_update_not_audited(self, db_session, admin_user, product):
        products_service.update_product(admin_user.id, product.id, {"price_cents": 1000})
        assert db_session.query(AuditLog).filter_by(module="products", action="update").count() == 0

    def test_sale_audited_under_inventory(self, db_session, receptionist_user, product):
        sales_service.create_sale(receptionist_user.id, {
            "product_id": product.id,
            "quantity": 1,
            "unit_price_cents": 1000,
            "cost_price_cents": 600,
        })
        log = db_session.query(AuditLog).filter_by(module="inventory", action="create").one()
        assert log.entity_name == "Toothbrush"
        assert log.user_id == receptionist_user.id


class TestListAuditLogs:
    def test_newest_first_and_limited(self, db_session, admin_user):
        for i in range(5):
            audit_service.create_audit_log(user_id=admin_user.id, action="view", module="reports", entity_id=i)

        logs = audit_service.list_audit_logs(admin_user.id, limit=3)
        assert [log.entity_id for log in logs] == ["4", "3", "2"]

    def test_limit_is_clamped(self, db_session, admin_user):
        for _ in range(2):
            audit_service.create_audit_log(user_id=admin_user.id, action="view", module="reports")
        assert len(audit_service.list_audit_logs(admin_user.id, limit=0)) == 1

    def test_requires_audit_read(self, db_session, receptionist_user):
        with pytest.raises(PermissionDeniedError):
            audit_service.list_audit_logs(receptionist_user.id)
