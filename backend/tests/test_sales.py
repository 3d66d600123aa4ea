"""
Sales Tests

- Stock is counted in packs; sales in individual items
- Sale row and stock decrement commit together or not at all
- Validation reports every problem at once
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError

from miniclinic import create_app
from miniclinic.extensions import db
from miniclinic.models import Product, Sale
from miniclinic.services.auth_service import create_default_roles, create_user
from miniclinic.services import cache_service, permission_service, sales_service
from miniclinic.services.permission_service import PermissionDeniedError
from miniclinic.services.products_service import ProductNotFoundError
from miniclinic.services.sales_service import InsufficientStockError, SaleError, packs_needed
from miniclinic.time_utils import utcnow
from miniclinic.validation import ValidationError


def _payload(product, quantity, unit=1000, cost=600):
    return {
        "product_id": product.id,
        "quantity": quantity,
        "unit_price_cents": unit,
        "cost_price_cents": cost,
    }


# ============================================================================
# Pack arithmetic
# ============================================================================

class TestPacksNeeded:
    @pytest.mark.parametrize("quantity,per_pack,expected", [
        (5, 12, 1),
        (12, 12, 1),
        (13, 12, 2),
        (24, 12, 2),
        (3, 1, 3),
        (3, None, 3),
    ])
    def test_opened_pack_is_consumed(self, quantity, per_pack, expected):
        assert packs_needed(quantity, per_pack) == expected


# ============================================================================
# create_sale
# ============================================================================

class TestCreateSale:
    def test_sale_decrements_packs(self, db_session, receptionist_user, product):
        sale = sales_service.create_sale(receptionist_user.id, _payload(product, 5))

        db_session.expire_all()
        assert db_session.get(Product, product.id).stock_quantity == 9
        assert sale.quantity == 5
        assert sale.sold_by_user_id == receptionist_user.id

    def test_totals_and_profit(self, db_session, receptionist_user, product):
        sale = sales_service.create_sale(receptionist_user.id, _payload(product, 3))
        assert sale.total_amount_cents == 3000
        assert sale.profit_cents == 1200

    def test_sell_entire_stock(self, db_session, receptionist_user, product):
        sales_service.create_sale(receptionist_user.id, _payload(product, 120))

        db_session.expire_all()
        assert db_session.get(Product, product.id).stock_quantity == 0

    def test_insufficient_stock(self, db_session, receptionist_user, product):
        with pytest.raises(InsufficientStockError) as exc:
            sales_service.create_sale(receptionist_user.id, _payload(product, 121))

        assert exc.value.details == {"requested_quantity": 121, "available_quantity": 120}
        db_session.expire_all()
        assert db_session.get(Product, product.id).stock_quantity == 10
        assert db_session.query(Sale).count() == 0

    def test_unknown_product(self, db_session, receptionist_user):
        payload = {"product_id": 999999, "quantity": 1, "unit_price_cents": 100, "cost_price_cents": 50}
        with pytest.raises(ProductNotFoundError):
            sales_service.create_sale(receptionist_user.id, payload)

    def test_failure_rolls_back_everything(self, db_session, receptionist_user, product, monkeypatch):
        def boom(product, packs):
            raise SQLAlchemyError("disk I/O error")

        monkeypatch.setattr(sales_service, "_decrement_stock", boom)

        with pytest.raises(SaleError) as exc:
            sales_service.create_sale(receptionist_user.id, _payload(product, 5))

        assert str(exc.value) == "Failed to create sale"
        db_session.expire_all()
        assert db_session.query(Sale).count() == 0
        assert db_session.get(Product, product.id).stock_quantity == 10

    @pytest.mark.parametrize("model,hook", [(Sale, "before_insert"), (Product, "before_update")])
    def test_flush_failure_rolls_back_everything(self, db_session, receptionist_user, product, model, hook):
        def fail(mapper, connection, target):
            raise SQLAlchemyError("disk full")

        event.listen(model, hook, fail)
        try:
            with pytest.raises(SaleError):
                sales_service.create_sale(receptionist_user.id, _payload(product, 5))
        finally:
            event.remove(model, hook, fail)

        db_session.expire_all()
        assert db_session.query(Sale).count() == 0
        assert db_session.get(Product, product.id).stock_quantity == 10

    def test_requires_inventory_create(self, db_session, doctor_user, product):
        with pytest.raises(PermissionDeniedError):
            sales_service.create_sale(doctor_user.id, _payload(product, 1))
        assert db_session.query(Sale).count() == 0

    def test_sale_invalidates_product_cache(self, db_session, receptionist_user, product):
        cache_service.put("/products", [{"id": product.id}])
        sales_service.create_sale(receptionist_user.id, _payload(product, 1))
        assert cache_service.get("/products") is None

    def test_sales_are_immutable(self, db_session, receptionist_user, product):
        sale = sales_service.create_sale(receptionist_user.id, _payload(product, 1))
        sale.quantity = 2
        with pytest.raises(ValueError):
            db_session.commit()
        db_session.rollback()


# ============================================================================
# Validation
# ============================================================================

class TestSaleValidation:
    def test_all_errors_reported(self, db_session, receptionist_user, product):
        with pytest.raises(ValidationError) as exc:
            sales_service.create_sale(receptionist_user.id, {
                "product_id": product.id,
                "quantity": 0,
                "unit_price_cents": -1,
                "cost_price_cents": -5,
            })
        assert exc.value.errors == [
            "Quantity must be positive",
            "Unit price must be non-negative",
            "Cost price must be non-negative",
        ]

    def test_missing_fields(self, db_session, receptionist_user):
        with pytest.raises(ValidationError) as exc:
            sales_service.create_sale(receptionist_user.id, {"quantity": 1})
        assert "product_id is required" in exc.value.errors
        assert "unit_price_cents is required" in exc.value.errors
        assert "cost_price_cents is required" in exc.value.errors

    def test_decimal_quantity_rejected(self, db_session, receptionist_user, product):
        with pytest.raises(ValidationError) as exc:
            sales_service.create_sale(receptionist_user.id, _payload(product, 1.5))
        assert exc.value.errors == ["quantity must be an integer, not a decimal"]

    def test_unknown_field_rejected(self, db_session, receptionist_user, product):
        payload = _payload(product, 1)
        payload["total_amount_cents"] = 1
        with pytest.raises(ValidationError) as exc:
            sales_service.create_sale(receptionist_user.id, payload)
        assert "Field not allowed: total_amount_cents" in exc.value.errors


# ============================================================================
# HTTP
# ============================================================================

class TestSalesRoutes:
    def test_create_and_list(self, client, receptionist_headers, product):
        response = client.post("/api/sales", json=_payload(product, 5), headers=receptionist_headers)
        assert response.status_code == 201
        assert response.json["sale"]["total_amount_cents"] == 5000

        response = client.get("/api/sales", headers=receptionist_headers)
        assert response.status_code == 200
        assert response.json["summary"] == {
            "count": 1,
            "items_sold": 5,
            "total_amount_cents": 5000,
            "profit_cents": 2000,
        }
        assert response.json["items"][0]["product"]["name"] == "Toothbrush"

    def test_insufficient_stock_is_409(self, client, db_session, receptionist_headers, product):
        response = client.post("/api/sales", json=_payload(product, 500), headers=receptionist_headers)
        assert response.status_code == 409
        assert response.json["error"] == "Insufficient stock"
        assert response.json["details"]["available_quantity"] == 120
        assert db_session.query(Sale).count() == 0

    def test_validation_is_400(self, client, receptionist_headers, product):
        response = client.post("/api/sales", json=_payload(product, -1), headers=receptionist_headers)
        assert response.status_code == 400
        assert response.json["errors"] == ["Quantity must be positive"]

    def test_unknown_product_is_404(self, client, receptionist_headers, seed):
        response = client.post("/api/sales", json={
            "product_id": 424242, "quantity": 1, "unit_price_cents": 1, "cost_price_cents": 1,
        }, headers=receptionist_headers)
        assert response.status_code == 404
        assert response.json["error"] == "Product not found"

    def test_date_filter(self, client, receptionist_headers, product):
        client.post("/api/sales", json=_payload(product, 1), headers=receptionist_headers)

        yesterday = (utcnow() - timedelta(days=1)).date().isoformat()
        response = client.get(
            f"/api/sales?start_date={yesterday}&end_date={yesterday}",
            headers=receptionist_headers,
        )
        assert response.json["items"] == []

        today = utcnow().date().isoformat()
        response = client.get(f"/api/sales/daily?date={today}", headers=receptionist_headers)
        assert response.json["summary"]["count"] == 1

    def test_bad_date_is_400(self, client, receptionist_headers, seed):
        response = client.get("/api/sales?start_date=yesterday", headers=receptionist_headers)
        assert response.status_code == 400


# ============================================================================
# Concurrent sales against a file-backed database
# ============================================================================

class TestConcurrentSales:
    @pytest.fixture
    def file_app(self, tmp_path):
        app = create_app({
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'clinic.sqlite3'}",
            'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'timeout': 30}},
            'BCRYPT_ROUNDS': 4,
        })
        with app.app_context():
            db.create_all()
            create_default_roles()
            permission_service.initialize_permissions()
            permission_service.assign_default_role_permissions()

        yield app

        with app.app_context():
            db.session.remove()
            db.engine.dispose()

    def test_last_items_are_sold_once(self, file_app):
        with file_app.app_context():
            seller = create_user(
                username="reception",
                email="reception@clinic.test",
                password="Password123!",
                role_name="receptionist",
            )
            item = Product(
                name="Mouthwash",
                sku="MW-001",
                price_cents=1500,
                cost_price_cents=900,
                stock_quantity=5,
                quantity_per_pack=1,
            )
            db.session.add(item)
            db.session.commit()
            seller_id, product_id = seller.id, item.id

        def sell(_):
            with file_app.app_context():
                try:
                    sales_service.create_sale(seller_id, {
                        "product_id": product_id,
                        "quantity": 1,
                        "unit_price_cents": 1500,
                        "cost_price_cents": 900,
                    })
                    return "ok"
                except InsufficientStockError:
                    return "out of stock"

        with ThreadPoolExecutor(max_workers=8) as pool:
            outcomes = list(pool.map(sell, range(8)))

        assert outcomes.count("ok") == 5
        assert outcomes.count("out of stock") == 3

        with file_app.app_context():
            assert db.session.get(Product, product_id).stock_quantity == 0
            assert db.session.query(Sale).count() == 5
