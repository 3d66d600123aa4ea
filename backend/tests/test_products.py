"""
Product catalogue and inventory item tests.
"""

import pytest

from miniclinic.models import Product
from miniclinic.extensions import cache
from miniclinic.services import cache_service, inventory_service, products_service, sales_service
from miniclinic.services.inventory_service import InventoryItemNotFoundError
from miniclinic.services.products_service import ProductNotFoundError
from miniclinic.validation import ConflictError, ValidationError


class TestProductService:
    def test_create_defaults(self, db_session, receptionist_user):
        product = products_service.create_product(receptionist_user.id, {
            "name": "  Dental Floss ",
            "price_cents": "450",
            "cost_price_cents": "0",
            "sku": "  ",
        })
        assert product["name"] == "Dental Floss"
        assert product["price_cents"] == 450
        assert product["cost_price_cents"] is None
        assert product["sku"] is None
        assert product["quantity_per_pack"] == 1

    def test_missing_name_and_price(self, db_session, receptionist_user):
        with pytest.raises(ValidationError) as exc:
            products_service.create_product(receptionist_user.id, {})
        assert exc.value.errors == ["name is required", "price_cents is required"]

    def test_invalid_values_collected(self, db_session, receptionist_user):
        with pytest.raises(ValidationError) as exc:
            products_service.create_product(receptionist_user.id, {
                "name": "Floss",
                "price_cents": -1,
                "quantity_per_pack": 0,
            })
        assert "price_cents must be non-negative" in exc.value.errors
        assert "quantity_per_pack must be >= 1" in exc.value.errors

    def test_duplicate_sku(self, db_session, receptionist_user, product):
        with pytest.raises(ConflictError):
            products_service.create_product(receptionist_user.id, {
                "name": "Other", "price_cents": 1, "sku": "TB-001",
            })

    def test_update_keeps_own_sku(self, db_session, receptionist_user, product):
        updated = products_service.update_product(receptionist_user.id, product.id, {
            "sku": "TB-001", "stock_quantity": 4,
        })
        assert updated["stock_quantity"] == 4

    def test_update_unknown(self, db_session, receptionist_user):
        with pytest.raises(ProductNotFoundError):
            products_service.update_product(receptionist_user.id, 999, {"name": "x"})

    def test_search_and_category(self, db_session, receptionist_user, product):
        products_service.create_product(receptionist_user.id, {
            "name": "Whitening Gel", "price_cents": 9000, "category": "whitening",
        })
        assert [p["name"] for p in products_service.list_products(receptionist_user.id, search="brush")] == ["Toothbrush"]
        assert [p["name"] for p in products_service.list_products(receptionist_user.id, category="whitening")] == [
            "Whitening Gel"
        ]

    def test_low_stock(self, db_session, receptionist_user, product):
        products_service.create_product(receptionist_user.id, {
            "name": "Brace Wax", "price_cents": 300, "stock_quantity": 2, "reorder_level": 5,
        })
        low = products_service.get_low_stock_products(receptionist_user.id)
        assert [p["name"] for p in low] == ["Brace Wax", "Toothbrush"]

    def test_delete(self, db_session, receptionist_user, product):
        products_service.delete_product(receptionist_user.id, product.id)
        assert db_session.get(Product, product.id) is None

    def test_delete_with_sales_rejected(self, db_session, receptionist_user, product):
        sales_service.create_sale(receptionist_user.id, {
            "product_id": product.id, "quantity": 1, "unit_price_cents": 1000, "cost_price_cents": 600,
        })
        with pytest.raises(ConflictError):
            products_service.delete_product(receptionist_user.id, product.id)


class TestProductCache:
    def test_listing_is_cached_until_mutation(self, db_session, receptionist_user, product):
        products_service.list_products(receptionist_user.id)
        assert cache_service.get("/products") is not None

        products_service.update_product(receptionist_user.id, product.id, {"name": "Soft Toothbrush"})
        assert cache_service.get("/products") is None
        assert products_service.list_products(receptionist_user.id)[0]["name"] == "Soft Toothbrush"

    def test_revalidate_drops_prefix_only(self, db_session):
        cache_service.put("/products", [1])
        cache_service.put("/products?category=x&search=", [2])
        cache_service.put("/inventory", [3])

        assert cache_service.revalidate_path("/products") == 2
        assert cache_service.get("/products?category=x&search=") is None
        assert cache_service.get("/inventory") == [3]

    def test_key_index_lives_in_the_cache(self, db_session):
        cache_service.put("/products", [1])
        cache_service.put("/products", [2])
        cache_service.put("/inventory", [3])
        assert cache.get(cache_service.KEY_INDEX) == ["/products", "/inventory"]

        cache_service.revalidate_path("/inventory")
        assert cache.get(cache_service.KEY_INDEX) == ["/products"]

    def test_empty_listing_is_cached(self, db_session, receptionist_user):
        assert products_service.list_products(receptionist_user.id) == []
        assert cache_service.get("/products") == []


class TestInventoryItems:
    def test_crud(self, db_session, receptionist_user):
        item = inventory_service.create_inventory_item(receptionist_user.id, {
            "name": "Nitrile Gloves", "stock_quantity": 40, "unit": "box",
        })
        assert inventory_service.get_inventory_item(receptionist_user.id, item["id"])["unit"] == "box"

        updated = inventory_service.update_inventory_item(receptionist_user.id, item["id"], {"stock_quantity": 3})
        assert updated["stock_quantity"] == 3
        assert [i["id"] for i in inventory_service.get_low_stock_items(receptionist_user.id)] == [item["id"]]

        inventory_service.delete_inventory_item(receptionist_user.id, item["id"])
        with pytest.raises(InventoryItemNotFoundError):
            inventory_service.get_inventory_item(receptionist_user.id, item["id"])

    def test_negative_stock_rejected(self, db_session, receptionist_user):
        with pytest.raises(ValidationError):
            inventory_service.create_inventory_item(receptionist_user.id, {"name": "Gauze", "stock_quantity": -1})


class TestProductRoutes:
    def test_create_and_get(self, client, receptionist_headers):
        response = client.post("/api/products", json={"name": "Floss", "price_cents": 450}, headers=receptionist_headers)
        assert response.status_code == 201
        product_id = response.json["product"]["id"]

        response = client.get(f"/api/products/{product_id}", headers=receptionist_headers)
        assert response.json["product"]["name"] == "Floss"

    def test_not_found(self, client, receptionist_headers):
        response = client.get("/api/products/999", headers=receptionist_headers)
        assert response.status_code == 404
        assert response.json["error"] == "Product not found"

    def test_duplicate_sku_is_409(self, client, receptionist_headers, product):
        response = client.post("/api/products", json={
            "name": "Copy", "price_cents": 1, "sku": "TB-001",
        }, headers=receptionist_headers)
        assert response.status_code == 409
        assert response.json["error"] == "SKU already exists."
