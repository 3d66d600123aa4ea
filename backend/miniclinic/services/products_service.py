# backend/miniclinic/services/products_service.py
"""
Products Service

Catalogue CRUD for products sold over the counter. Every operation runs
behind the products permission gate; mutations also respect the products
module lock.

Product listings are cached under the "/products" path key and dropped after
any mutation or sale.
"""
from __future__ import annotations

from flask import current_app

from ..decorators import guarded
from ..extensions import db
from ..models import Product
from ..permissions import Module, Action
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    rules_product,
    validate_payload,
)
from . import audit_service, cache_service


CACHE_PREFIX = "/products"

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "name",
        "description",
        "sku",
        "category",
        "unit",
        "price_cents",
        "cost_price_cents",
        "stock_quantity",
        "quantity_per_pack",
        "reorder_level",
        "image",
    }),
    required_on_create=frozenset({"name", "price_cents"}),
    rules=(rules_product,),
)

# Fields captured for audit diffs
AUDITED_FIELDS = (
    "name",
    "description",
    "sku",
    "category",
    "unit",
    "price_cents",
    "cost_price_cents",
    "stock_quantity",
    "quantity_per_pack",
    "reorder_level",
)


class ProductNotFoundError(Exception):
    def __init__(self, message: str = "Product not found"):
        super().__init__(message)


def _normalize(payload: dict | None, *, creating: bool) -> dict:
    """
    Form-style inputs: a cost price of 0 or blank means "unknown" and is
    stored as null; a blank SKU is no SKU; pack size defaults to 1.
    """
    data = dict(payload or {})

    if "cost_price_cents" in data:
        raw = data["cost_price_cents"]
        if raw is None or (isinstance(raw, str) and raw.strip() in ("", "0")) or raw == 0:
            data["cost_price_cents"] = None

    if "sku" in data and isinstance(data["sku"], str) and not data["sku"].strip():
        data["sku"] = None

    if creating and data.get("quantity_per_pack") in (None, ""):
        data["quantity_per_pack"] = 1

    return data


def _snapshot(p: Product) -> dict:
    return {field: getattr(p, field) for field in AUDITED_FIELDS}


def _ensure_unique_sku(sku: str | None, exclude_id: int | None = None) -> None:
    if not sku:
        return
    q = db.session.query(Product).filter(Product.sku == sku)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first():
        raise ConflictError("SKU already exists.")


def _get_or_404(product_id: int) -> Product:
    p = db.session.get(Product, product_id)
    if not p:
        raise ProductNotFoundError()
    return p


@guarded(Module.PRODUCTS, Action.READ, lockable=True)
def list_products(actor_id: int, *, category: str | None = None, search: str | None = None) -> list[dict]:
    """All products ordered by name, optionally filtered. Served from cache when warm."""
    key = CACHE_PREFIX
    if category or search:
        key = f"{CACHE_PREFIX}?category={category or ''}&search={search or ''}"

    def _load() -> list[dict]:
        q = db.session.query(Product)
        if category:
            q = q.filter(Product.category == category)
        if search:
            q = q.filter(Product.name.ilike(f"%{search}%"))
        return [p.to_dict() for p in q.order_by(Product.name.asc(), Product.id.asc()).all()]

    return cache_service.with_cache(key, _load)


@guarded(Module.PRODUCTS, Action.READ, lockable=True)
def get_product(actor_id: int, product_id: int) -> dict:
    return _get_or_404(product_id).to_dict()


@guarded(Module.PRODUCTS, Action.READ, lockable=True)
def get_low_stock_products(actor_id: int, limit: int = 10) -> list[dict]:
    """Products at or below their reorder level, lowest stock first."""
    rows = (
        db.session.query(Product)
        .filter(Product.reorder_level.isnot(None))
        .filter(Product.stock_quantity <= Product.reorder_level)
        .order_by(Product.stock_quantity.asc(), Product.id.asc())
        .limit(limit)
        .all()
    )
    return [p.to_dict() for p in rows]


@guarded(Module.PRODUCTS, Action.CREATE, lockable=True)
def create_product(actor_id: int, payload: dict) -> dict:
    """
    Create product from a raw payload.

    Raises:
        ValidationError: invalid or missing fields
        ConflictError: SKU already exists
    """
    patch = validate_payload(
        model=Product,
        payload=_normalize(payload, creating=True),
        policy=PRODUCT_POLICY,
        partial=False,
    )
    _ensure_unique_sku(patch.get("sku"))

    p = Product()
    for k, v in patch.items():
        setattr(p, k, v)

    db.session.add(p)
    db.session.commit()

    cache_service.revalidate_path(CACHE_PREFIX)
    audit_service.create_audit_log(
        user_id=actor_id,
        action="create",
        module=Module.PRODUCTS,
        entity_id=p.id,
        entity_name=p.name,
    )
    return p.to_dict()


@guarded(Module.PRODUCTS, Action.UPDATE, lockable=True)
def update_product(actor_id: int, product_id: int, payload: dict) -> dict:
    p = _get_or_404(product_id)

    patch = validate_payload(
        model=Product,
        payload=_normalize(payload, creating=False),
        policy=PRODUCT_POLICY,
        partial=True,
    )
    if "sku" in patch:
        _ensure_unique_sku(patch["sku"], exclude_id=p.id)

    before = _snapshot(p)
    for k, v in patch.items():
        setattr(p, k, v)
    db.session.commit()

    changes = audit_service.format_changes(before, _snapshot(p))
    cache_service.revalidate_path(CACHE_PREFIX)
    if changes:
        audit_service.create_audit_log(
            user_id=actor_id,
            action="update",
            module=Module.PRODUCTS,
            entity_id=p.id,
            entity_name=p.name,
            changes=changes,
        )
    return p.to_dict()


@guarded(Module.PRODUCTS, Action.DELETE, lockable=True)
def delete_product(actor_id: int, product_id: int) -> None:
    """
    Delete a product that has never been sold.

    Sales are immutable history, so a product with sales is kept.
    """
    p = _get_or_404(product_id)

    if p.sales.count() > 0:
        raise ConflictError("Product has recorded sales and cannot be deleted")

    name = p.name
    db.session.delete(p)
    db.session.commit()

    current_app.logger.info("Product %s deleted by user %s", product_id, actor_id)
    cache_service.revalidate_path(CACHE_PREFIX)
    audit_service.create_audit_log(
        user_id=actor_id,
        action="delete",
        module=Module.PRODUCTS,
        entity_id=product_id,
        entity_name=name,
    )
