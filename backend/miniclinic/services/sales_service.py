"""
Sales Service - over-the-counter product sales

WHY: A sale and its stock decrement must land together or not at all.
Stock is tracked in packs while sales count individual items, so opened packs
are fully deducted (ceil(quantity / quantity_per_pack)).
"""

from __future__ import annotations

from datetime import date, datetime

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload

from ..decorators import guarded
from ..extensions import db
from ..models import Sale, Product
from ..permissions import Module, Action
from ..time_utils import utcnow, start_of_day, end_of_day
from ..validation import ModelValidationPolicy, rules_sale, validate_payload
from . import audit_service, cache_service
from .concurrency import begin_immediate, lock_for_update
from .products_service import CACHE_PREFIX as PRODUCTS_CACHE_PREFIX, ProductNotFoundError


SALE_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"product_id", "quantity", "unit_price_cents", "cost_price_cents"}),
    required_on_create=frozenset({"product_id", "quantity", "unit_price_cents", "cost_price_cents"}),
    rules=(rules_sale,),
)


class SaleError(Exception):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class InsufficientStockError(SaleError):
    def __init__(self, requested: int, available: int):
        super().__init__(
            "Insufficient stock",
            details={"requested_quantity": requested, "available_quantity": available},
        )


def packs_needed(quantity: int, quantity_per_pack: int | None) -> int:
    """Whole packs consumed by selling quantity items; a partly used pack counts."""
    per_pack = quantity_per_pack or 1
    return -(-quantity // per_pack)


def _decrement_stock(product: Product, packs: int) -> None:
    product.stock_quantity = product.stock_quantity - packs
    db.session.flush()


@guarded(Module.INVENTORY, Action.CREATE)
def create_sale(actor_id: int, payload: dict) -> Sale:
    """
    Record a sale and decrement the product's stock in one transaction.

    Raises:
        ValidationError: payload invalid (every violation listed)
        ProductNotFoundError: product does not exist
        InsufficientStockError: fewer items in stock than requested
        SaleError: data-access failure (rolled back, not retried)
    """
    patch = validate_payload(model=Sale, payload=payload, policy=SALE_POLICY, partial=False)

    product_id = patch["product_id"]
    quantity = patch["quantity"]
    unit_price_cents = patch["unit_price_cents"]
    cost_price_cents = patch["cost_price_cents"]

    try:
        begin_immediate()
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise ProductNotFoundError()

        per_pack = product.quantity_per_pack or 1
        available_items = product.stock_quantity * per_pack
        if available_items < quantity:
            raise InsufficientStockError(quantity, available_items)

        sale = Sale(
            product_id=product.id,
            quantity=quantity,
            unit_price_cents=unit_price_cents,
            cost_price_cents=cost_price_cents,
            total_amount_cents=unit_price_cents * quantity,
            profit_cents=(unit_price_cents - cost_price_cents) * quantity,
            sold_by_user_id=actor_id,
            sale_date=utcnow(),
        )
        db.session.add(sale)
        _decrement_stock(product, packs_needed(quantity, per_pack))

        db.session.commit()
    except (ProductNotFoundError, InsufficientStockError):
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to create sale (product_id=%s user_id=%s quantity=%s)",
            product_id, actor_id, quantity,
        )
        raise SaleError("Failed to create sale") from exc

    current_app.logger.info(
        "Sale %s recorded: product %s x%s by user %s", sale.id, product_id, quantity, actor_id
    )
    cache_service.revalidate_path(PRODUCTS_CACHE_PREFIX)
    audit_service.create_audit_log(
        user_id=actor_id,
        action="create",
        module=Module.INVENTORY,
        entity_id=sale.id,
        entity_name=product.name,
        changes={
            "product_id": product_id,
            "quantity": quantity,
            "total_amount_cents": sale.total_amount_cents,
        },
    )
    return sale


@guarded(Module.INVENTORY, Action.READ)
def list_sales(
    actor_id: int,
    start_date: date | datetime | None = None,
    end_date: date | datetime | None = None,
) -> list[Sale]:
    """Sales newest first, with their product loaded. Date bounds are whole days, inclusive."""
    q = db.session.query(Sale).options(joinedload(Sale.product))
    if start_date is not None:
        q = q.filter(Sale.sale_date >= start_of_day(start_date))
    if end_date is not None:
        q = q.filter(Sale.sale_date <= end_of_day(end_date))
    return q.order_by(Sale.sale_date.desc(), Sale.id.desc()).all()


def get_daily_sales(actor_id: int, day: date | datetime | None = None) -> list[Sale]:
    day = day or utcnow()
    return list_sales(actor_id, start_date=day, end_date=day)


def summarize(sales: list[Sale]) -> dict:
    return {
        "count": len(sales),
        "items_sold": sum(s.quantity for s in sales),
        "total_amount_cents": sum(s.total_amount_cents for s in sales),
        "profit_cents": sum(s.profit_cents for s in sales),
    }
