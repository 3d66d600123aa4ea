# Overview: Service-layer operations for inventory items; encapsulates business logic and database work.

"""
Clinic supplies (gloves, consumables) tracked by count. Gated on the
inventory module and its lock.
"""

from __future__ import annotations

from ..decorators import guarded
from ..extensions import db
from ..models import InventoryItem
from ..permissions import Module, Action
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    rules_inventory_item,
    validate_payload,
)
from . import audit_service, cache_service


CACHE_PREFIX = "/inventory"

INVENTORY_ITEM_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "name",
        "description",
        "sku",
        "category",
        "unit",
        "stock_quantity",
        "reorder_level",
        "image",
    }),
    required_on_create=frozenset({"name"}),
    rules=(rules_inventory_item,),
)

AUDITED_FIELDS = ("name", "description", "sku", "category", "unit", "stock_quantity", "reorder_level")


class InventoryItemNotFoundError(Exception):
    def __init__(self, message: str = "Inventory item not found"):
        super().__init__(message)


def _clean(payload: dict | None) -> dict:
    data = dict(payload or {})
    if isinstance(data.get("sku"), str) and not data["sku"].strip():
        data["sku"] = None
    return data


def _ensure_unique_sku(sku: str | None, exclude_id: int | None = None) -> None:
    if not sku:
        return
    q = db.session.query(InventoryItem).filter(InventoryItem.sku == sku)
    if exclude_id is not None:
        q = q.filter(InventoryItem.id != exclude_id)
    if q.first():
        raise ConflictError("SKU already exists.")


def _get_or_404(item_id: int) -> InventoryItem:
    item = db.session.get(InventoryItem, item_id)
    if not item:
        raise InventoryItemNotFoundError()
    return item


@guarded(Module.INVENTORY, Action.READ, lockable=True)
def list_inventory_items(actor_id: int) -> list[dict]:
    def _load():
        rows = db.session.query(InventoryItem).order_by(InventoryItem.name.asc(), InventoryItem.id.asc()).all()
        return [i.to_dict() for i in rows]

    return cache_service.with_cache(CACHE_PREFIX, _load)


@guarded(Module.INVENTORY, Action.READ, lockable=True)
def get_inventory_item(actor_id: int, item_id: int) -> dict:
    return _get_or_404(item_id).to_dict()


@guarded(Module.INVENTORY, Action.READ, lockable=True)
def get_low_stock_items(actor_id: int, limit: int = 10) -> list[dict]:
    rows = (
        db.session.query(InventoryItem)
        .filter(InventoryItem.reorder_level.isnot(None))
        .filter(InventoryItem.stock_quantity <= InventoryItem.reorder_level)
        .order_by(InventoryItem.stock_quantity.asc(), InventoryItem.id.asc())
        .limit(limit)
        .all()
    )
    return [i.to_dict() for i in rows]


@guarded(Module.INVENTORY, Action.CREATE, lockable=True)
def create_inventory_item(actor_id: int, payload: dict) -> dict:
    patch = validate_payload(
        model=InventoryItem,
        payload=_clean(payload),
        policy=INVENTORY_ITEM_POLICY,
        partial=False,
    )
    _ensure_unique_sku(patch.get("sku"))

    item = InventoryItem(**patch)
    db.session.add(item)
    db.session.commit()

    cache_service.revalidate_path(CACHE_PREFIX)
    audit_service.create_audit_log(
        user_id=actor_id,
        action="create",
        module=Module.INVENTORY,
        entity_id=item.id,
        entity_name=item.name,
    )
    return item.to_dict()


@guarded(Module.INVENTORY, Action.UPDATE, lockable=True)
def update_inventory_item(actor_id: int, item_id: int, payload: dict) -> dict:
    item = _get_or_404(item_id)
    patch = validate_payload(
        model=InventoryItem,
        payload=_clean(payload),
        policy=INVENTORY_ITEM_POLICY,
        partial=True,
    )
    if "sku" in patch:
        _ensure_unique_sku(patch["sku"], exclude_id=item.id)

    before = {f: getattr(item, f) for f in AUDITED_FIELDS}
    for k, v in patch.items():
        setattr(item, k, v)
    db.session.commit()

    changes = audit_service.format_changes(before, {f: getattr(item, f) for f in AUDITED_FIELDS})
    cache_service.revalidate_path(CACHE_PREFIX)
    if changes:
        audit_service.create_audit_log(
            user_id=actor_id,
            action="update",
            module=Module.INVENTORY,
            entity_id=item.id,
            entity_name=item.name,
            changes=changes,
        )
    return item.to_dict()


@guarded(Module.INVENTORY, Action.DELETE, lockable=True)
def delete_inventory_item(actor_id: int, item_id: int) -> None:
    item = _get_or_404(item_id)
    name = item.name

    db.session.delete(item)
    db.session.commit()

    cache_service.revalidate_path(CACHE_PREFIX)
    audit_service.create_audit_log(
        user_id=actor_id,
        action="delete",
        module=Module.INVENTORY,
        entity_id=item_id,
        entity_name=name,
    )
