# Overview: Flask API routes for inventory item operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..services import inventory_service
from ..decorators import require_auth


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@require_auth
def list_items():
    items = inventory_service.list_inventory_items(g.current_user.id)
    return jsonify({"items": items, "count": len(items)}), 200


@inventory_bp.get("/low-stock")
@require_auth
def low_stock_items():
    limit = request.args.get("limit", default=10, type=int)
    items = inventory_service.get_low_stock_items(g.current_user.id, limit=limit)
    return jsonify({"items": items, "count": len(items)}), 200


@inventory_bp.get("/<int:item_id>")
@require_auth
def get_item(item_id: int):
    return jsonify({"item": inventory_service.get_inventory_item(g.current_user.id, item_id)}), 200


@inventory_bp.post("")
@require_auth
def create_item():
    item = inventory_service.create_inventory_item(g.current_user.id, request.get_json(silent=True) or {})
    return jsonify({"item": item}), 201


@inventory_bp.patch("/<int:item_id>")
@require_auth
def update_item(item_id: int):
    item = inventory_service.update_inventory_item(
        g.current_user.id, item_id, request.get_json(silent=True) or {}
    )
    return jsonify({"item": item}), 200


@inventory_bp.delete("/<int:item_id>")
@require_auth
def delete_item(item_id: int):
    inventory_service.delete_inventory_item(g.current_user.id, item_id)
    return jsonify({"deleted": True}), 200
