# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product catalogue routes.

SECURITY: All routes require authentication. Permission and lock checks run
inside the products service.
"""

from flask import Blueprint, request, jsonify, g

from ..services import products_service
from ..decorators import require_auth


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products():
    """
    Query params:
    - category: exact category match (optional)
    - search: case-insensitive name fragment (optional)
    """
    items = products_service.list_products(
        g.current_user.id,
        category=request.args.get("category") or None,
        search=request.args.get("search") or None,
    )
    return jsonify({"items": items, "count": len(items)}), 200


@products_bp.get("/low-stock")
@require_auth
def low_stock_products():
    limit = request.args.get("limit", default=10, type=int)
    items = products_service.get_low_stock_products(g.current_user.id, limit=limit)
    return jsonify({"items": items, "count": len(items)}), 200


@products_bp.get("/<int:product_id>")
@require_auth
def get_product(product_id: int):
    return jsonify({"product": products_service.get_product(g.current_user.id, product_id)}), 200


@products_bp.post("")
@require_auth
def create_product():
    product = products_service.create_product(g.current_user.id, request.get_json(silent=True) or {})
    return jsonify({"product": product}), 201


@products_bp.patch("/<int:product_id>")
@require_auth
def update_product(product_id: int):
    product = products_service.update_product(
        g.current_user.id, product_id, request.get_json(silent=True) or {}
    )
    return jsonify({"product": product}), 200


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product(product_id: int):
    products_service.delete_product(g.current_user.id, product_id)
    return jsonify({"deleted": True}), 200
