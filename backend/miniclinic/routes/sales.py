# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""Sales API routes. Permission enforcement lives in the sales service."""

from flask import Blueprint, request, jsonify, g

from ..services import sales_service
from ..decorators import require_auth
from ..time_utils import parse_iso_datetime
from ..validation import ValidationError


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _date_arg(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date")


def _sale_payload(sale) -> dict:
    data = sale.to_dict()
    data["product"] = {"id": sale.product.id, "name": sale.product.name} if sale.product else None
    return data


@sales_bp.post("")
@require_auth
def create_sale_route():
    """
    Record a sale and decrement stock.

    Body: product_id, quantity (items), unit_price_cents, cost_price_cents
    """
    sale = sales_service.create_sale(g.current_user.id, request.get_json(silent=True) or {})
    return jsonify({"sale": sale.to_dict()}), 201


@sales_bp.get("")
@require_auth
def list_sales_route():
    """Query params: start_date, end_date (ISO dates, inclusive)."""
    sales = sales_service.list_sales(
        g.current_user.id,
        start_date=_date_arg("start_date"),
        end_date=_date_arg("end_date"),
    )
    return jsonify({
        "items": [_sale_payload(s) for s in sales],
        "summary": sales_service.summarize(sales),
    }), 200


@sales_bp.get("/daily")
@require_auth
def daily_sales_route():
    """Query params: date (ISO date, defaults to today UTC)."""
    sales = sales_service.get_daily_sales(g.current_user.id, _date_arg("date"))
    return jsonify({
        "items": [_sale_payload(s) for s in sales],
        "summary": sales_service.summarize(sales),
    }), 200
