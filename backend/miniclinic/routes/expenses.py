# Overview: Flask API routes for expenses and expense categories.

from flask import Blueprint, request, jsonify, g

from ..services import expenses_service
from ..decorators import require_auth
from ..validation import ValidationError


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


def _int_arg(name: str):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


@expenses_bp.get("")
@require_auth
def list_expenses():
    """Query params: year, month (1-12, needs year)."""
    year, month = _int_arg("year"), _int_arg("month")
    if month is not None and year is None:
        raise ValidationError("month needs year")
    expenses = expenses_service.list_expenses(g.current_user.id, year=year, month=month)
    return jsonify({
        "items": [e.to_dict() for e in expenses],
        "summary": expenses_service.summarize_expenses(expenses),
    }), 200


@expenses_bp.post("")
@require_auth
def create_expense():
    """Body: category, amount_cents, incurred_at, optional description, paid_to, payment_method."""
    expense = expenses_service.create_expense(g.current_user.id, request.get_json(silent=True) or {})
    return jsonify({"expense": expense.to_dict()}), 201


@expenses_bp.get("/<int:expense_id>")
@require_auth
def get_expense(expense_id: int):
    return jsonify({"expense": expenses_service.get_expense(g.current_user.id, expense_id).to_dict()}), 200


@expenses_bp.patch("/<int:expense_id>")
@require_auth
def update_expense(expense_id: int):
    expense = expenses_service.update_expense(g.current_user.id, expense_id, request.get_json(silent=True) or {})
    return jsonify({"expense": expense.to_dict()}), 200


@expenses_bp.delete("/<int:expense_id>")
@require_auth
def delete_expense(expense_id: int):
    expenses_service.delete_expense(g.current_user.id, expense_id)
    return jsonify({"deleted": True}), 200


@expenses_bp.get("/categories")
@require_auth
def list_categories():
    """Query params: include_inactive=true (admins only; ignored otherwise)."""
    include_inactive = request.args.get("include_inactive", "").lower() in ("1", "true", "yes")
    categories = expenses_service.list_categories(g.current_user.id, include_inactive=include_inactive)
    return jsonify({"items": [c.to_dict() for c in categories]}), 200


@expenses_bp.post("/categories")
@require_auth
def create_category():
    category = expenses_service.create_category(g.current_user.id, request.get_json(silent=True) or {})
    return jsonify({"category": category.to_dict()}), 201


@expenses_bp.patch("/categories/<int:category_id>")
@require_auth
def update_category(category_id: int):
    category = expenses_service.update_category(g.current_user.id, category_id, request.get_json(silent=True) or {})
    return jsonify({"category": category.to_dict()}), 200


@expenses_bp.delete("/categories/<int:category_id>")
@require_auth
def delete_category(category_id: int):
    expenses_service.delete_category(g.current_user.id, category_id)
    return jsonify({"deleted": True}), 200
