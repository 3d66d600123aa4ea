# Overview: Flask API routes for payment operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..services import payment_service
from ..decorators import require_auth


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.get("")
@require_auth
def list_payments():
    items = payment_service.list_payments(g.current_user.id)
    return jsonify({"items": items, "count": len(items)}), 200


@payments_bp.post("")
@require_auth
def create_payment():
    """
    Body: amount_cents, method, optional status (default "completed"),
    patient_id, payment_plan_id, description, transaction_id.
    """
    payment = payment_service.create_payment(g.current_user.id, request.get_json(silent=True) or {})
    return jsonify({"payment": payment.to_dict()}), 201


@payments_bp.patch("/<int:payment_id>")
@require_auth
def update_payment(payment_id: int):
    """Body: any of amount_cents, method, status, description, transaction_id."""
    payment = payment_service.update_payment(g.current_user.id, payment_id, request.get_json(silent=True) or {})
    return jsonify({"payment": payment.to_dict()}), 200


@payments_bp.delete("/<int:payment_id>")
@require_auth
def delete_payment(payment_id: int):
    payment_service.delete_payment(g.current_user.id, payment_id)
    return jsonify({"deleted": True}), 200
