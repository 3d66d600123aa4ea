# Overview: Flask API routes for payment plan operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..services import payment_plan_service
from ..decorators import require_auth


payment_plans_bp = Blueprint("payment_plans", __name__, url_prefix="/api/payment-plans")


@payment_plans_bp.get("")
@require_auth
def list_plans():
    items = payment_plan_service.list_payment_plans(g.current_user.id)
    return jsonify({"items": items, "count": len(items)}), 200


@payment_plans_bp.get("/outstanding")
@require_auth
def outstanding_plans():
    items = payment_plan_service.get_outstanding_payment_plans(g.current_user.id)
    return jsonify({"items": items, "count": len(items)}), 200


@payment_plans_bp.get("/overdue")
@require_auth
def overdue_plans():
    items = payment_plan_service.get_overdue_payment_plans(g.current_user.id)
    return jsonify({"items": items, "count": len(items)}), 200


@payment_plans_bp.post("")
@require_auth
def create_plan():
    plan = payment_plan_service.create_payment_plan(g.current_user.id, request.get_json(silent=True) or {})
    return jsonify({"payment_plan": plan.to_dict()}), 201


@payment_plans_bp.get("/<int:plan_id>")
@require_auth
def plan_details(plan_id: int):
    return jsonify({"payment_plan": payment_plan_service.get_payment_plan_details(g.current_user.id, plan_id)}), 200


@payment_plans_bp.patch("/<int:plan_id>")
@require_auth
def update_plan(plan_id: int):
    plan = payment_plan_service.update_payment_plan(
        g.current_user.id, plan_id, request.get_json(silent=True) or {}
    )
    return jsonify({"payment_plan": plan.to_dict()}), 200


@payment_plans_bp.post("/<int:plan_id>/pause")
@require_auth
def pause_plan(plan_id: int):
    plan = payment_plan_service.pause_payment_plan(g.current_user.id, plan_id)
    return jsonify({"payment_plan": plan.to_dict()}), 200


@payment_plans_bp.post("/<int:plan_id>/unpause")
@require_auth
def unpause_plan(plan_id: int):
    plan = payment_plan_service.unpause_payment_plan(g.current_user.id, plan_id)
    return jsonify({"payment_plan": plan.to_dict()}), 200


@payment_plans_bp.delete("/<int:plan_id>")
@require_auth
def delete_plan(plan_id: int):
    payment_plan_service.delete_payment_plan(g.current_user.id, plan_id)
    return jsonify({"deleted": True}), 200
