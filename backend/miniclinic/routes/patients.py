# Overview: Flask API routes for patients, their payment plans and payments.

from flask import Blueprint, request, jsonify, g

from ..services import patients_service, payment_plan_service, payment_service
from ..decorators import require_auth


patients_bp = Blueprint("patients", __name__, url_prefix="/api/patients")


@patients_bp.get("")
@require_auth
def list_patients():
    patients = patients_service.list_patients(g.current_user.id, search=request.args.get("search"))
    return jsonify({"items": [p.to_dict() for p in patients], "count": len(patients)}), 200


@patients_bp.post("")
@require_auth
def create_patient():
    patient = patients_service.create_patient(g.current_user.id, request.get_json(silent=True) or {})
    return jsonify({"patient": patient.to_dict()}), 201


@patients_bp.get("/<int:patient_id>")
@require_auth
def get_patient(patient_id: int):
    patient = patients_service.get_patient(g.current_user.id, patient_id)
    return jsonify({"patient": patient.to_dict()}), 200


@patients_bp.patch("/<int:patient_id>")
@require_auth
def update_patient(patient_id: int):
    patient = patients_service.update_patient(
        g.current_user.id, patient_id, request.get_json(silent=True) or {}
    )
    return jsonify({"patient": patient.to_dict()}), 200


@patients_bp.get("/<int:patient_id>/payment-plan")
@require_auth
def get_patient_plan(patient_id: int):
    plan = payment_plan_service.get_payment_plan_by_patient(g.current_user.id, patient_id)
    return jsonify({"payment_plan": plan.to_dict() if plan else None}), 200


@patients_bp.get("/<int:patient_id>/payments")
@require_auth
def list_patient_payments(patient_id: int):
    items = payment_service.list_payments_for_patient(g.current_user.id, patient_id)
    return jsonify({"items": items, "count": len(items)}), 200
