# Overview: Flask API routes for appointments and doctor availability.

from flask import Blueprint, request, jsonify, g

from ..services import appointments_service
from ..decorators import require_auth
from ..time_utils import parse_iso_datetime
from ..validation import ValidationError


appointments_bp = Blueprint("appointments", __name__, url_prefix="/api/appointments")


def _int_arg(name: str):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


def _datetime_arg(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


@appointments_bp.get("")
@require_auth
def list_appointments():
    """Query params: doctor_id, patient_id, start, end (ISO datetimes, end exclusive)."""
    items = appointments_service.list_appointments(
        g.current_user.id,
        doctor_id=_int_arg("doctor_id"),
        patient_id=_int_arg("patient_id"),
        start=_datetime_arg("start"),
        end=_datetime_arg("end"),
    )
    return jsonify({"items": items, "count": len(items)}), 200


@appointments_bp.post("")
@require_auth
def create_appointment():
    """
    Body: patient_id, doctor_user_id, scheduled_at, type, optional
    duration_minutes (default 30), status (default "scheduled"), notes.
    """
    appointment = appointments_service.create_appointment(g.current_user.id, request.get_json(silent=True) or {})
    return jsonify({"appointment": appointment.to_dict()}), 201


@appointments_bp.get("/<int:appointment_id>")
@require_auth
def get_appointment(appointment_id: int):
    return jsonify({"appointment": appointments_service.get_appointment(g.current_user.id, appointment_id)}), 200


@appointments_bp.patch("/<int:appointment_id>")
@require_auth
def update_appointment(appointment_id: int):
    appointment = appointments_service.update_appointment(
        g.current_user.id, appointment_id, request.get_json(silent=True) or {}
    )
    return jsonify({"appointment": appointment.to_dict()}), 200


@appointments_bp.delete("/<int:appointment_id>")
@require_auth
def delete_appointment(appointment_id: int):
    appointments_service.delete_appointment(g.current_user.id, appointment_id)
    return jsonify({"deleted": True}), 200


@appointments_bp.get("/unavailability")
@require_auth
def list_unavailability():
    items = appointments_service.list_unavailability(g.current_user.id, doctor_id=_int_arg("doctor_id"))
    return jsonify({"items": items, "count": len(items)}), 200


@appointments_bp.post("/unavailability")
@require_auth
def create_unavailability():
    """Body: doctor_user_id, start_time, end_time, optional reason."""
    period = appointments_service.create_unavailability(g.current_user.id, request.get_json(silent=True) or {})
    return jsonify({"unavailability": period.to_dict()}), 201


@appointments_bp.delete("/unavailability/<int:unavailability_id>")
@require_auth
def delete_unavailability(unavailability_id: int):
    appointments_service.delete_unavailability(g.current_user.id, unavailability_id)
    return jsonify({"deleted": True}), 200
