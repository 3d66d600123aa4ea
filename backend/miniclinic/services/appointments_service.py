# Overview: Service-layer operations for appointments and doctor availability.

"""
Appointment scheduling

A doctor is any active user holding the doctor role. Booking or moving an
appointment is refused (ConflictError) when the new slot overlaps another
booked appointment of the same doctor or a period the doctor marked as
unavailable. Cancelled, completed and no-show appointments free their slot.

Checks and writes run inside one write transaction so two receptionists
cannot book the same slot at once.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy.orm import joinedload

from ..decorators import guarded
from ..extensions import db
from ..models import Appointment, DoctorUnavailability, User, Role
from ..models.scheduling import BOOKED_STATUSES
from ..permissions import Module, Action, RoleName
from ..validation import (
    MAX_APPOINTMENT_MINUTES,
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    rules_appointment,
    rules_unavailability,
    validate_payload,
)
from . import audit_service
from .concurrency import begin_immediate, lock_for_update
from .patients_service import get_patient_or_404


APPOINTMENT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "patient_id",
        "doctor_user_id",
        "scheduled_at",
        "duration_minutes",
        "status",
        "type",
        "notes",
    }),
    required_on_create=frozenset({"patient_id", "doctor_user_id", "scheduled_at", "type"}),
    rules=(rules_appointment,),
)

UNAVAILABILITY_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"doctor_user_id", "start_time", "end_time", "reason"}),
    required_on_create=frozenset({"doctor_user_id", "start_time", "end_time"}),
    rules=(rules_unavailability,),
)

AUDITED_FIELDS = ("patient_id", "doctor_user_id", "scheduled_at", "duration_minutes", "status", "type", "notes")


class AppointmentNotFoundError(Exception):
    def __init__(self, message: str = "Appointment not found"):
        super().__init__(message)


class UnavailabilityNotFoundError(Exception):
    def __init__(self, message: str = "Unavailability not found"):
        super().__init__(message)


def doctor_display_name(user: User | None) -> str | None:
    """Doctor names are shown with a "Dr." prefix unless they carry one."""
    if user is None:
        return None
    name = user.name or user.username
    if name.startswith(("Dr. ", "Dr ")):
        return name
    return f"Dr. {name}"


def _to_dict(appointment: Appointment) -> dict:
    data = appointment.to_dict()
    data["patient"] = appointment.patient.summary() if appointment.patient else None
    data["doctor"] = {
        "id": appointment.doctor_user_id,
        "name": doctor_display_name(appointment.doctor),
    }
    return data


def _require_doctor(user_id: int) -> User:
    doctor = (
        db.session.query(User)
        .join(Role, User.role_id == Role.id)
        .filter(User.id == user_id, User.is_active.is_(True), Role.name == RoleName.DOCTOR)
        .first()
    )
    if not doctor:
        raise ValidationError("doctor_user_id must reference an active doctor")
    return doctor


def _get_or_404(appointment_id: int) -> Appointment:
    appointment = db.session.get(Appointment, appointment_id)
    if not appointment:
        raise AppointmentNotFoundError()
    return appointment


def _check_slot(doctor_id: int, start: datetime, minutes: int, exclude_id: int | None = None) -> None:
    """Raise ConflictError when [start, start + minutes) is not free for the doctor."""
    end = start + timedelta(minutes=minutes)

    # Serialises bookings per doctor on databases with row locks
    lock_for_update(db.session.query(User.id).filter(User.id == doctor_id)).first()

    blocked = (
        db.session.query(DoctorUnavailability.id)
        .filter(
            DoctorUnavailability.doctor_user_id == doctor_id,
            DoctorUnavailability.start_time < end,
            DoctorUnavailability.end_time > start,
        )
        .first()
    )
    if blocked:
        raise ConflictError("Doctor is unavailable at that time")

    # Only appointments starting within the longest slot length can reach start
    q = db.session.query(Appointment).filter(
        Appointment.doctor_user_id == doctor_id,
        Appointment.status.in_(BOOKED_STATUSES),
        Appointment.scheduled_at < end,
        Appointment.scheduled_at > start - timedelta(minutes=MAX_APPOINTMENT_MINUTES),
    )
    if exclude_id is not None:
        q = q.filter(Appointment.id != exclude_id)
    if any(other.ends_at > start for other in q.all()):
        raise ConflictError("Doctor already has an appointment at that time")


@guarded(Module.APPOINTMENTS, Action.READ)
def list_appointments(
    actor_id: int,
    *,
    doctor_id: int | None = None,
    patient_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[dict]:
    """Appointments ordered by time, optionally narrowed to a doctor, a patient or [start, end)."""
    q = db.session.query(Appointment).options(
        joinedload(Appointment.patient), joinedload(Appointment.doctor)
    )
    if doctor_id is not None:
        q = q.filter(Appointment.doctor_user_id == doctor_id)
    if patient_id is not None:
        q = q.filter(Appointment.patient_id == patient_id)
    if start is not None:
        q = q.filter(Appointment.scheduled_at >= start)
    if end is not None:
        q = q.filter(Appointment.scheduled_at < end)
    return [_to_dict(a) for a in q.order_by(Appointment.scheduled_at.asc(), Appointment.id.asc()).all()]


@guarded(Module.APPOINTMENTS, Action.READ)
def get_appointment(actor_id: int, appointment_id: int) -> dict:
    return _to_dict(_get_or_404(appointment_id))


@guarded(Module.APPOINTMENTS, Action.CREATE)
def create_appointment(actor_id: int, payload: dict) -> Appointment:
    """
    Book an appointment. Status defaults to "scheduled", duration to 30 minutes.

    Raises:
        ValidationError: invalid fields or a doctor_user_id that is not a doctor
        PatientNotFoundError: unknown patient
        ConflictError: the slot is taken or the doctor is unavailable
    """
    patch = validate_payload(model=Appointment, payload=payload, policy=APPOINTMENT_POLICY, partial=False)
    patch.setdefault("status", "scheduled")
    patch.setdefault("duration_minutes", 30)

    patient = get_patient_or_404(patch["patient_id"])
    _require_doctor(patch["doctor_user_id"])

    try:
        begin_immediate()
        if patch["status"] in BOOKED_STATUSES:
            _check_slot(patch["doctor_user_id"], patch["scheduled_at"], patch["duration_minutes"])
        appointment = Appointment(created_by_user_id=actor_id, **patch)
        db.session.add(appointment)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Appointment %s booked for patient %s with doctor %s at %s",
        appointment.id, patient.id, appointment.doctor_user_id, appointment.scheduled_at,
    )
    audit_service.create_audit_log(
        user_id=actor_id,
        action="create",
        module=Module.APPOINTMENTS,
        entity_id=appointment.id,
        entity_name=patient.name,
    )
    return appointment


@guarded(Module.APPOINTMENTS, Action.UPDATE)
def update_appointment(actor_id: int, appointment_id: int, payload: dict) -> Appointment:
    """Reschedule, reassign or change the status of an appointment; the new slot is checked like a booking."""
    patch = validate_payload(model=Appointment, payload=payload, policy=APPOINTMENT_POLICY, partial=True)
    if not patch:
        raise ValidationError("No fields to update")

    if patch.get("patient_id") is not None:
        get_patient_or_404(patch["patient_id"])
    if patch.get("doctor_user_id") is not None:
        _require_doctor(patch["doctor_user_id"])

    try:
        begin_immediate()
        appointment = _get_or_404(appointment_id)
        before = {f: getattr(appointment, f) for f in AUDITED_FIELDS}
        for k, v in patch.items():
            setattr(appointment, k, v)

        moved = {"doctor_user_id", "scheduled_at", "duration_minutes", "status"} & patch.keys()
        if moved and appointment.status in BOOKED_STATUSES:
            _check_slot(
                appointment.doctor_user_id,
                appointment.scheduled_at,
                appointment.duration_minutes,
                exclude_id=appointment.id,
            )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    changes = audit_service.format_changes(before, {f: getattr(appointment, f) for f in AUDITED_FIELDS})
    if changes:
        audit_service.create_audit_log(
            user_id=actor_id,
            action="update",
            module=Module.APPOINTMENTS,
            entity_id=appointment.id,
            entity_name=appointment.patient.name if appointment.patient else None,
            changes=changes,
        )
    return appointment


@guarded(Module.APPOINTMENTS, Action.DELETE)
def delete_appointment(actor_id: int, appointment_id: int) -> None:
    appointment = _get_or_404(appointment_id)
    name = appointment.patient.name if appointment.patient else None
    db.session.delete(appointment)
    db.session.commit()

    audit_service.create_audit_log(
        user_id=actor_id,
        action="delete",
        module=Module.APPOINTMENTS,
        entity_id=appointment_id,
        entity_name=name,
    )


# Doctor availability

@guarded(Module.APPOINTMENTS, Action.READ)
def list_unavailability(actor_id: int, doctor_id: int | None = None) -> list[dict]:
    q = db.session.query(DoctorUnavailability).options(joinedload(DoctorUnavailability.doctor))
    if doctor_id is not None:
        q = q.filter(DoctorUnavailability.doctor_user_id == doctor_id)
    rows = q.order_by(DoctorUnavailability.start_time.asc(), DoctorUnavailability.id.asc()).all()
    return [{**u.to_dict(), "doctor_name": doctor_display_name(u.doctor)} for u in rows]


@guarded(Module.APPOINTMENTS, Action.CREATE)
def create_unavailability(actor_id: int, payload: dict) -> DoctorUnavailability:
    """
    Block out a period for a doctor.

    Appointments already booked inside it are left alone; new bookings that
    overlap it are refused.
    """
    patch = validate_payload(
        model=DoctorUnavailability, payload=payload, policy=UNAVAILABILITY_POLICY, partial=False
    )
    doctor = _require_doctor(patch["doctor_user_id"])

    period = DoctorUnavailability(**patch)
    db.session.add(period)
    db.session.commit()

    audit_service.create_audit_log(
        user_id=actor_id,
        action="create",
        module=Module.APPOINTMENTS,
        entity_id=period.id,
        entity_name=doctor_display_name(doctor),
        changes={"start_time": period.start_time, "end_time": period.end_time, "reason": period.reason},
    )
    return period


@guarded(Module.APPOINTMENTS, Action.DELETE)
def delete_unavailability(actor_id: int, unavailability_id: int) -> None:
    period = db.session.get(DoctorUnavailability, unavailability_id)
    if not period:
        raise UnavailabilityNotFoundError()
    name = doctor_display_name(period.doctor)
    db.session.delete(period)
    db.session.commit()

    audit_service.create_audit_log(
        user_id=actor_id,
        action="delete",
        module=Module.APPOINTMENTS,
        entity_id=unavailability_id,
        entity_name=name,
    )
