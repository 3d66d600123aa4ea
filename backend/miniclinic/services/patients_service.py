# Overview: Service-layer operations for patients; encapsulates business logic and database work.

from __future__ import annotations

from ..decorators import guarded
from ..extensions import db
from ..models import Patient
from ..permissions import Module, Action
from ..validation import ModelValidationPolicy, ValidationError, validate_payload
from . import audit_service


PATIENT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "phone", "email", "is_child", "guardian_phone", "date_of_birth"}),
    required_on_create=frozenset({"name"}),
)

AUDITED_FIELDS = ("name", "phone", "email", "is_child", "guardian_phone", "date_of_birth")


class PatientNotFoundError(Exception):
    def __init__(self, message: str = "Patient not found"):
        super().__init__(message)


def get_patient_or_404(patient_id: int) -> Patient:
    patient = db.session.get(Patient, patient_id)
    if not patient:
        raise PatientNotFoundError()
    return patient


@guarded(Module.PATIENTS, Action.CREATE)
def create_patient(actor_id: int, payload: dict) -> Patient:
    patch = validate_payload(model=Patient, payload=payload, policy=PATIENT_POLICY, partial=False)

    patient = Patient(**patch)
    db.session.add(patient)
    db.session.commit()

    audit_service.create_audit_log(
        user_id=actor_id,
        action="create",
        module=Module.PATIENTS,
        entity_id=patient.id,
        entity_name=patient.name,
    )
    return patient


@guarded(Module.PATIENTS, Action.READ)
def get_patient(actor_id: int, patient_id: int) -> Patient:
    return get_patient_or_404(patient_id)


@guarded(Module.PATIENTS, Action.READ)
def list_patients(actor_id: int, search: str | None = None) -> list[Patient]:
    q = db.session.query(Patient)
    if search:
        term = f"%{search.strip()}%"
        q = q.filter(db.or_(Patient.name.ilike(term), Patient.phone.ilike(term)))
    return q.order_by(Patient.name.asc(), Patient.id.asc()).all()


@guarded(Module.PATIENTS, Action.UPDATE)
def update_patient(actor_id: int, patient_id: int, payload: dict) -> Patient:
    patient = get_patient_or_404(patient_id)
    patch = validate_payload(model=Patient, payload=payload, policy=PATIENT_POLICY, partial=True)
    if not patch:
        raise ValidationError("No fields to update")

    before = {f: getattr(patient, f) for f in AUDITED_FIELDS}
    for k, v in patch.items():
        setattr(patient, k, v)
    db.session.commit()

    changes = audit_service.format_changes(before, {f: getattr(patient, f) for f in AUDITED_FIELDS})
    if changes:
        audit_service.create_audit_log(
            user_id=actor_id,
            action="update",
            module=Module.PATIENTS,
            entity_id=patient.id,
            entity_name=patient.name,
            changes=changes,
        )
    return patient
