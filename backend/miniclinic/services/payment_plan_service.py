# Overview: Service-layer operations for payment plans; encapsulates business logic and database work.

"""
Patient Payment Plans

WHY: Treatments paid in installments need a running balance and an overdue
signal for the front desk.

- One plan per patient.
- Fixed plans have an installment amount and frequency and can fall overdue.
- Flexible plans start "outstanding" and only track the remaining balance.
- Once set, a plan's terms can only be changed by an administrator.

Plans belong to the patients module for permission purposes.
"""

from __future__ import annotations

import math
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..decorators import guarded
from ..extensions import db
from ..models import Payment, PaymentPlan
from ..permissions import Module, Action
from ..time_utils import utcnow
from ..validation import ConflictError, ModelValidationPolicy, rules_payment_plan, validate_payload
from . import audit_service, permission_service
from .patients_service import get_patient_or_404
from .permission_service import PermissionDeniedError


PLAN_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "patient_id",
        "type",
        "total_amount_cents",
        "amount_per_installment_cents",
        "payment_frequency",
        "start_date",
        "status",
        "notes",
    }),
    required_on_create=frozenset({"patient_id", "total_amount_cents"}),
    rules=(rules_payment_plan,),
)

# patient_id is fixed once the plan exists
PLAN_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=PLAN_POLICY.writable_fields - {"patient_id"},
    rules=(rules_payment_plan,),
)

AUDITED_FIELDS = (
    "type",
    "total_amount_cents",
    "amount_per_installment_cents",
    "payment_frequency",
    "start_date",
    "status",
    "notes",
)

DAYS_PER_INSTALLMENT = {
    "weekly": 7,
    "biweekly": 14,
    "monthly": 30,
}


class PaymentPlanNotFoundError(Exception):
    def __init__(self, message: str = "Payment plan not found"):
        super().__init__(message)


def calculate_expected_amount(
    start_date: datetime,
    amount_per_installment_cents: int,
    frequency: str | None,
    now: datetime | None = None,
) -> int:
    """
    Amount that should have been paid by now.

    Elapsed days are rounded up; installments due are whole periods
    (weekly 7, biweekly 14, monthly 30 days). Custom or unknown frequencies
    expect nothing.
    """
    now = now or utcnow()
    days = math.ceil(abs((now - start_date).total_seconds()) / 86400)

    period = DAYS_PER_INSTALLMENT.get(frequency or "")
    if not period:
        return 0
    return (days // period) * amount_per_installment_cents


def total_paid_cents(plan_id: int) -> int:
    """Sum of completed payments recorded against the plan."""
    total = (
        db.session.query(db.func.coalesce(db.func.sum(Payment.amount_cents), 0))
        .filter(Payment.payment_plan_id == plan_id, Payment.status == "completed")
        .scalar()
    )
    return int(total or 0)


def get_plan_or_404(plan_id: int) -> PaymentPlan:
    plan = db.session.get(PaymentPlan, plan_id)
    if not plan:
        raise PaymentPlanNotFoundError()
    return plan


def _with_balance(plan: PaymentPlan) -> dict:
    paid = total_paid_cents(plan.id)
    data = plan.to_dict()
    data["patient"] = plan.patient.summary() if plan.patient else None
    data["total_paid_cents"] = paid
    data["balance_cents"] = plan.total_amount_cents - paid
    return data


def _snapshot(plan: PaymentPlan) -> dict:
    return {f: getattr(plan, f) for f in AUDITED_FIELDS}


@guarded(Module.PATIENTS, Action.CREATE)
def create_payment_plan(actor_id: int, payload: dict) -> PaymentPlan:
    """
    Raises:
        ValidationError: invalid fields
        PatientNotFoundError: unknown patient
        ConflictError: the patient already has a plan
    """
    patch = validate_payload(model=PaymentPlan, payload=payload, policy=PLAN_POLICY, partial=False)
    patient = get_patient_or_404(patch["patient_id"])

    if db.session.query(PaymentPlan).filter_by(patient_id=patient.id).first():
        raise ConflictError("Payment plan already exists for this patient")

    plan_type = patch.get("type") or "fixed"
    status = "outstanding" if plan_type == "flexible" else (patch.get("status") or "activated")

    plan = PaymentPlan(
        patient_id=patient.id,
        type=plan_type,
        total_amount_cents=patch["total_amount_cents"],
        amount_per_installment_cents=patch.get("amount_per_installment_cents"),
        payment_frequency=patch.get("payment_frequency"),
        start_date=patch.get("start_date") or utcnow(),
        status=status,
        notes=patch.get("notes"),
    )
    db.session.add(plan)
    try:
        db.session.commit()
    except IntegrityError:
        # Concurrent create for the same patient hit the unique constraint
        db.session.rollback()
        raise ConflictError("Payment plan already exists for this patient")

    audit_service.create_audit_log(
        user_id=actor_id,
        action="create",
        module=Module.PATIENTS,
        entity_id=plan.id,
        entity_name=f"Payment plan for {patient.name}",
    )
    return plan


def _set_status(actor_id: int, plan_id: int, status: str) -> PaymentPlan:
    plan = get_plan_or_404(plan_id)
    before = {"status": plan.status}
    plan.status = status
    plan.updated_at = utcnow()
    db.session.commit()

    audit_service.create_audit_log(
        user_id=actor_id,
        action="update",
        module=Module.PATIENTS,
        entity_id=plan.id,
        entity_name="Payment plan",
        changes=audit_service.format_changes(before, {"status": status}),
    )
    return plan


@guarded(Module.PATIENTS, Action.UPDATE)
def pause_payment_plan(actor_id: int, plan_id: int) -> PaymentPlan:
    return _set_status(actor_id, plan_id, "paused")


@guarded(Module.PATIENTS, Action.UPDATE)
def unpause_payment_plan(actor_id: int, plan_id: int) -> PaymentPlan:
    return _set_status(actor_id, plan_id, "activated")


@guarded(Module.PATIENTS, Action.UPDATE)
def update_payment_plan(actor_id: int, plan_id: int, payload: dict) -> PaymentPlan:
    """Change a plan's terms. Administrators only once the plan exists."""
    if not permission_service.is_admin(actor_id):
        raise PermissionDeniedError(
            "Only administrators can change payment plans once they have been selected."
        )

    plan = get_plan_or_404(plan_id)
    patch = validate_payload(model=PaymentPlan, payload=payload, policy=PLAN_UPDATE_POLICY, partial=True)

    before = _snapshot(plan)
    for k, v in patch.items():
        setattr(plan, k, v)
    plan.updated_at = utcnow()
    db.session.commit()

    changes = audit_service.format_changes(before, _snapshot(plan))
    if changes:
        audit_service.create_audit_log(
            user_id=actor_id,
            action="update",
            module=Module.PATIENTS,
            entity_id=plan.id,
            entity_name="Payment plan",
            changes=changes,
        )
    return plan


@guarded(Module.PATIENTS, Action.DELETE)
def delete_payment_plan(actor_id: int, plan_id: int) -> None:
    """Delete a plan; its payments are kept and detached from it."""
    plan = get_plan_or_404(plan_id)
    patient_id = plan.patient_id

    db.session.delete(plan)
    db.session.commit()

    current_app.logger.info("Payment plan %s of patient %s deleted by user %s", plan_id, patient_id, actor_id)
    audit_service.create_audit_log(
        user_id=actor_id,
        action="delete",
        module=Module.PATIENTS,
        entity_id=plan_id,
        entity_name="Payment plan",
    )


@guarded(Module.PATIENTS, Action.READ)
def get_payment_plan_by_patient(actor_id: int, patient_id: int) -> PaymentPlan | None:
    return db.session.query(PaymentPlan).filter_by(patient_id=patient_id).first()


@guarded(Module.PATIENTS, Action.READ)
def get_payment_plan_details(actor_id: int, plan_id: int) -> dict:
    """Plan with patient, running balance and every payment (newest first)."""
    plan = get_plan_or_404(plan_id)
    data = _with_balance(plan)
    payments = (
        db.session.query(Payment)
        .filter(Payment.payment_plan_id == plan.id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .all()
    )
    data["payments"] = [p.to_dict() for p in payments]
    return data


@guarded(Module.PATIENTS, Action.READ)
def list_payment_plans(actor_id: int) -> list[dict]:
    plans = db.session.query(PaymentPlan).order_by(PaymentPlan.created_at.desc(), PaymentPlan.id.desc()).all()
    return [_with_balance(p) for p in plans]


@guarded(Module.PATIENTS, Action.READ)
def get_outstanding_payment_plans(actor_id: int) -> list[dict]:
    """Outstanding or activated plans whose completed payments fall short of the total."""
    plans = (
        db.session.query(PaymentPlan)
        .filter(PaymentPlan.status.in_(("outstanding", "activated")))
        .order_by(PaymentPlan.id.asc())
        .all()
    )
    return [data for data in (_with_balance(p) for p in plans) if data["balance_cents"] > 0]


@guarded(Module.PATIENTS, Action.READ)
def get_overdue_payment_plans(actor_id: int, now: datetime | None = None) -> list[dict]:
    """Fixed plans (activated or overdue) paid less than their schedule expects by now."""
    plans = (
        db.session.query(PaymentPlan)
        .filter(PaymentPlan.type == "fixed")
        .filter(PaymentPlan.status.in_(("activated", "overdue")))
        .order_by(PaymentPlan.id.asc())
        .all()
    )

    overdue = []
    for plan in plans:
        if not plan.amount_per_installment_cents or not plan.payment_frequency:
            continue
        expected = calculate_expected_amount(
            plan.start_date, plan.amount_per_installment_cents, plan.payment_frequency, now
        )
        data = _with_balance(plan)
        if expected > data["total_paid_cents"]:
            data["expected_amount_cents"] = expected
            overdue.append(data)
    return overdue
