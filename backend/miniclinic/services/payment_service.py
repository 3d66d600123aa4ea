# Overview: Service-layer operations for payment; encapsulates business logic and database work.

"""
Payment Recording

Completed payments against a payment plan snapshot the plan balance left
after them (balance_cents). When that balance reaches zero the plan is marked
completed in the same transaction.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.orm import joinedload

from ..decorators import guarded
from ..extensions import db
from ..models import Payment, PaymentPlan
from ..permissions import Module, Action
from ..validation import ModelValidationPolicy, ValidationError, rules_payment, validate_payload
from . import audit_service
from .concurrency import begin_immediate, lock_for_update
from .patients_service import get_patient_or_404
from .payment_plan_service import PaymentPlanNotFoundError, total_paid_cents


PAYMENT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "patient_id",
        "payment_plan_id",
        "amount_cents",
        "method",
        "status",
        "description",
        "transaction_id",
    }),
    required_on_create=frozenset({"amount_cents", "method"}),
    rules=(rules_payment,),
)

# Patient and plan are fixed once a payment is recorded
PAYMENT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"amount_cents", "method", "status", "description", "transaction_id"}),
    rules=(rules_payment,),
)


class PaymentNotFoundError(Exception):
    def __init__(self, message: str = "Payment not found"):
        super().__init__(message)


def _to_dict(payment: Payment) -> dict:
    data = payment.to_dict()
    data["patient"] = payment.patient.summary() if payment.patient else None
    data["payment_plan"] = payment.payment_plan.to_dict() if payment.payment_plan else None
    return data


@guarded(Module.PAYMENTS, Action.CREATE)
def create_payment(actor_id: int, payload: dict) -> Payment:
    """
    Record a payment.

    Status defaults to "completed". A payment against a plan inherits the
    plan's patient when none is given and must match it otherwise.

    Raises:
        ValidationError: invalid fields or patient/plan mismatch
        PatientNotFoundError / PaymentPlanNotFoundError: unknown references
    """
    patch = validate_payload(model=Payment, payload=payload, policy=PAYMENT_POLICY, partial=False)
    patch.setdefault("status", "completed")

    plan_id = patch.get("payment_plan_id")
    patient_id = patch.get("patient_id")
    if patient_id is not None:
        get_patient_or_404(patient_id)

    try:
        plan = None
        if plan_id is not None:
            begin_immediate()
            plan = lock_for_update(db.session.query(PaymentPlan).filter_by(id=plan_id)).first()
            if not plan:
                raise PaymentPlanNotFoundError()
            if patient_id is None:
                patch["patient_id"] = plan.patient_id
            elif patient_id != plan.patient_id:
                raise ValidationError("Payment plan does not belong to this patient")

        payment = Payment(recorded_by_user_id=actor_id, **patch)

        if plan is not None and payment.status == "completed":
            payment.balance_cents = plan.total_amount_cents - total_paid_cents(plan.id) - payment.amount_cents
            if payment.balance_cents <= 0 and plan.status != "completed":
                plan.status = "completed"
                current_app.logger.info("Payment plan %s fully paid", plan.id)

        db.session.add(payment)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    audit_service.create_audit_log(
        user_id=actor_id,
        action="create",
        module=Module.PAYMENTS,
        entity_id=payment.id,
        entity_name=payment.description or f"Payment {payment.id}",
        changes={
            "amount_cents": payment.amount_cents,
            "status": payment.status,
            "balance_cents": payment.balance_cents,
        },
    )
    return payment


def _sync_plan_status(plan: PaymentPlan) -> int:
    """
    Re-derive completion from the paid total after a correction.

    A completed plan that is no longer covered goes back to "activated".
    Returns the remaining balance.
    """
    remaining = plan.total_amount_cents - total_paid_cents(plan.id)
    if remaining <= 0 and plan.status != "completed":
        plan.status = "completed"
        current_app.logger.info("Payment plan %s fully paid", plan.id)
    elif remaining > 0 and plan.status == "completed":
        plan.status = "activated"
        current_app.logger.info("Payment plan %s reopened with %s outstanding", plan.id, remaining)
    return remaining


def _get_locked(payment_id: int) -> tuple[Payment, PaymentPlan | None]:
    begin_immediate()
    payment = lock_for_update(db.session.query(Payment).filter_by(id=payment_id)).first()
    if not payment:
        raise PaymentNotFoundError()
    plan = None
    if payment.payment_plan_id is not None:
        plan = lock_for_update(db.session.query(PaymentPlan).filter_by(id=payment.payment_plan_id)).first()
    return payment, plan


@guarded(Module.PAYMENTS, Action.UPDATE)
def update_payment(actor_id: int, payment_id: int, payload: dict) -> Payment:
    """
    Correct a recorded payment.

    The patient and plan it belongs to cannot change. When it is attached to
    a plan, the plan's completion is re-derived and this payment's balance
    snapshot is refreshed; snapshots on other payments stay as recorded.
    """
    patch = validate_payload(model=Payment, payload=payload, policy=PAYMENT_UPDATE_POLICY, partial=True)
    if not patch:
        raise ValidationError("No fields to update")

    try:
        payment, plan = _get_locked(payment_id)
        before = {k: getattr(payment, k) for k in patch}
        for k, v in patch.items():
            setattr(payment, k, v)
        db.session.flush()

        if plan is not None:
            remaining = _sync_plan_status(plan)
            payment.balance_cents = remaining if payment.status == "completed" else None
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    audit_service.create_audit_log(
        user_id=actor_id,
        action="update",
        module=Module.PAYMENTS,
        entity_id=payment.id,
        entity_name=payment.description or f"Payment {payment.id}",
        changes=audit_service.format_changes(before, patch),
    )
    return payment


@guarded(Module.PAYMENTS, Action.DELETE)
def delete_payment(actor_id: int, payment_id: int) -> None:
    """Remove a payment recorded in error; its plan is re-synced the same way as an update."""
    try:
        payment, plan = _get_locked(payment_id)
        snapshot = {"amount_cents": payment.amount_cents, "status": payment.status}
        name = payment.description or f"Payment {payment.id}"
        db.session.delete(payment)
        db.session.flush()

        if plan is not None:
            _sync_plan_status(plan)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    audit_service.create_audit_log(
        user_id=actor_id,
        action="delete",
        module=Module.PAYMENTS,
        entity_id=payment_id,
        entity_name=name,
        changes=audit_service.format_changes(snapshot, {}),
    )


@guarded(Module.PAYMENTS, Action.READ)
def list_payments(actor_id: int) -> list[dict]:
    rows = (
        db.session.query(Payment)
        .options(joinedload(Payment.patient), joinedload(Payment.payment_plan))
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .all()
    )
    return [_to_dict(p) for p in rows]


@guarded(Module.PAYMENTS, Action.READ)
def list_payments_for_patient(actor_id: int, patient_id: int) -> list[dict]:
    rows = (
        db.session.query(Payment)
        .options(joinedload(Payment.patient), joinedload(Payment.payment_plan))
        .filter(Payment.patient_id == patient_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .all()
    )
    return [_to_dict(p) for p in rows]
