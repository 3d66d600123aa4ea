from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


PLAN_TYPES = ("fixed", "flexible")
PLAN_FREQUENCIES = ("weekly", "biweekly", "monthly", "custom")
PLAN_STATUSES = ("activated", "completed", "overdue", "paused", "outstanding")

PAYMENT_METHODS = ("cash", "card", "insurance", "transfer", "momo", "bank_transfer")
PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")


class Patient(db.Model):
    __tablename__ = "patients"
    __table_args__ = (
        db.Index("ix_patients_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    # Children are reached through their guardian's phone
    is_child = db.Column(db.Boolean, nullable=False, default=False)
    guardian_phone = db.Column(db.String(32), nullable=True)
    date_of_birth = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def summary(self) -> dict:
        return {"id": self.id, "name": self.name, "phone": self.phone}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "is_child": self.is_child,
            "guardian_phone": self.guardian_phone,
            "date_of_birth": self.date_of_birth.isoformat() if self.date_of_birth else None,
            "created_at": to_utc_z(self.created_at),
        }


class PaymentPlan(db.Model):
    """
    Installment plan for a patient's treatment.

    One plan per patient (unique patient_id). Fixed plans carry an installment
    amount and frequency and can fall overdue; flexible plans only track the
    outstanding balance against total_amount_cents.
    """
    __tablename__ = "payment_plans"
    __table_args__ = (
        db.UniqueConstraint("patient_id", name="uq_payment_plans_patient"),
        db.Index("ix_payment_plans_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    patient_id = db.Column(db.Integer, db.ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)

    type = db.Column(db.String(16), nullable=False, default="fixed")
    total_amount_cents = db.Column(db.Integer, nullable=False)
    # Null for flexible plans
    amount_per_installment_cents = db.Column(db.Integer, nullable=True)
    payment_frequency = db.Column(db.String(16), nullable=True)

    start_date = db.Column(db.DateTime(timezone=True), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="activated")
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    patient = db.relationship("Patient", backref=db.backref("payment_plan", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "type": self.type,
            "total_amount_cents": self.total_amount_cents,
            "amount_per_installment_cents": self.amount_per_installment_cents,
            "payment_frequency": self.payment_frequency,
            "start_date": to_utc_z(self.start_date),
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Payment(db.Model):
    """
    A payment received from (or on behalf of) a patient.

    balance_cents snapshots the plan balance right after this payment and is
    only set for completed payments against a payment plan.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_patient_created", "patient_id", "created_at"),
        db.Index("ix_payments_plan_status", "payment_plan_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    # Walk-in payments have no patient
    patient_id = db.Column(db.Integer, db.ForeignKey("patients.id", ondelete="CASCADE"), nullable=True)
    payment_plan_id = db.Column(db.Integer, db.ForeignKey("payment_plans.id", ondelete="SET NULL"), nullable=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False)
    description = db.Column(db.Text, nullable=True)
    transaction_id = db.Column(db.String(128), nullable=True)
    balance_cents = db.Column(db.Integer, nullable=True)

    recorded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    patient = db.relationship("Patient", backref=db.backref("payments", lazy=True))
    payment_plan = db.relationship("PaymentPlan", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "payment_plan_id": self.payment_plan_id,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "status": self.status,
            "description": self.description,
            "transaction_id": self.transaction_id,
            "balance_cents": self.balance_cents,
            "recorded_by_user_id": self.recorded_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
