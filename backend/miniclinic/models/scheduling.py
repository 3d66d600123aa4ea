from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from ..time_utils import to_utc_z


APPOINTMENT_STATUSES = ("scheduled", "rescheduled", "completed", "cancelled", "no-show")
APPOINTMENT_TYPES = ("consultation", "checkup", "follow-up", "procedure")

# Statuses that still occupy the doctor's time
BOOKED_STATUSES = ("scheduled", "rescheduled")


class Appointment(db.Model):
    """
    A patient booked with a doctor (a user holding the doctor role).

    The slot runs from scheduled_at for duration_minutes. Booked slots of the
    same doctor never overlap each other or a period the doctor marked as
    unavailable.
    """
    __tablename__ = "appointments"
    __table_args__ = (
        db.Index("ix_appointments_doctor_time", "doctor_user_id", "scheduled_at"),
        db.Index("ix_appointments_patient", "patient_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    patient_id = db.Column(db.Integer, db.ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    doctor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    scheduled_at = db.Column(db.DateTime(timezone=True), nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False, default=30)
    status = db.Column(db.String(16), nullable=False, default="scheduled")
    type = db.Column(db.String(32), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    patient = db.relationship("Patient", backref=db.backref("appointments", lazy=True))
    doctor = db.relationship("User", foreign_keys=[doctor_user_id])

    @property
    def ends_at(self):
        return self.scheduled_at + timedelta(minutes=self.duration_minutes or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "doctor_user_id": self.doctor_user_id,
            "scheduled_at": to_utc_z(self.scheduled_at),
            "ends_at": to_utc_z(self.ends_at),
            "duration_minutes": self.duration_minutes,
            "status": self.status,
            "type": self.type,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class DoctorUnavailability(db.Model):
    __tablename__ = "doctor_unavailability"
    __table_args__ = (
        db.Index("ix_doctor_unavailability_doctor_start", "doctor_user_id", "start_time"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    doctor_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    start_time = db.Column(db.DateTime(timezone=True), nullable=False)
    end_time = db.Column(db.DateTime(timezone=True), nullable=False)
    reason = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    doctor = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "doctor_user_id": self.doctor_user_id,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time),
            "reason": self.reason,
        }
