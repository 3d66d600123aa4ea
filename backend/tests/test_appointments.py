"""
Appointment booking and doctor availability tests.

A doctor's booked appointments never overlap each other or a period the
doctor blocked out; cancelled appointments free their slot.
"""

from datetime import datetime

import pytest

from miniclinic.models import Appointment, AuditLog
from miniclinic.services import appointments_service
from miniclinic.services.appointments_service import AppointmentNotFoundError
from miniclinic.services.permission_service import PermissionDeniedError
from miniclinic.validation import ConflictError, ValidationError


NINE = datetime(2025, 3, 3, 9, 0)


def _book(actor_id, patient, doctor, at=NINE, minutes=30, **extra):
    return appointments_service.create_appointment(actor_id, {
        "patient_id": patient.id,
        "doctor_user_id": doctor.id,
        "scheduled_at": at.isoformat(),
        "duration_minutes": minutes,
        "type": "consultation",
        **extra,
    })


class TestBooking:
    def test_defaults(self, receptionist_user, doctor_user, patient):
        appointment = appointments_service.create_appointment(receptionist_user.id, {
            "patient_id": patient.id,
            "doctor_user_id": doctor_user.id,
            "scheduled_at": "2025-03-03T09:00:00Z",
            "type": "checkup",
        })
        assert appointment.status == "scheduled"
        assert appointment.duration_minutes == 30
        assert appointment.scheduled_at == NINE
        assert appointment.created_by_user_id == receptionist_user.id

    def test_overlap_refused(self, receptionist_user, doctor_user, patient):
        _book(receptionist_user.id, patient, doctor_user, minutes=60)

        with pytest.raises(ConflictError, match="already has an appointment"):
            _book(receptionist_user.id, patient, doctor_user, at=datetime(2025, 3, 3, 9, 45))

    def test_back_to_back_allowed(self, receptionist_user, doctor_user, patient):
        _book(receptionist_user.id, patient, doctor_user)
        second = _book(receptionist_user.id, patient, doctor_user, at=datetime(2025, 3, 3, 9, 30))
        assert second.id is not None

    def test_cancelled_slot_is_free(self, receptionist_user, doctor_user, patient):
        first = _book(receptionist_user.id, patient, doctor_user)
        appointments_service.update_appointment(receptionist_user.id, first.id, {"status": "cancelled"})

        again = _book(receptionist_user.id, patient, doctor_user)
        assert again.id != first.id

    def test_doctor_must_hold_doctor_role(self, receptionist_user, patient):
        with pytest.raises(ValidationError) as exc:
            _book(receptionist_user.id, patient, receptionist_user)
        assert exc.value.errors == ["doctor_user_id must reference an active doctor"]

    def test_inactive_doctor_rejected(self, db_session, receptionist_user, doctor_user, patient):
        doctor_user.is_active = False
        db_session.commit()

        with pytest.raises(ValidationError):
            _book(receptionist_user.id, patient, doctor_user)

    def test_invalid_fields_collected(self, receptionist_user, doctor_user, patient):
        with pytest.raises(ValidationError) as exc:
            _book(receptionist_user.id, patient, doctor_user, minutes=0, type="surgery", status="maybe")
        assert len(exc.value.errors) == 3

    def test_audited(self, db_session, receptionist_user, doctor_user, patient):
        appointment = _book(receptionist_user.id, patient, doctor_user)

        log = db_session.query(AuditLog).filter_by(module="appointments", action="create").one()
        assert log.entity_id == str(appointment.id)
        assert log.entity_name == "Ama Mensah"


class TestRescheduling:
    def test_move_into_taken_slot(self, receptionist_user, doctor_user, patient):
        _book(receptionist_user.id, patient, doctor_user)
        later = _book(receptionist_user.id, patient, doctor_user, at=datetime(2025, 3, 3, 11, 0))

        with pytest.raises(ConflictError):
            appointments_service.update_appointment(
                receptionist_user.id, later.id, {"scheduled_at": "2025-03-03T09:15:00"},
            )

    def test_extending_own_slot_is_fine(self, db_session, receptionist_user, doctor_user, patient):
        appointment = _book(receptionist_user.id, patient, doctor_user)

        updated = appointments_service.update_appointment(
            receptionist_user.id, appointment.id, {"duration_minutes": 90, "status": "rescheduled"},
        )
        assert updated.duration_minutes == 90

        log = db_session.query(AuditLog).filter_by(module="appointments", action="update").one()
        assert log.changes["duration_minutes"] == {"before": 30, "after": 90}

    def test_failed_move_leaves_appointment(self, db_session, receptionist_user, doctor_user, patient):
        _book(receptionist_user.id, patient, doctor_user)
        later = _book(receptionist_user.id, patient, doctor_user, at=datetime(2025, 3, 3, 11, 0))

        with pytest.raises(ConflictError):
            appointments_service.update_appointment(receptionist_user.id, later.id, {"scheduled_at": NINE.isoformat()})

        db_session.expire_all()
        assert db_session.get(Appointment, later.id).scheduled_at == datetime(2025, 3, 3, 11, 0)

    def test_delete(self, receptionist_user, doctor_user, patient):
        appointment = _book(receptionist_user.id, patient, doctor_user)
        appointments_service.delete_appointment(receptionist_user.id, appointment.id)

        with pytest.raises(AppointmentNotFoundError):
            appointments_service.get_appointment(receptionist_user.id, appointment.id)


class TestUnavailability:
    def test_blocks_new_bookings(self, receptionist_user, doctor_user, patient):
        appointments_service.create_unavailability(receptionist_user.id, {
            "doctor_user_id": doctor_user.id,
            "start_time": "2025-03-03T08:00:00",
            "end_time": "2025-03-03T12:00:00",
            "reason": "Conference",
        })

        with pytest.raises(ConflictError, match="unavailable"):
            _book(receptionist_user.id, patient, doctor_user)

        assert _book(receptionist_user.id, patient, doctor_user, at=datetime(2025, 3, 3, 12, 0)).id

    def test_end_must_follow_start(self, receptionist_user, doctor_user):
        with pytest.raises(ValidationError) as exc:
            appointments_service.create_unavailability(receptionist_user.id, {
                "doctor_user_id": doctor_user.id,
                "start_time": "2025-03-03T12:00:00",
                "end_time": "2025-03-03T08:00:00",
            })
        assert exc.value.errors == ["end_time must be after start_time"]

    def test_listing_and_delete(self, receptionist_user, doctor_user, patient):
        period = appointments_service.create_unavailability(receptionist_user.id, {
            "doctor_user_id": doctor_user.id,
            "start_time": "2025-03-03T08:00:00",
            "end_time": "2025-03-03T12:00:00",
        })
        listed = appointments_service.list_unavailability(receptionist_user.id, doctor_id=doctor_user.id)
        assert [(p["id"], p["doctor_name"]) for p in listed] == [(period.id, "Dr. Doctor")]

        appointments_service.delete_unavailability(receptionist_user.id, period.id)
        assert _book(receptionist_user.id, patient, doctor_user).id


class TestDoctorName:
    @pytest.mark.parametrize("name,expected", [
        ("Mensah", "Dr. Mensah"),
        ("Dr. Mensah", "Dr. Mensah"),
        ("Dr Mensah", "Dr Mensah"),
    ])
    def test_prefix(self, doctor_user, name, expected):
        doctor_user.name = name
        assert appointments_service.doctor_display_name(doctor_user) == expected


class TestAppointmentRoutes:
    def test_book_and_list(self, client, receptionist_headers, doctor_user, patient):
        response = client.post("/api/appointments", json={
            "patient_id": patient.id,
            "doctor_user_id": doctor_user.id,
            "scheduled_at": "2025-03-03T09:00:00Z",
            "type": "procedure",
        }, headers=receptionist_headers)
        assert response.status_code == 201
        assert response.json["appointment"]["ends_at"] == "2025-03-03T09:30:00Z"

        response = client.get(
            "/api/appointments?start=2025-03-03&end=2025-03-04", headers=receptionist_headers,
        )
        assert response.json["count"] == 1
        item = response.json["items"][0]
        assert item["doctor"]["name"] == "Dr. Doctor"
        assert item["patient"]["name"] == "Ama Mensah"

    def test_double_booking_is_409(self, client, receptionist_headers, receptionist_user, doctor_user, patient):
        _book(receptionist_user.id, patient, doctor_user)
        response = client.post("/api/appointments", json={
            "patient_id": patient.id,
            "doctor_user_id": doctor_user.id,
            "scheduled_at": NINE.isoformat(),
            "type": "checkup",
        }, headers=receptionist_headers)
        assert response.status_code == 409

    def test_unknown_appointment_is_404(self, client, doctor_headers):
        response = client.get("/api/appointments/4040", headers=doctor_headers)
        assert response.status_code == 404
        assert response.json["error"] == "Appointment not found"

    def test_bad_filter(self, client, doctor_headers):
        response = client.get("/api/appointments?doctor_id=abc", headers=doctor_headers)
        assert response.status_code == 400

    def test_user_without_role_is_forbidden(self, no_role_user, doctor_user, patient):
        with pytest.raises(PermissionDeniedError):
            _book(no_role_user.id, patient, doctor_user)
