"""Tests for the booking transaction manager and the availability index."""

from datetime import date, time
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from errors import ConflictError, NotFoundError, TransactionError, ValidationError
from models import Appointment, Payment, db

from conftest import NEXT_MONDAY


def _counts():
    return Appointment.query.count(), Payment.query.count()


class TestBook:
    def test_creates_appointment_and_linked_payment(self, booking, payload, doctor, patient):
        appointment_id = booking.book(payload)

        appointment = db.session.get(Appointment, appointment_id)
        payment = db.session.get(Payment, appointment.payment_id)
        assert appointment.date == NEXT_MONDAY
        assert appointment.time == time(9, 0)
        assert appointment.doctor_id == doctor.id
        assert appointment.patient_id == patient.id
        assert payment.appointment_id == appointment.id
        assert payment.amount == Decimal("1000.00")
        assert payment.method == "Efectivo"

    def test_specialty_is_a_snapshot(self, booking, payload, doctor):
        appointment_id = booking.book(payload)

        doctor.specialty = "Clínica Médica"
        db.session.commit()

        assert db.session.get(Appointment, appointment_id).specialty == "Cardiología"

    def test_same_slot_twice_is_a_conflict(self, booking, payload):
        booking.book(payload)
        with pytest.raises(ConflictError):
            booking.book(payload)
        assert _counts() == (1, 1)

    def test_same_time_with_another_doctor_is_fine(self, booking, payload, other_doctor):
        booking.book(payload)
        booking.book(dict(payload, medico_id=other_doctor.id))
        assert _counts() == (2, 2)

    def test_storage_constraint_decides_a_race(self, booking, payload, monkeypatch):
        """Both requests pass the early check; only one insert survives."""
        booking.book(payload)
        monkeypatch.setattr(booking, "occupied_slots", lambda *args, **kwargs: set())

        with pytest.raises(ConflictError):
            booking.book(payload)
        assert _counts() == (1, 1)

    @pytest.mark.parametrize("doctor_id", [0.9, "1.5", "uno", True])
    def test_doctor_id_is_never_coerced(self, booking, payload, doctor, doctor_id):
        if isinstance(doctor_id, float):
            doctor_id += doctor.id
        with pytest.raises(ValidationError) as exc_info:
            booking.book(dict(payload, medico_id=doctor_id))
        assert exc_info.value.message == "El médico seleccionado no es válido."
        assert _counts() == (0, 0)

    def test_doctor_id_as_digit_string(self, booking, payload, doctor):
        appointment_id = booking.book(dict(payload, medico_id=str(doctor.id)))
        assert db.session.get(Appointment, appointment_id).doctor_id == doctor.id

    def test_other_integrity_errors_are_not_slot_conflicts(self, booking, payload, monkeypatch):
        def failing_flush():
            raise IntegrityError("INSERT INTO appointments", {}, Exception("FOREIGN KEY constraint failed"))

        booking.book(dict(payload, hora="10:00"))
        monkeypatch.setattr(booking.session, "flush", failing_flush)

        with pytest.raises(TransactionError):
            booking.book(payload)
        monkeypatch.undo()
        assert _counts() == (1, 1)

    @pytest.mark.parametrize("missing", ["dni", "medico_id", "fecha", "hora", "monto", "tipo_pago"])
    def test_missing_field_is_rejected(self, booking, payload, missing):
        del payload[missing]
        with pytest.raises(ValidationError) as exc_info:
            booking.book(payload)
        assert exc_info.value.message == "Todos los campos son obligatorios."
        assert _counts() == (0, 0)

    @pytest.mark.parametrize("amount", [-5, "abc", "NaN", True])
    def test_bad_amount_is_rejected(self, booking, payload, amount):
        with pytest.raises(ValidationError):
            booking.book(dict(payload, monto=amount))
        assert _counts() == (0, 0)

    def test_zero_amount_is_rejected(self, booking, payload):
        with pytest.raises(ValidationError):
            booking.book(dict(payload, monto=0))

    def test_unknown_payment_method_is_rejected(self, booking, payload):
        with pytest.raises(ValidationError) as exc_info:
            booking.book(dict(payload, tipo_pago="Bitcoin"))
        assert exc_info.value.message == "Tipo de pago inválido."

    def test_unknown_patient(self, booking, payload):
        with pytest.raises(NotFoundError) as exc_info:
            booking.book(dict(payload, dni="99999999"))
        assert exc_info.value.message == "No existe un paciente con ese DNI."
        assert _counts() == (0, 0)

    def test_unknown_doctor(self, booking, payload):
        with pytest.raises(NotFoundError):
            booking.book(dict(payload, medico_id=999))
        assert _counts() == (0, 0)

    def test_storage_failure_rolls_everything_back(self, booking, ledger, payload, monkeypatch):
        def broken_attach(*args, **kwargs):
            raise OperationalError("INSERT INTO payments", {}, Exception("disk full"))

        monkeypatch.setattr(ledger, "attach", broken_attach)
        with pytest.raises(TransactionError):
            booking.book(payload)
        assert _counts() == (0, 0)

    def test_duplicate_payment_rolls_back_the_appointment(self, booking, ledger, payload, monkeypatch):
        original_attach = ledger.attach

        def attach_twice(appointment, amount, method):
            original_attach(appointment, amount, method)
            return original_attach(appointment, amount, method)

        monkeypatch.setattr(ledger, "attach", attach_twice)
        with pytest.raises(ConflictError):
            booking.book(payload)
        assert _counts() == (0, 0)


class TestReschedule:
    def test_moves_slot_and_updates_payment_in_place(self, booking, payload):
        appointment_id = booking.book(payload)
        payment_id = db.session.get(Appointment, appointment_id).payment_id

        booking.reschedule(
            appointment_id, dict(payload, hora="10:00", monto="1500.50", tipo_pago="Transferencia")
        )

        appointment = db.session.get(Appointment, appointment_id)
        payment = db.session.get(Payment, payment_id)
        assert appointment.time == time(10, 0)
        assert appointment.payment_id == payment_id
        assert payment.amount == Decimal("1500.50")
        assert payment.method == "Transferencia"
        assert _counts() == (1, 1)

    def test_keeping_its_own_slot_is_not_a_conflict(self, booking, payload):
        appointment_id = booking.book(payload)
        booking.reschedule(appointment_id, dict(payload, monto=2000))
        assert db.session.get(Appointment, appointment_id).time == time(9, 0)

    def test_taking_another_booked_slot_is_a_conflict(self, booking, payload):
        booking.book(payload)
        second_id = booking.book(dict(payload, hora="11:00"))

        with pytest.raises(ConflictError):
            booking.reschedule(second_id, payload)
        assert db.session.get(Appointment, second_id).time == time(11, 0)

    def test_change_of_doctor_refreshes_the_snapshot(self, booking, payload, other_doctor):
        appointment_id = booking.book(payload)
        booking.reschedule(appointment_id, dict(payload, medico_id=other_doctor.id))

        appointment = db.session.get(Appointment, appointment_id)
        assert appointment.doctor_id == other_doctor.id
        assert appointment.specialty == "Pediatría"

    def test_unpaid_appointment_gets_a_new_payment(self, booking, ledger, payload):
        appointment_id = booking.book(payload)
        ledger.delete(db.session.get(Appointment, appointment_id).payment_id)

        booking.reschedule(appointment_id, payload)

        appointment = db.session.get(Appointment, appointment_id)
        payment = db.session.get(Payment, appointment.payment_id)
        assert payment.appointment_id == appointment_id

    def test_unknown_appointment(self, booking, payload):
        with pytest.raises(NotFoundError) as exc_info:
            booking.reschedule(42, payload)
        assert exc_info.value.message == "El turno no existe."

    def test_invalid_slot_fails_before_lookup(self, booking, payload):
        with pytest.raises(ValidationError):
            booking.reschedule(42, dict(payload, fecha="2025-11-08"))


class TestCancel:
    def test_removes_appointment_and_payment(self, booking, payload):
        appointment_id = booking.book(payload)
        booking.cancel(appointment_id)
        assert _counts() == (0, 0)

    def test_slot_is_free_again(self, booking, payload):
        booking.cancel(booking.book(payload))
        assert booking.book(payload)

    def test_unknown_appointment(self, booking):
        with pytest.raises(NotFoundError):
            booking.cancel(42)


class TestOccupiedSlots:
    def test_lists_booked_times_for_the_doctor_and_day(self, booking, payload, doctor, other_doctor):
        booking.book(payload)
        booking.book(dict(payload, hora="15:00"))
        booking.book(dict(payload, medico_id=other_doctor.id, hora="10:00"))
        booking.book(dict(payload, fecha="2025-11-11", hora="12:00"))

        assert booking.occupied_slots(doctor.id, NEXT_MONDAY) == {time(9, 0), time(15, 0)}

    def test_excludes_the_appointment_being_edited(self, booking, payload, doctor):
        first_id = booking.book(payload)
        booking.book(dict(payload, hora="15:00"))

        assert booking.occupied_slots(doctor.id, NEXT_MONDAY, first_id) == {time(15, 0)}

    def test_repeated_reads_agree(self, booking, payload, doctor):
        booking.book(payload)
        assert booking.occupied_slots(doctor.id, NEXT_MONDAY) == booking.occupied_slots(
            doctor.id, NEXT_MONDAY
        )

    def test_empty_day(self, booking, doctor):
        assert booking.occupied_slots(doctor.id, date(2025, 11, 12)) == set()
