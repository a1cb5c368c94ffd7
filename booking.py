"""
Booking of appointments (turnos) together with their payment.

A booking validates the payload and the requested slot before touching
storage, then resolves the patient and the doctor, checks the slot, writes
the appointment and its payment and commits, all inside one unit of work.
The ``unique_doctor_slot`` constraint is the final arbiter when two requests
race for the same (doctor, date, time): the loser gets a ConflictError.
"""
import logging
from collections import namedtuple

from sqlalchemy.exc import IntegrityError

from errors import ConflictError, NotFoundError, ValidationError
from models import Appointment, unit_of_work
from payments import check_method, parse_amount, parse_id
from slot_rules import DEFAULT_FIRST_HOUR, DEFAULT_HORIZON_DAYS, DEFAULT_LAST_HOUR, validate_slot

logger = logging.getLogger(__name__)

SLOT_TAKEN = "Ese horario ya está asignado para este médico."

SLOT_CONSTRAINT = 'unique_doctor_slot'
SLOT_COLUMNS = 'appointments.doctor_id, appointments.date, appointments.time'

REQUIRED_FIELDS = ('dni', 'medico_id', 'fecha', 'hora', 'monto', 'tipo_pago')

BookingRequest = namedtuple(
    'BookingRequest', ['patient_national_id', 'doctor_id', 'date', 'time', 'amount', 'method']
)


def _missing(value):
    return value is None or (isinstance(value, str) and not value.strip())


def is_slot_violation(error):
    """True when an IntegrityError comes from the (doctor, date, time) unique constraint."""
    detail = str(error.orig)
    # MySQL and PostgreSQL name the constraint, SQLite lists its columns
    return SLOT_CONSTRAINT in detail or SLOT_COLUMNS in detail


def parse_doctor_id(raw):
    return parse_id(raw, "El médico seleccionado no es válido.")


class BookingManager:
    def __init__(self, session, patients, doctors, ledger, today,
                 horizon_days=DEFAULT_HORIZON_DAYS, first_hour=DEFAULT_FIRST_HOUR,
                 last_hour=DEFAULT_LAST_HOUR):
        self.session = session
        self.patients = patients
        self.doctors = doctors
        self.ledger = ledger
        self.today = today
        self.horizon_days = horizon_days
        self.first_hour = first_hour
        self.last_hour = last_hour

    def parse_request(self, data):
        """Check the payload shape and the slot rules. Nothing is read or written."""
        if not isinstance(data, dict) or any(_missing(data.get(key)) for key in REQUIRED_FIELDS):
            raise ValidationError("Todos los campos son obligatorios.")

        day, slot = validate_slot(
            data['fecha'], data['hora'], self.today(),
            horizon_days=self.horizon_days,
            first_hour=self.first_hour,
            last_hour=self.last_hour,
        )
        return BookingRequest(
            patient_national_id=str(data['dni']).strip(),
            doctor_id=parse_doctor_id(data['medico_id']),
            date=day,
            time=slot,
            amount=parse_amount(data['monto']),
            method=check_method(data['tipo_pago']),
        )

    def occupied_slots(self, doctor_id, day, exclude_appointment_id=None):
        """Times already booked for ``doctor_id`` on ``day``, minus the excluded appointment."""
        query = self.session.query(Appointment.time).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.date == day,
        )
        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)
        return {row.time for row in query.all()}

    def book(self, data):
        """Create an appointment and its payment. Returns the new appointment id."""
        request = self.parse_request(data)

        with unit_of_work(self.session):
            patient, doctor = self._resolve(request)
            self._ensure_free(doctor.id, request)

            appointment = Appointment(
                date=request.date,
                time=request.time,
                doctor_id=doctor.id,
                patient_id=patient.id,
                specialty=doctor.specialty,
            )
            self.session.add(appointment)
            self._flush_slot(doctor.id, request)

            self.ledger.attach(appointment, request.amount, request.method)

        logger.info(
            "Appointment %s booked: doctor=%s date=%s time=%s payment=%s",
            appointment.id, doctor.id, request.date, request.time, appointment.payment_id,
        )
        return appointment.id

    def reschedule(self, appointment_id, data):
        """Move or edit an existing appointment and create or update its payment."""
        request = self.parse_request(data)

        with unit_of_work(self.session):
            appointment = self.session.get(Appointment, appointment_id, with_for_update=True)
            if appointment is None:
                raise NotFoundError("El turno no existe.")

            patient, doctor = self._resolve(request)
            self._ensure_free(doctor.id, request, exclude_appointment_id=appointment.id)

            appointment.date = request.date
            appointment.time = request.time
            appointment.doctor_id = doctor.id
            appointment.patient_id = patient.id
            appointment.specialty = doctor.specialty
            self._flush_slot(doctor.id, request)

            if appointment.payment_id is not None:
                self.ledger.amend(appointment.payment_id, request.amount, request.method)
            else:
                self.ledger.attach(appointment, request.amount, request.method)

        logger.info("Appointment %s rescheduled to %s %s", appointment_id, request.date, request.time)
        return appointment.id

    def cancel(self, appointment_id):
        """Delete an appointment together with its payment."""
        with unit_of_work(self.session):
            appointment = self.session.get(Appointment, appointment_id, with_for_update=True)
            if appointment is None:
                raise NotFoundError("El turno no existe.")
            self.ledger.detach_all(appointment)
            self.session.delete(appointment)

        logger.info("Appointment %s deleted with its payment", appointment_id)

    def _resolve(self, request):
        patient = self.patients.find_by_national_id(request.patient_national_id)
        if patient is None:
            raise NotFoundError("No existe un paciente con ese DNI.")
        doctor = self.doctors.find_by_id(request.doctor_id)
        if doctor is None:
            raise NotFoundError("El médico seleccionado no existe.")
        return patient, doctor

    def _ensure_free(self, doctor_id, request, exclude_appointment_id=None):
        # Early exit only; the unique constraint decides races
        if request.time in self.occupied_slots(doctor_id, request.date, exclude_appointment_id):
            logger.warning(
                "Slot taken: doctor=%s date=%s time=%s", doctor_id, request.date, request.time
            )
            raise ConflictError(SLOT_TAKEN)

    def _flush_slot(self, doctor_id, request):
        try:
            self.session.flush()
        except IntegrityError as e:
            if not is_slot_violation(e):
                raise
            logger.warning(
                "Slot lost to a concurrent booking: doctor=%s date=%s time=%s",
                doctor_id, request.date, request.time,
            )
            raise ConflictError(SLOT_TAKEN) from e
