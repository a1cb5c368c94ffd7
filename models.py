import logging
from contextlib import contextmanager

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.exc import SQLAlchemyError

from errors import TransactionError

logger = logging.getLogger(__name__)

db = SQLAlchemy()

PAYMENT_METHODS = ('Efectivo', 'Tarjeta Débito', 'Transferencia', 'Tarjeta Crédito')


class Patient(db.Model):
    __tablename__ = 'patients'

    id = db.Column(db.Integer, primary_key=True)
    national_id = db.Column(db.String(20), nullable=False, unique=True)  # DNI
    first_name = db.Column(db.String(80), nullable=False)
    last_name = db.Column(db.String(80), nullable=False)
    phone = db.Column(db.String(30), nullable=True)
    birth_date = db.Column(db.Date, nullable=True)
    address = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(254), nullable=True)
    insurer = db.Column(db.String(120), nullable=True)  # Obra social

    def __repr__(self):
        return f'<Patient {self.id} - {self.national_id}>'


class Doctor(db.Model):
    __tablename__ = 'doctors'

    id = db.Column(db.Integer, primary_key=True)
    national_id = db.Column(db.String(20), nullable=False, unique=True)
    first_name = db.Column(db.String(80), nullable=False)
    last_name = db.Column(db.String(80), nullable=False)
    phone = db.Column(db.String(30), nullable=True)
    birth_date = db.Column(db.Date, nullable=True)
    address = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(254), nullable=True)
    specialty = db.Column(db.String(120), nullable=False)

    def __repr__(self):
        return f'<Doctor {self.id} - {self.specialty}>'


class Clinic(db.Model):
    __tablename__ = 'clinics'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    room_number = db.Column(db.String(20), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    def __repr__(self):
        return f'<Clinic {self.id} - {self.name} #{self.room_number}>'


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), nullable=False, unique=True)
    password_hash = db.Column(db.String(256), nullable=False)
    is_doctor = db.Column(db.Boolean, default=False, nullable=False)  # doctor vs front desk

    def __repr__(self):
        return f'<User {self.id} - {self.username}>'


class Appointment(db.Model):
    __tablename__ = 'appointments'

    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.Date, nullable=False)  # Calendar date only
    time = db.Column(db.Time, nullable=False)  # Whole hour
    doctor_id = db.Column(db.Integer, db.ForeignKey('doctors.id'), nullable=False)
    patient_id = db.Column(db.Integer, db.ForeignKey('patients.id'), nullable=False)
    # Copied from the doctor when booked; later specialty edits do not touch it.
    specialty = db.Column(db.String(120), nullable=False)
    payment_id = db.Column(
        db.Integer,
        db.ForeignKey('payments.id', use_alter=True, name='fk_appointments_payment_id'),
        nullable=True,
    )

    doctor = db.relationship('Doctor', lazy='joined')
    patient = db.relationship('Patient', lazy='joined')

    __table_args__ = (
        db.UniqueConstraint('doctor_id', 'date', 'time', name='unique_doctor_slot'),
    )

    def __repr__(self):
        return f'<Appointment {self.id} - Doctor {self.doctor_id} - Patient {self.patient_id}>'


class Payment(db.Model):
    __tablename__ = 'payments'

    id = db.Column(db.Integer, primary_key=True)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    method = db.Column(db.String(30), nullable=False)
    appointment_id = db.Column(
        db.Integer, db.ForeignKey('appointments.id'), nullable=False, unique=True
    )

    __table_args__ = (
        db.CheckConstraint('amount > 0', name='ck_payments_amount_positive'),
    )

    def __repr__(self):
        return f'<Payment {self.id} - Appointment {self.appointment_id}>'


@contextmanager
def unit_of_work(session=None):
    """
    Transactional scope shared by every multi-step mutation.

    Commits when the block completes. Domain errors roll back and propagate
    unchanged; storage failures roll back and surface as TransactionError
    with the underlying cause logged.
    """
    session = session if session is not None else db.session
    try:
        yield session
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("Transaction rolled back after storage failure")
        raise TransactionError() from e
    except Exception:
        session.rollback()
        raise
