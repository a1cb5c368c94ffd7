"""Shared test fixtures for the booking service tests."""

from datetime import date

import pytest

from app import create_app
from models import Doctor, Patient, db

# Wednesday; the next business day is Thursday 2025-11-06
TODAY = date(2025, 11, 5)
NEXT_MONDAY = date(2025, 11, 10)


@pytest.fixture
def app():
    """Application on an in-memory SQLite database with a fixed clock."""
    app = create_app(
        {"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite://"},
        clock=lambda: TODAY,
    )
    with app.app_context():
        db.create_all()
        db.session.add_all([
            Doctor(
                national_id="20111222",
                first_name="Ana",
                last_name="García",
                specialty="Cardiología",
            ),
            Doctor(
                national_id="20333444",
                first_name="Luis",
                last_name="Pérez",
                specialty="Pediatría",
            ),
            Patient(
                national_id="12345678",
                first_name="Juan",
                last_name="López",
                insurer="OSDE",
            ),
        ])
        db.session.commit()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def services(app):
    return app.extensions["clinic"]


@pytest.fixture
def booking(services):
    return services["booking"]


@pytest.fixture
def ledger(services):
    return services["ledger"]


@pytest.fixture
def doctor(app):
    return Doctor.query.filter_by(national_id="20111222").one()


@pytest.fixture
def other_doctor(app):
    return Doctor.query.filter_by(national_id="20333444").one()


@pytest.fixture
def patient(app):
    return Patient.query.filter_by(national_id="12345678").one()


@pytest.fixture
def payload(doctor):
    """Scenario A booking payload."""
    return {
        "dni": "12345678",
        "medico_id": doctor.id,
        "fecha": NEXT_MONDAY.isoformat(),
        "hora": "09:00",
        "monto": 1000,
        "tipo_pago": "Efectivo",
    }
