import logging
from functools import partial

import click
from dotenv import load_dotenv
from flask import Flask
from flask_cors import CORS
from flask_migrate import Migrate
from flasgger import Swagger

from booking import BookingManager
from config import load_config
from directory import ClinicDirectory, DoctorDirectory, PatientDirectory, UserDirectory
from directory_routes import directory
from errors import register_error_handlers
from models import db
from payments import PaymentLedger
from routes import appointments, payments
from slot_rules import clinic_today

# Load environment variables from .env
load_dotenv()

logger = logging.getLogger(__name__)

migrate = Migrate()


def create_app(test_config=None, clock=None):
    """
    Build the Flask application.

    ``test_config`` overrides any configuration key, ``clock`` replaces the
    "today" provider used by the booking rules.
    """
    app = Flask(__name__)
    if test_config is not None and 'SQLALCHEMY_DATABASE_URI' in test_config:
        # No Config Server round-trip when the database is given explicitly
        app.config.update(load_config(environ={}))
    else:
        app.config.update(load_config())
    if test_config is not None:
        app.config.update(test_config)

    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    Swagger(app)
    CORS(app)

    # Database and Flask-Migrate
    db.init_app(app)
    migrate.init_app(app, db)

    if clock is None:
        clock = partial(clinic_today, app.config['CLINIC_TIMEZONE'])

    patients = PatientDirectory(db.session)
    doctors = DoctorDirectory(db.session)
    ledger = PaymentLedger(db.session)
    app.extensions['clinic'] = {
        'patients': patients,
        'doctors': doctors,
        'clinics': ClinicDirectory(db.session),
        'users': UserDirectory(db.session),
        'ledger': ledger,
        'booking': BookingManager(
            db.session, patients, doctors, ledger, clock,
            horizon_days=app.config['BOOKING_HORIZON_DAYS'],
            first_hour=app.config['BUSINESS_HOUR_START'],
            last_hour=app.config['BUSINESS_HOUR_END'],
        ),
    }

    # Blueprints
    app.register_blueprint(appointments)
    app.register_blueprint(payments)
    app.register_blueprint(directory)
    register_error_handlers(app)

    @app.cli.command("init-db")
    def init_db():
        """Create every table that does not exist yet."""
        db.create_all()
        click.echo("Database initialized.")

    logger.info("Service ready on %s", app.config['SQLALCHEMY_DATABASE_URI'].split('@')[-1])
    return app


if __name__ == "__main__":
    create_app().run(debug=True)
