"""
Directory services: patients, doctors, consulting rooms and user accounts.

Plain CRUD. The booking core only uses ``PatientDirectory.find_by_national_id``
and ``DoctorDirectory.find_by_id``.
"""
import logging

from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from errors import (
    AuthenticationError,
    ConflictError,
    ForbiddenRoleError,
    IncompleteLoginError,
    NotFoundError,
    ValidationError,
)
from models import Appointment, Clinic, Doctor, Patient, User, unit_of_work
from slot_rules import normalize_date

logger = logging.getLogger(__name__)

# payload key -> model attribute
PERSON_FIELDS = {
    'dni': 'national_id',
    'nombre': 'first_name',
    'apellido': 'last_name',
    'telefono': 'phone',
    'fecha_nacimiento': 'birth_date',
    'domicilio': 'address',
    'email': 'email',
}


def _blank(value):
    return value is None or (isinstance(value, str) and not value.strip())


def _apply_person_fields(record, data, extra_fields):
    fields = dict(PERSON_FIELDS, **extra_fields)
    for key, attribute in fields.items():
        if key not in data:
            continue
        value = data[key]
        if key == 'fecha_nacimiento':
            if _blank(value):
                value = None
            else:
                value = normalize_date(value)
                if value is None:
                    raise ValidationError("Fecha de nacimiento inválida.")
        elif _blank(value):
            value = None
        setattr(record, attribute, value)


def _flush_unique(session, message):
    try:
        session.flush()
    except IntegrityError as e:
        raise ConflictError(message) from e


class _PersonDirectory:
    model = None
    extra_fields = {}
    required = ('dni', 'nombre', 'apellido')
    not_found = "Registro no encontrado."
    duplicate = "Ya existe un registro con ese DNI."
    in_use = "El registro tiene turnos asignados."

    def __init__(self, session):
        self.session = session

    def list(self):
        return self.session.query(self.model).order_by(self.model.id).all()

    def get(self, record_id):
        record = self.session.get(self.model, record_id)
        if record is None:
            raise NotFoundError(self.not_found)
        return record

    def find_by_national_id(self, national_id):
        return self.session.query(self.model).filter_by(national_id=str(national_id)).first()

    def create(self, data):
        if any(_blank(data.get(key)) for key in self.required):
            raise ValidationError("Faltan campos obligatorios.")
        with unit_of_work(self.session):
            record = self.model()
            _apply_person_fields(record, data, self.extra_fields)
            self.session.add(record)
            _flush_unique(self.session, self.duplicate)
        logger.info("%s %s created", self.model.__name__, record.id)
        return record

    def update(self, record_id, data):
        with unit_of_work(self.session):
            record = self.get(record_id)
            _apply_person_fields(record, data, self.extra_fields)
            if any(_blank(getattr(record, PERSON_FIELDS.get(key) or self.extra_fields[key]))
                   for key in self.required):
                raise ValidationError("Faltan campos obligatorios.")
            _flush_unique(self.session, self.duplicate)
        return record

    def delete(self, record_id):
        with unit_of_work(self.session):
            record = self.get(record_id)
            if self._has_appointments(record):
                raise ConflictError(self.in_use)
            self.session.delete(record)
        logger.info("%s %s deleted", self.model.__name__, record_id)

    def _has_appointments(self, record):
        raise NotImplementedError


class PatientDirectory(_PersonDirectory):
    model = Patient
    extra_fields = {'obra_social': 'insurer'}
    not_found = "Paciente no encontrado."
    duplicate = "Ya existe un paciente con ese DNI."
    in_use = "El paciente tiene turnos asignados."

    def _has_appointments(self, record):
        return self.session.query(Appointment.id).filter_by(patient_id=record.id).first() is not None


class DoctorDirectory(_PersonDirectory):
    model = Doctor
    extra_fields = {'especialidad': 'specialty'}
    required = ('dni', 'nombre', 'apellido', 'especialidad')
    not_found = "Médico no encontrado."
    duplicate = "Ya existe un médico con ese DNI."
    in_use = "El médico tiene turnos asignados."

    def find_by_id(self, doctor_id):
        return self.session.get(Doctor, doctor_id)

    def _has_appointments(self, record):
        return self.session.query(Appointment.id).filter_by(doctor_id=record.id).first() is not None


class ClinicDirectory:
    def __init__(self, session):
        self.session = session

    def list(self):
        return self.session.query(Clinic).order_by(Clinic.id).all()

    def create(self, data):
        if _blank(data.get('nombre')) or _blank(data.get('num_consultorio')):
            raise ValidationError("Faltan campos obligatorios.")
        with unit_of_work(self.session):
            clinic = Clinic(
                name=data['nombre'],
                room_number=str(data['num_consultorio']),
                is_active=bool(data.get('estado')),
            )
            self.session.add(clinic)
            self.session.flush()
        logger.info("Clinic %s created", clinic.id)
        return clinic

    def update(self, clinic_id, data):
        with unit_of_work(self.session):
            clinic = self.session.get(Clinic, clinic_id)
            if clinic is None:
                raise NotFoundError("Consultorio no encontrado.")
            if 'nombre' in data:
                clinic.name = data['nombre']
            if 'num_consultorio' in data:
                clinic.room_number = str(data['num_consultorio'])
            clinic.is_active = bool(data.get('estado'))
        return clinic

    def delete(self, clinic_id):
        with unit_of_work(self.session):
            clinic = self.session.get(Clinic, clinic_id)
            if clinic is None:
                raise NotFoundError("Consultorio no encontrado.")
            self.session.delete(clinic)


class UserDirectory:
    def __init__(self, session):
        self.session = session

    def list(self):
        return self.session.query(User).order_by(User.id.desc()).all()

    def create(self, data):
        if _blank(data.get('usuario')) or _blank(data.get('contrasena')) or 'es_medico' not in data:
            raise ValidationError("usuario, contrasena y es_medico son obligatorios.")
        with unit_of_work(self.session):
            user = User(
                username=data['usuario'],
                password_hash=generate_password_hash(data['contrasena']),
                is_doctor=bool(data['es_medico']),
            )
            self.session.add(user)
            _flush_unique(self.session, "El usuario ya existe.")
        logger.info("User %s created", user.id)
        return user

    def update(self, user_id, data):
        if _blank(data.get('usuario')) or 'es_medico' not in data:
            raise ValidationError("usuario y es_medico son obligatorios.")
        with unit_of_work(self.session):
            user = self.session.get(User, user_id)
            if user is None:
                raise NotFoundError("Usuario no encontrado.")
            user.username = data['usuario']
            user.is_doctor = bool(data['es_medico'])
            # Only re-hash when a new password is supplied
            if not _blank(data.get('contrasena')):
                user.password_hash = generate_password_hash(data['contrasena'])
            _flush_unique(self.session, "El usuario ya existe.")
        return user

    def delete(self, user_id):
        with unit_of_work(self.session):
            user = self.session.get(User, user_id)
            if user is None:
                raise NotFoundError("Usuario no encontrado.")
            self.session.delete(user)

    def authenticate(self, username, password, role):
        """
        Check credentials and the requested role ('medico' or 'admin').

        Returns the user. Raises IncompleteLoginError on incomplete input,
        AuthenticationError on bad credentials and ForbiddenRoleError when
        the role does not match the account.
        """
        if _blank(username) or _blank(password) or role is None:
            raise IncompleteLoginError()
        user = self.session.query(User).filter_by(username=username).first()
        if user is None or not check_password_hash(user.password_hash, password):
            raise AuthenticationError()
        if (role == 'medico' and not user.is_doctor) or (role == 'admin' and user.is_doctor):
            raise ForbiddenRoleError()
        return user

