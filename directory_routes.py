from flask import Blueprint, current_app, jsonify, request
from flasgger import swag_from

from errors import NotFoundError
from routes import json_body

directory = Blueprint("directory", __name__, url_prefix="/api")


def _services():
    return current_app.extensions['clinic']


def serialize_person(person):
    data = {
        "id": person.id,
        "dni": person.national_id,
        "nombre": person.first_name,
        "apellido": person.last_name,
        "telefono": person.phone,
        "fecha_nacimiento": person.birth_date.isoformat() if person.birth_date else None,
        "domicilio": person.address,
        "email": person.email,
    }
    if hasattr(person, 'specialty'):
        data["especialidad"] = person.specialty
    if hasattr(person, 'insurer'):
        data["obra_social"] = person.insurer
    return data


def serialize_clinic(clinic):
    return {
        "id": clinic.id,
        "nombre": clinic.name,
        "num_consultorio": clinic.room_number,
        "estado": clinic.is_active,
    }


def serialize_user(user):
    # The password hash never leaves the service
    return {"id": user.id, "usuario": user.username, "es_medico": user.is_doctor}


PERSON_PROPERTIES = {
    'dni': {'type': 'string'},
    'nombre': {'type': 'string'},
    'apellido': {'type': 'string'},
    'telefono': {'type': 'string'},
    'fecha_nacimiento': {'type': 'string', 'format': 'date'},
    'domicilio': {'type': 'string'},
    'email': {'type': 'string'},
}

DOCTOR_BODY = {
    'name': 'body',
    'in': 'body',
    'required': True,
    'schema': {
        'type': 'object',
        'required': ['dni', 'nombre', 'apellido', 'especialidad'],
        'properties': dict(PERSON_PROPERTIES, especialidad={'type': 'string'}),
        'example': {'dni': '20111222', 'nombre': 'Ana', 'apellido': 'García', 'especialidad': 'Cardiología'},
    },
}

PATIENT_BODY = {
    'name': 'body',
    'in': 'body',
    'required': True,
    'schema': {
        'type': 'object',
        'required': ['dni', 'nombre', 'apellido'],
        'properties': dict(PERSON_PROPERTIES, obra_social={'type': 'string'}),
        'example': {'dni': '12345678', 'nombre': 'Juan', 'apellido': 'López', 'obra_social': 'OSDE'},
    },
}

CLINIC_BODY = {
    'name': 'body',
    'in': 'body',
    'required': True,
    'schema': {
        'type': 'object',
        'required': ['nombre', 'num_consultorio'],
        'properties': {
            'nombre': {'type': 'string'},
            'num_consultorio': {'type': 'string'},
            'estado': {'type': 'boolean'},
        },
    },
}

USER_BODY = {
    'name': 'body',
    'in': 'body',
    'required': True,
    'schema': {
        'type': 'object',
        'required': ['usuario', 'es_medico'],
        'properties': {
            'usuario': {'type': 'string'},
            'contrasena': {'type': 'string', 'description': 'Obligatoria al crear'},
            'es_medico': {'type': 'boolean'},
        },
    },
}


def _path_id(name, what):
    return {'name': name, 'in': 'path', 'type': 'integer', 'required': True, 'description': f'ID of the {what}'}


# ---------------------------------------------------------------
# Login
# ---------------------------------------------------------------
@directory.route("/login", methods=["POST"])
@swag_from({
    'tags': ['Auth'],
    'summary': 'Iniciar sesión como médico o administrativo',
    'parameters': [
        {
            'name': 'body',
            'in': 'body',
            'required': True,
            'schema': {
                'type': 'object',
                'properties': {
                    'usuario': {'type': 'string'},
                    'contrasena': {'type': 'string'},
                    'rol': {'type': 'string', 'enum': ['medico', 'admin']}
                }
            }
        }
    ],
    'responses': {
        200: {'description': 'Inicio de sesión correcto'},
        400: {
            'description': 'Datos incompletos',
            'examples': {'application/json': {"ok": False, "msg": "Datos incompletos."}}
        },
        401: {'description': 'Usuario o contraseña incorrectos'},
        403: {'description': 'Rol no autorizado para este usuario'}
    }
})
def login():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    user = _services()['users'].authenticate(
        data.get('usuario'), data.get('contrasena'), data.get('rol')
    )
    return jsonify({"ok": True, "msg": "Inicio de sesión correcto.", "user": serialize_user(user)})


# ---------------------------------------------------------------
# Doctors
# ---------------------------------------------------------------
@directory.route("/doctors", methods=["GET"])
@swag_from({
    'tags': ['Médicos'],
    'summary': 'Listar médicos',
    'responses': {200: {'description': 'Lista de médicos'}}
})
def list_doctors():
    return jsonify([serialize_person(d) for d in _services()['doctors'].list()])


@directory.route("/doctors/search/<dni>", methods=["GET"])
@swag_from({
    'tags': ['Médicos'],
    'summary': 'Buscar un médico por DNI',
    'parameters': [{'name': 'dni', 'in': 'path', 'type': 'string', 'required': True}],
    'responses': {
        200: {'description': 'Médico encontrado'},
        404: {
            'description': 'Médico inexistente',
            'examples': {'application/json': {"msg": "Médico no encontrado."}}
        }
    }
})
def search_doctor(dni):
    doctor = _services()['doctors'].find_by_national_id(dni)
    if doctor is None:
        raise NotFoundError("Médico no encontrado.")
    return jsonify(serialize_person(doctor))


@directory.route("/doctors", methods=["POST"])
@swag_from({
    'tags': ['Médicos'],
    'summary': 'Agregar un médico',
    'parameters': [DOCTOR_BODY],
    'responses': {
        201: {
            'description': 'Médico agregado',
            'examples': {'application/json': {"msg": "Médico agregado correctamente.", "id": 1}}
        },
        400: {'description': 'Faltan campos obligatorios o datos inválidos'},
        409: {'description': 'DNI duplicado'}
    }
})
def create_doctor():
    doctor = _services()['doctors'].create(json_body())
    return jsonify({"msg": "Médico agregado correctamente.", "id": doctor.id}), 201


@directory.route("/doctors/<int:doctor_id>", methods=["PUT"])
@swag_from({
    'tags': ['Médicos'],
    'summary': 'Actualizar un médico',
    'parameters': [_path_id('doctor_id', 'doctor'), DOCTOR_BODY],
    'responses': {
        200: {'description': 'Médico actualizado'},
        400: {'description': 'Datos inválidos'},
        404: {'description': 'Médico inexistente'},
        409: {'description': 'DNI duplicado'}
    }
})
def update_doctor(doctor_id):
    _services()['doctors'].update(doctor_id, json_body())
    return jsonify({"msg": "Médico actualizado correctamente."})


@directory.route("/doctors/<int:doctor_id>", methods=["DELETE"])
@swag_from({
    'tags': ['Médicos'],
    'summary': 'Eliminar un médico sin turnos',
    'parameters': [_path_id('doctor_id', 'doctor')],
    'responses': {
        200: {'description': 'Médico eliminado'},
        404: {'description': 'Médico inexistente'},
        409: {
            'description': 'El médico tiene turnos',
            'examples': {'application/json': {"msg": "El médico tiene turnos asignados."}}
        }
    }
})
def delete_doctor(doctor_id):
    _services()['doctors'].delete(doctor_id)
    return jsonify({"msg": "Médico eliminado correctamente."})


# ---------------------------------------------------------------
# Patients
# ---------------------------------------------------------------
@directory.route("/patients", methods=["GET"])
@swag_from({
    'tags': ['Pacientes'],
    'summary': 'Listar pacientes',
    'responses': {200: {'description': 'Lista de pacientes'}}
})
def list_patients():
    return jsonify([serialize_person(p) for p in _services()['patients'].list()])


@directory.route("/patients/buscar/<dni>", methods=["GET"])
@swag_from({
    'tags': ['Pacientes'],
    'summary': 'Buscar un paciente por DNI',
    'parameters': [{'name': 'dni', 'in': 'path', 'type': 'string', 'required': True}],
    'responses': {
        200: {'description': 'Paciente encontrado'},
        404: {
            'description': 'Paciente inexistente',
            'examples': {'application/json': {"msg": "Paciente no encontrado."}}
        }
    }
})
def search_patient(dni):
    patient = _services()['patients'].find_by_national_id(dni)
    if patient is None:
        raise NotFoundError("Paciente no encontrado.")
    return jsonify(serialize_person(patient))


@directory.route("/patients", methods=["POST"])
@swag_from({
    'tags': ['Pacientes'],
    'summary': 'Agregar un paciente',
    'parameters': [PATIENT_BODY],
    'responses': {
        201: {
            'description': 'Paciente agregado',
            'examples': {'application/json': {"msg": "Paciente agregado correctamente.", "id": 1}}
        },
        400: {'description': 'Faltan campos obligatorios o datos inválidos'},
        409: {'description': 'DNI duplicado'}
    }
})
def create_patient():
    patient = _services()['patients'].create(json_body())
    return jsonify({"msg": "Paciente agregado correctamente.", "id": patient.id}), 201


@directory.route("/patients/<int:patient_id>", methods=["PUT"])
@swag_from({
    'tags': ['Pacientes'],
    'summary': 'Actualizar un paciente',
    'parameters': [_path_id('patient_id', 'patient'), PATIENT_BODY],
    'responses': {
        200: {'description': 'Paciente actualizado'},
        400: {'description': 'Datos inválidos'},
        404: {'description': 'Paciente inexistente'},
        409: {'description': 'DNI duplicado'}
    }
})
def update_patient(patient_id):
    _services()['patients'].update(patient_id, json_body())
    return jsonify({"msg": "Paciente actualizado correctamente."})


@directory.route("/patients/<int:patient_id>", methods=["DELETE"])
@swag_from({
    'tags': ['Pacientes'],
    'summary': 'Eliminar un paciente sin turnos',
    'parameters': [_path_id('patient_id', 'patient')],
    'responses': {
        200: {'description': 'Paciente eliminado'},
        404: {'description': 'Paciente inexistente'},
        409: {
            'description': 'El paciente tiene turnos',
            'examples': {'application/json': {"msg": "El paciente tiene turnos asignados."}}
        }
    }
})
def delete_patient(patient_id):
    _services()['patients'].delete(patient_id)
    return jsonify({"msg": "Paciente eliminado correctamente."})


# ---------------------------------------------------------------
# Consulting rooms
# ---------------------------------------------------------------
@directory.route("/clinics", methods=["GET"])
@swag_from({
    'tags': ['Consultorios'],
    'summary': 'Listar consultorios',
    'responses': {200: {'description': 'Lista de consultorios'}}
})
def list_clinics():
    return jsonify([serialize_clinic(c) for c in _services()['clinics'].list()])


@directory.route("/clinics", methods=["POST"])
@swag_from({
    'tags': ['Consultorios'],
    'summary': 'Agregar un consultorio',
    'parameters': [CLINIC_BODY],
    'responses': {
        201: {'description': 'Consultorio agregado'},
        400: {'description': 'Faltan campos obligatorios'}
    }
})
def create_clinic():
    clinic = _services()['clinics'].create(json_body())
    return jsonify({"msg": "Consultorio agregado correctamente.", "id": clinic.id}), 201


@directory.route("/clinics/<int:clinic_id>", methods=["PUT"])
@swag_from({
    'tags': ['Consultorios'],
    'summary': 'Actualizar un consultorio',
    'parameters': [_path_id('clinic_id', 'consulting room'), CLINIC_BODY],
    'responses': {
        200: {'description': 'Consultorio actualizado'},
        404: {'description': 'Consultorio inexistente'}
    }
})
def update_clinic(clinic_id):
    _services()['clinics'].update(clinic_id, json_body())
    return jsonify({"msg": "Consultorio actualizado correctamente."})


@directory.route("/clinics/<int:clinic_id>", methods=["DELETE"])
@swag_from({
    'tags': ['Consultorios'],
    'summary': 'Eliminar un consultorio',
    'parameters': [_path_id('clinic_id', 'consulting room')],
    'responses': {
        200: {'description': 'Consultorio eliminado'},
        404: {'description': 'Consultorio inexistente'}
    }
})
def delete_clinic(clinic_id):
    _services()['clinics'].delete(clinic_id)
    return jsonify({"msg": "Consultorio eliminado correctamente."})


# ---------------------------------------------------------------
# Users
# ---------------------------------------------------------------
@directory.route("/users", methods=["GET"])
@swag_from({
    'tags': ['Usuarios'],
    'summary': 'Listar usuarios (sin contraseñas)',
    'responses': {200: {'description': 'Lista de usuarios, más recientes primero'}}
})
def list_users():
    return jsonify([serialize_user(u) for u in _services()['users'].list()])


@directory.route("/users", methods=["POST"])
@swag_from({
    'tags': ['Usuarios'],
    'summary': 'Crear un usuario',
    'parameters': [USER_BODY],
    'responses': {
        201: {'description': 'Usuario creado'},
        400: {'description': 'Faltan campos obligatorios'},
        409: {
            'description': 'Nombre de usuario duplicado',
            'examples': {'application/json': {"msg": "El usuario ya existe."}}
        }
    }
})
def create_user():
    _services()['users'].create(json_body())
    return jsonify({"msg": "Usuario creado correctamente."}), 201


@directory.route("/users/<int:user_id>", methods=["PUT"])
@swag_from({
    'tags': ['Usuarios'],
    'summary': 'Actualizar un usuario; la contraseña solo cambia si se envía',
    'parameters': [_path_id('user_id', 'user'), USER_BODY],
    'responses': {
        200: {'description': 'Usuario actualizado'},
        400: {'description': 'Faltan campos obligatorios'},
        404: {'description': 'Usuario inexistente'},
        409: {'description': 'Nombre de usuario duplicado'}
    }
})
def update_user(user_id):
    _services()['users'].update(user_id, json_body())
    return jsonify({"msg": "Usuario actualizado correctamente."})


@directory.route("/users/<int:user_id>", methods=["DELETE"])
@swag_from({
    'tags': ['Usuarios'],
    'summary': 'Eliminar un usuario',
    'parameters': [_path_id('user_id', 'user')],
    'responses': {
        200: {'description': 'Usuario eliminado'},
        404: {'description': 'Usuario inexistente'}
    }
})
def delete_user(user_id):
    _services()['users'].delete(user_id)
    return jsonify({"msg": "Usuario eliminado correctamente."})
