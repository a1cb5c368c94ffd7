from flask import Blueprint, current_app, jsonify, request
from flasgger import swag_from

from errors import NotFoundError, ValidationError
from models import Appointment, Payment, db
from slot_rules import format_time, normalize_date

appointments = Blueprint("appointments", __name__, url_prefix="/api/turnos")
payments = Blueprint("payments", __name__, url_prefix="/api/pagos")


def _services():
    return current_app.extensions['clinic']


def json_body():
    """The JSON object sent with the request; {} when there is none."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("El cuerpo de la solicitud debe ser un objeto JSON.")
    return data


def _money(amount):
    return None if amount is None else f"{amount:.2f}"


BOOKING_BODY = {
    'name': 'body',
    'in': 'body',
    'required': True,
    'schema': {
        'type': 'object',
        'required': ['dni', 'medico_id', 'fecha', 'hora', 'monto', 'tipo_pago'],
        'properties': {
            'dni': {'type': 'string'},
            'medico_id': {'type': 'integer'},
            'fecha': {'type': 'string', 'format': 'date'},
            'hora': {'type': 'string', 'example': '09:00'},
            'monto': {'type': 'number'},
            'tipo_pago': {
                'type': 'string',
                'enum': ['Efectivo', 'Tarjeta Débito', 'Transferencia', 'Tarjeta Crédito'],
            },
        },
        'example': {
            'dni': '12345678',
            'medico_id': 1,
            'fecha': '2025-11-10',
            'hora': '09:00',
            'monto': 1000,
            'tipo_pago': 'Efectivo',
        },
    },
}

APPOINTMENT_ID = {
    'name': 'appointment_id',
    'in': 'path',
    'type': 'integer',
    'required': True,
    'description': 'ID of the appointment',
}


def serialize_appointment(appointment, payment=None):
    doctor = appointment.doctor
    patient = appointment.patient
    return {
        "id": appointment.id,
        "fecha": appointment.date.isoformat(),
        "hora": format_time(appointment.time),
        "medico_id": appointment.doctor_id,
        "paciente_id": appointment.patient_id,
        "especialidad": appointment.specialty,
        "medico_nombre": doctor.first_name if doctor else None,
        "medico_apellido": doctor.last_name if doctor else None,
        "medico_especialidad": doctor.specialty if doctor else None,
        "paciente_nombre": patient.first_name if patient else None,
        "paciente_apellido": patient.last_name if patient else None,
        "paciente_dni": patient.national_id if patient else None,
        # payment_id stays internal
        "pago_monto": _money(payment.amount) if payment else None,
        "pago_tipo": payment.method if payment else None,
    }


# All appointments, newest first
@appointments.route("", methods=["GET"])
@swag_from({
    'tags': ['Turnos'],
    'summary': 'Listar turnos con paciente, médico y pago',
    'responses': {
        200: {
            'description': "Lista de turnos, más recientes primero",
            'examples': {
                'application/json': [
                    {
                        "id": 1,
                        "fecha": "2025-11-10",
                        "hora": "09:00",
                        "medico_id": 1,
                        "paciente_id": 1,
                        "especialidad": "Cardiología",
                        "paciente_dni": "12345678",
                        "pago_monto": "1000.00",
                        "pago_tipo": "Efectivo"
                    }
                ]
            }
        }
    }
})
def list_appointments():
    rows = (
        db.session.query(Appointment, Payment)
        .outerjoin(Payment, Appointment.payment_id == Payment.id)
        .order_by(Appointment.date.desc(), Appointment.time.desc())
        .all()
    )
    return jsonify([serialize_appointment(a, p) for a, p in rows])


@appointments.route("/<int:appointment_id>", methods=["GET"])
@swag_from({
    'tags': ['Turnos'],
    'summary': 'Obtener un turno',
    'parameters': [APPOINTMENT_ID],
    'responses': {
        200: {'description': 'Detalle del turno'},
        404: {
            'description': 'Turno inexistente',
            'examples': {'application/json': {"msg": "El turno no existe."}}
        }
    }
})
def get_appointment(appointment_id):
    appointment = db.session.get(Appointment, appointment_id)
    if appointment is None:
        raise NotFoundError("El turno no existe.")
    payment = db.session.get(Payment, appointment.payment_id) if appointment.payment_id else None
    return jsonify(serialize_appointment(appointment, payment))


@appointments.route("/ocupados", methods=["GET"])
@swag_from({
    'tags': ['Turnos'],
    'summary': 'Horas ya tomadas por un médico en una fecha',
    'parameters': [
        {'name': 'medicoId', 'in': 'query', 'type': 'integer', 'required': True},
        {'name': 'fecha', 'in': 'query', 'type': 'string', 'required': True,
         'description': 'Fecha (YYYY-MM-DD)'},
        {'name': 'excludeId', 'in': 'query', 'type': 'integer', 'required': False,
         'description': 'Turno a excluir (reprogramación)'}
    ],
    'responses': {
        200: {
            'description': 'Horas ocupadas',
            'examples': {'application/json': {"occupied": ["09:00", "11:00"]}}
        },
        400: {
            'description': 'Parámetros faltantes o fecha inválida',
            'examples': {'application/json': {"msg": "medicoId y fecha son obligatorios."}}
        }
    }
})
def occupied_slots():
    doctor_id = request.args.get('medicoId')
    raw_date = request.args.get('fecha')
    if not doctor_id or not raw_date:
        raise ValidationError("medicoId y fecha son obligatorios.")

    day = normalize_date(raw_date)
    if day is None:
        raise ValidationError("Formato de fecha inválido.")
    try:
        doctor_id = int(doctor_id)
    except ValueError:
        raise ValidationError("El médico seleccionado no es válido.")

    # A non-numeric excludeId is ignored
    exclude_id = request.args.get('excludeId', type=int)

    taken = _services()['booking'].occupied_slots(doctor_id, day, exclude_id)
    return jsonify({"occupied": [format_time(t) for t in sorted(taken)]})


@appointments.route("", methods=["POST"])
@swag_from({
    'tags': ['Turnos'],
    'summary': 'Crear un turno y su pago en una sola transacción',
    'parameters': [BOOKING_BODY],
    'responses': {
        201: {
            'description': "Turno creado",
            'examples': {'application/json': {"msg": "Turno creado correctamente.", "turnoId": 1}}
        },
        400: {'description': "Datos inválidos o fuera de las reglas de agenda"},
        404: {'description': "Paciente o médico inexistente"},
        409: {
            'description': "Horario ocupado",
            'examples': {'application/json': {"msg": "Ese horario ya está asignado para este médico."}}
        }
    }
})
def create_appointment():
    appointment_id = _services()['booking'].book(json_body())
    return jsonify({"msg": "Turno creado correctamente.", "turnoId": appointment_id}), 201


@appointments.route("/<int:appointment_id>", methods=["PUT"])
@swag_from({
    'tags': ['Turnos'],
    'summary': 'Reprogramar un turno y actualizar su pago',
    'parameters': [APPOINTMENT_ID, BOOKING_BODY],
    'responses': {
        200: {
            'description': "Turno actualizado",
            'examples': {'application/json': {"msg": "Turno actualizado correctamente."}}
        },
        400: {'description': "Datos inválidos"},
        404: {'description': "Turno, paciente o médico inexistente"},
        409: {'description': "Horario ocupado"}
    }
})
def update_appointment(appointment_id):
    _services()['booking'].reschedule(appointment_id, json_body())
    return jsonify({"msg": "Turno actualizado correctamente."}), 200


@appointments.route("/<int:appointment_id>", methods=["DELETE"])
@swag_from({
    'tags': ['Turnos'],
    'summary': 'Eliminar un turno junto con su pago',
    'parameters': [APPOINTMENT_ID],
    'responses': {
        200: {
            'description': 'Turno eliminado',
            'examples': {'application/json': {"msg": "Turno eliminado correctamente."}}
        },
        404: {
            'description': 'Turno inexistente',
            'examples': {'application/json': {"msg": "El turno no existe."}}
        }
    }
})
def delete_appointment(appointment_id):
    _services()['booking'].cancel(appointment_id)
    return jsonify({"msg": "Turno eliminado correctamente."})


# ---------------------------------------------------------------
# Pagos
# ---------------------------------------------------------------

PAYMENT_ID = {
    'name': 'payment_id',
    'in': 'path',
    'type': 'integer',
    'required': True,
    'description': 'ID of the payment',
}


@payments.route("", methods=["GET"])
@swag_from({
    'tags': ['Pagos'],
    'summary': 'Listar pagos con datos del turno, médico y paciente',
    'responses': {200: {'description': 'Lista de pagos, más recientes primero'}}
})
def list_payments():
    result = []
    for payment, appointment in _services()['ledger'].list():
        doctor = appointment.doctor if appointment else None
        patient = appointment.patient if appointment else None
        result.append({
            "id": payment.id,
            "monto": _money(payment.amount),
            "tipo": payment.method,
            "turno_id": payment.appointment_id,
            "fecha": appointment.date.isoformat() if appointment else None,
            "hora": format_time(appointment.time) if appointment else None,
            "medico_nombre": doctor.first_name if doctor else None,
            "medico_apellido": doctor.last_name if doctor else None,
            "medico_especialidad": doctor.specialty if doctor else None,
            "paciente_nombre": patient.first_name if patient else None,
            "paciente_apellido": patient.last_name if patient else None,
        })
    return jsonify(result)


@payments.route("", methods=["POST"])
@swag_from({
    'tags': ['Pagos'],
    'summary': 'Registrar un pago para un turno sin pago',
    'parameters': [
        {
            'name': 'body',
            'in': 'body',
            'required': True,
            'schema': {
                'type': 'object',
                'properties': {
                    'turno_id': {'type': 'integer'},
                    'monto': {'type': 'number'},
                    'tipo': {'type': 'string'}
                },
                'example': {'turno_id': 1, 'monto': 1500, 'tipo': 'Transferencia'}
            }
        }
    ],
    'responses': {
        201: {'description': 'Pago registrado'},
        400: {'description': 'Datos inválidos'},
        404: {'description': 'Turno inexistente'},
        409: {
            'description': 'El turno ya tiene un pago',
            'examples': {'application/json': {"msg": "Ese turno ya tiene un pago asociado."}}
        }
    }
})
def create_payment():
    payment_id = _services()['ledger'].create(json_body())
    return jsonify({"msg": "Pago registrado correctamente.", "id": payment_id}), 201


@payments.route("/<int:payment_id>", methods=["PUT"])
@swag_from({
    'tags': ['Pagos'],
    'summary': 'Actualizar monto y tipo de un pago',
    'parameters': [
        PAYMENT_ID,
        {
            'name': 'body',
            'in': 'body',
            'required': True,
            'schema': {
                'type': 'object',
                'properties': {'monto': {'type': 'number'}, 'tipo': {'type': 'string'}}
            }
        }
    ],
    'responses': {
        200: {'description': 'Pago actualizado'},
        400: {'description': 'Datos inválidos'},
        404: {'description': 'Pago inexistente'}
    }
})
def update_payment(payment_id):
    _services()['ledger'].update(payment_id, json_body())
    return jsonify({"msg": "Pago actualizado correctamente."})


@payments.route("/<int:payment_id>", methods=["DELETE"])
@swag_from({
    'tags': ['Pagos'],
    'summary': 'Eliminar un pago y limpiar la referencia del turno',
    'parameters': [PAYMENT_ID],
    'responses': {
        200: {'description': 'Pago eliminado'},
        404: {'description': 'Pago inexistente'}
    }
})
def delete_payment(payment_id):
    _services()['ledger'].delete(payment_id)
    return jsonify({"msg": "Pago eliminado correctamente."})
