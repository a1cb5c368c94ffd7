from flask import jsonify


class ClinicError(Exception):
    """Base error carrying the HTTP status and the message shown to the caller."""

    status_code = 500
    message = "Error interno del servidor."

    def __init__(self, message=None):
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_dict(self):
        return {"msg": self.message}


class LoginRejected:
    """Mixin for login failures, whose replies also carry ``ok: false``."""

    def to_dict(self):
        return {"ok": False, "msg": self.message}


class ValidationError(ClinicError):
    status_code = 400
    message = "Datos inválidos."


class NotFoundError(ClinicError):
    status_code = 404
    message = "Recurso no encontrado."


class ConflictError(ClinicError):
    status_code = 409
    message = "Conflicto con el estado actual."


class IncompleteLoginError(LoginRejected, ValidationError):
    message = "Datos incompletos."


class AuthenticationError(LoginRejected, ClinicError):
    status_code = 401
    message = "Usuario o contraseña incorrectos."


class ForbiddenRoleError(LoginRejected, ClinicError):
    status_code = 403
    message = "Rol no autorizado para este usuario."


class TransactionError(ClinicError):
    # The underlying cause is logged where it is caught, never sent back.
    status_code = 500
    message = "Error al procesar la operación."

    def to_dict(self):
        return {"msg": TransactionError.message}


class ConfigError(Exception):
    """Raised at startup when the service configuration cannot be loaded."""


def register_error_handlers(app):
    @app.errorhandler(ClinicError)
    def handle_clinic_error(error):
        return jsonify(error.to_dict()), error.status_code
