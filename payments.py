"""
Payment ledger.

Every write path keeps the appointment <-> payment link consistent in both
directions: ``appointments.payment_id`` names the payment and
``payments.appointment_id`` names the appointment. An appointment never has
more than one payment.
"""
import logging
from decimal import Decimal, InvalidOperation

from sqlalchemy.exc import IntegrityError

from errors import ConflictError, NotFoundError, ValidationError
from models import PAYMENT_METHODS, Appointment, Payment, unit_of_work

logger = logging.getLogger(__name__)

ALREADY_PAID = "Ese turno ya tiene un pago asociado."


def parse_amount(raw):
    """Return the amount as a positive Decimal or raise ValidationError."""
    if isinstance(raw, bool):
        raise ValidationError("El monto debe ser un número mayor a cero.")
    try:
        amount = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError("El monto debe ser un número mayor a cero.")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("El monto debe ser un número mayor a cero.")
    return amount.quantize(Decimal("0.01"))


def check_method(raw):
    if raw not in PAYMENT_METHODS:
        raise ValidationError("Tipo de pago inválido.")
    return raw


def parse_id(raw, message):
    """Accept an int or a string of decimal digits; anything else raises ValidationError."""
    if isinstance(raw, bool):
        raise ValidationError(message)
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().isdecimal():
        return int(raw.strip())
    raise ValidationError(message)


def _missing(value):
    return value is None or (isinstance(value, str) and not value.strip())


class PaymentLedger:
    def __init__(self, session):
        self.session = session

    # -- building blocks, called inside an already open unit of work --

    def attach(self, appointment, amount, method):
        """Insert a payment for ``appointment`` and link both sides."""
        existing = self.session.query(Payment.id).filter_by(appointment_id=appointment.id).first()
        if existing is not None:
            raise ConflictError(ALREADY_PAID)

        payment = Payment(amount=amount, method=method, appointment_id=appointment.id)
        self.session.add(payment)
        try:
            self.session.flush()
        except IntegrityError as e:
            logger.warning("Duplicate payment rejected for appointment %s", appointment.id)
            raise ConflictError(ALREADY_PAID) from e

        appointment.payment_id = payment.id
        self.session.flush()
        return payment

    def amend(self, payment_id, amount, method):
        """Change amount and method in place; the link is left untouched."""
        payment = self.session.get(Payment, payment_id)
        if payment is None:
            raise NotFoundError("El pago no existe.")
        payment.amount = amount
        payment.method = method
        self.session.flush()
        return payment

    def detach_all(self, appointment):
        """Delete every payment of ``appointment`` and clear its link."""
        appointment.payment_id = None
        self.session.flush()
        self.session.query(Payment).filter_by(appointment_id=appointment.id).delete(
            synchronize_session='fetch'
        )
        self.session.flush()

    # -- standalone payment path --

    def create(self, data):
        appointment_id = data.get('turno_id')
        if _missing(appointment_id) or _missing(data.get('monto')) or _missing(data.get('tipo')):
            raise ValidationError("turno_id, monto y tipo son obligatorios.")
        appointment_id = parse_id(appointment_id, "El turno indicado no es válido.")
        amount = parse_amount(data['monto'])
        method = check_method(data['tipo'])

        with unit_of_work(self.session):
            appointment = self.session.get(Appointment, appointment_id, with_for_update=True)
            if appointment is None:
                raise NotFoundError("El turno indicado no existe.")
            payment = self.attach(appointment, amount, method)

        logger.info("Payment %s registered for appointment %s", payment.id, appointment_id)
        return payment.id

    def update(self, payment_id, data):
        if _missing(data.get('monto')) or _missing(data.get('tipo')):
            raise ValidationError("monto y tipo son obligatorios.")
        amount = parse_amount(data['monto'])
        method = check_method(data['tipo'])

        with unit_of_work(self.session):
            self.amend(payment_id, amount, method)
        logger.info("Payment %s updated", payment_id)

    def delete(self, payment_id):
        with unit_of_work(self.session):
            payment = self.session.get(Payment, payment_id)
            if payment is None:
                raise NotFoundError("El pago no existe.")
            appointment = self.session.get(Appointment, payment.appointment_id)
            if appointment is not None and appointment.payment_id == payment.id:
                appointment.payment_id = None
                self.session.flush()
            self.session.delete(payment)
        logger.info("Payment %s deleted", payment_id)

    def list(self):
        """Payments newest first, each joined with its appointment."""
        return (
            self.session.query(Payment, Appointment)
            .outerjoin(Appointment, Payment.appointment_id == Appointment.id)
            .order_by(Payment.id.desc())
            .all()
        )
