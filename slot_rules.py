"""
Slot rules: normalization and validation of a candidate date and time.

Pure functions only, no storage access. Dates are civil calendar dates in the
clinic's timezone; "today" is always passed in by the caller.
"""
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from errors import ValidationError

DEFAULT_HORIZON_DAYS = 20
DEFAULT_FIRST_HOUR = 9
DEFAULT_LAST_HOUR = 18

# Accepted besides ISO (YYYY-MM-DD)
DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%Y/%m/%d", "%d-%m-%Y")


def clinic_today(tz_name):
    """Civil date "today" in the clinic's timezone."""
    return datetime.now(ZoneInfo(tz_name)).date()


def normalize_date(raw):
    """Return a plain ``date`` from flexible input, or None if unparsable."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if not isinstance(raw, str):
        return None

    value = raw.strip()
    # 2025-11-10T03:00:00.000Z -> 2025-11-10
    if "T" in value:
        value = value.split("T", 1)[0]
    elif " " in value:
        value = value.split(" ", 1)[0]

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


def normalize_time(raw):
    """Parse "HH:MM"-like input. Minutes default to 00; None when the hour is outside 0-23."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, time):
        return raw.replace(second=0, microsecond=0)
    if not isinstance(raw, str):
        return None

    parts = raw.strip().split(":")
    hour_part = parts[0].strip()
    minute_part = parts[1].strip() if len(parts) > 1 and parts[1].strip() else "00"
    if not hour_part.isdecimal() or not minute_part.isdecimal():
        return None

    hour, minute = int(hour_part), int(minute_part)
    if hour < 0 or hour > 23 or minute > 59:
        return None
    return time(hour, minute)


def is_business_day(day):
    return day.weekday() < 5


def is_future_day(day, today):
    return day > today


def is_within_horizon(day, today, horizon_days=DEFAULT_HORIZON_DAYS):
    return day <= today + timedelta(days=horizon_days)


def is_business_hour(slot, first_hour=DEFAULT_FIRST_HOUR, last_hour=DEFAULT_LAST_HOUR):
    return first_hour <= slot.hour <= last_hour


def is_on_the_hour(slot):
    return slot.minute == 0


def validate_slot(raw_date, raw_time, today, horizon_days=DEFAULT_HORIZON_DAYS,
                  first_hour=DEFAULT_FIRST_HOUR, last_hour=DEFAULT_LAST_HOUR):
    """
    Normalize a (date, time) candidate and check it against the booking policy.

    Returns the normalized ``(date, time)`` pair. Every failed rule raises a
    ValidationError with its own message, in the order the rules are listed.
    """
    day = normalize_date(raw_date)
    slot = normalize_time(raw_time)
    if day is None or slot is None:
        raise ValidationError("Fecha u hora inválidas.")
    if not is_business_day(day):
        raise ValidationError("Solo se permiten turnos de lunes a viernes.")
    if not is_future_day(day, today):
        raise ValidationError("La fecha debe ser futura.")
    if not is_within_horizon(day, today, horizon_days):
        raise ValidationError(f"Solo se permiten turnos hasta {horizon_days} días adelante.")
    if not is_business_hour(slot, first_hour, last_hour):
        raise ValidationError(
            f"La hora debe estar entre las {first_hour:02d}:00 y las {last_hour:02d}:00."
        )
    if not is_on_the_hour(slot):
        raise ValidationError("Los turnos se asignan en horas exactas.")
    return day, slot


def format_time(slot):
    return slot.strftime("%H:%M")
