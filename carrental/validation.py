"""Coercion of caller input into the types the rental services work with."""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from .constants import DATE_FMT
from .errors import ValidationError
from .pricing import money


def as_date(value, field: str) -> date:
    if value is None or value == '':
        raise ValidationError(f"{field} is required", field=field)
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value), DATE_FMT).date()
    except ValueError:
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD)", field=field, current=value)


def as_datetime(value, field: str, default=None) -> datetime:
    if value is None or value == '':
        return default if default is not None else datetime.utcnow()
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date or datetime", field=field, current=value)


def as_money(value, field: str, required: bool = True) -> Decimal:
    if value is None or value == '':
        if required:
            raise ValidationError(f"{field} is required", field=field)
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field=field, current=value)
    try:
        amount = money(value)
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field} must be a number", field=field, current=value)
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number", field=field, current=value)
    return amount


def as_int(value, field: str, required: bool = True, minimum: int = None) -> int:
    if value is None or value == '':
        if required:
            raise ValidationError(f"{field} is required", field=field)
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a whole number", field=field, current=value)
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be at least {minimum}", field=field, current=value)
    return number


def as_enum(enum_cls, value, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed}", field=field, current=value)


def require_text(value, field: str) -> str:
    text = str(value).strip() if value is not None else ''
    if not text:
        raise ValidationError(f"{field} is required", field=field)
    return text


_TRUE = ('1', 'true', 'yes', 'on')
_FALSE = ('0', 'false', 'no', 'off', '')


def as_bool(value, field: str, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValidationError(f"{field} must be true or false", field=field, current=value)
