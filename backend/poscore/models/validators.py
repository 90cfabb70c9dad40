"""ORM-level guards for quantities and money columns.

Used from ``@validates`` hooks so no service can write a negative price or a
zero quantity; violations surface as ``ValidationError`` (HTTP 400).
"""

from decimal import Decimal, InvalidOperation

from poscore.core.errors import ValidationError


def _as_decimal(key: str, value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{key} must be numeric, got {value!r}", field=key)


def non_negative(key: str, value):
    """Amounts, prices and stock levels: ``>= 0``."""
    if value is not None and _as_decimal(key, value) < 0:
        raise ValidationError(f"{key} cannot be negative, got {value}", field=key)
    return value


def positive(key: str, value):
    """Line, modifier and cancelled quantities: ``> 0``."""
    if value is not None and _as_decimal(key, value) <= 0:
        raise ValidationError(f"{key} must be positive, got {value}", field=key)
    return value


def validate_dict(key: str, value):
    """JSON detail columns: a dict or ``None``."""
    if value is not None and not isinstance(value, dict):
        raise ValidationError(f"{key} must be a dict, got {type(value).__name__}", field=key)
    return value
