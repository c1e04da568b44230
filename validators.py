"""Helpers for turning request payload values into typed model values."""

from datetime import date, datetime

from errors import ValidationError


def require_fields(payload: dict, *fields: str) -> None:
    missing = [
        field
        for field in fields
        if payload.get(field) is None or (isinstance(payload.get(field), str) and not payload[field].strip())
    ]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")


def parse_int(value, field: str, minimum: int | None = None, maximum: int | None = None) -> int:
    """Coerce ``value`` to an int, rejecting booleans, floats with fractions and out-of-range values."""
    if value is None or isinstance(value, bool):
        raise ValidationError(f'{field} must be an integer')
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f'{field} must be an integer')
        value = int(value)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an integer') from None

    if minimum is not None and number < minimum:
        raise ValidationError(f'{field} must be at least {minimum}')
    if maximum is not None and number > maximum:
        raise ValidationError(f'{field} must be at most {maximum}')
    return number


def parse_optional_int(value, field: str, minimum: int | None = None, maximum: int | None = None) -> int | None:
    if value is None or value == '':
        return None
    return parse_int(value, field, minimum=minimum, maximum=maximum)


def parse_score(value, field: str) -> int:
    return parse_int(value, field, minimum=0)


def parse_date(value, field: str) -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    try:
        return datetime.strptime(str(value).strip(), '%Y-%m-%d').date()
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be a date in YYYY-MM-DD format') from None


def parse_datetime(value, field: str, tz=None) -> datetime:
    """Parse an ISO-8601 timestamp into a naive wall-clock datetime in ``tz``."""
    if isinstance(value, datetime):
        parsed = value
    else:
        raw = str(value or '').strip()
        if raw.endswith('Z'):
            raw = raw[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            raise ValidationError(f'{field} must be an ISO-8601 datetime') from None

    if parsed.tzinfo is not None:
        if tz is not None:
            parsed = parsed.astimezone(tz)
        parsed = parsed.replace(tzinfo=None)
    return parsed


def parse_choice(value, field: str, choices) -> str:
    normalized = str(value or '').strip().upper()
    if normalized not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")
    return normalized
