"""Date helpers shared by services and serializers."""
from datetime import date, datetime, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return utcnow().date()


def parse_date(value, field='date'):
    """Parse an ISO date (``YYYY-MM-DD``); ``None``/empty passes through."""
    from app.exceptions import ValidationError

    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f'Invalid date for {field}: {value!r}', field=field)


def isoformat(value):
    """ISO string for dates/datetimes, ``None`` stays ``None``."""
    return value.isoformat() if value is not None else None
