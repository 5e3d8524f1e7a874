import enum
from datetime import date, datetime
from decimal import Decimal


def iso(value):
    """UTC timestamp as ISO-8601 with a trailing Z, or None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat() + "Z"
    return value.isoformat()


def json_value(value):
    if isinstance(value, datetime):
        return iso(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, enum.Enum):
        return value.value
    return value


def model_to_dict(obj, exclude=(), extra=None):
    """Serialize every mapped column of ``obj`` into JSON-safe values."""
    data = {
        column.name: json_value(getattr(obj, column.name))
        for column in obj.__table__.columns
        if column.name not in exclude
    }
    if extra:
        data.update(extra)
    return data


def user_summary(user):
    if user is None:
        return None
    return {
        "id": user.id,
        "username": user.username,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "full_name": user.full_name,
        "role": user.role,
    }


def page_args(args, default_per_page=50, max_per_page=500):
    """Read ``page``/``per_page`` query args, clamped to sane values."""
    try:
        page = max(int(args.get("page", 1)), 1)
    except (TypeError, ValueError):
        page = 1
    try:
        per_page = int(args.get("per_page", default_per_page))
    except (TypeError, ValueError):
        per_page = default_per_page
    return page, min(max(per_page, 1), max_per_page)
