from __future__ import annotations

from datetime import date, datetime, time

from .errors import ValidationError
from .models import DayOfWeek


DATE_FORMAT = "%Y-%m-%d"
TIME_FORMATS = ("%H:%M", "%H:%M:%S")


def parse_date(value: object, field: str = "date") -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must be a date formatted as YYYY-MM-DD")
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT).date()
    except ValueError:
        raise ValidationError(f"{field} must be a date formatted as YYYY-MM-DD") from None


def parse_time(value: object, field: str = "time") -> time:
    if isinstance(value, time):
        return value.replace(tzinfo=None)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must be a time formatted as HH:MM")
    raw = value.strip()
    for time_format in TIME_FORMATS:
        try:
            return datetime.strptime(raw, time_format).time()
        except ValueError:
            continue
    raise ValidationError(f"{field} must be a time formatted as HH:MM")


def parse_optional_int(value: object, field: str) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer") from None


def format_time(value: time | None) -> str | None:
    if value is None:
        return None
    return value.strftime("%H:%M")


def format_date(value: date | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def parse_id_list(values: list[str], field: str) -> list[int]:
    """Accept repeated (``?x=1&x=2``) and comma separated (``?x=1,2``) ids."""

    ids: list[int] = []
    for value in values:
        for part in value.split(","):
            parsed = parse_optional_int(part.strip(), field)
            if parsed is not None:
                ids.append(parsed)
    return ids


def parse_bool(value: str | None, field: str) -> bool | None:
    if value is None or value == "":
        return None
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes"}:
        return True
    if lowered in {"0", "false", "no"}:
        return False
    raise ValidationError(f"{field} must be true or false")


def parse_days_of_week(values: list[str]) -> list[DayOfWeek]:
    days: list[DayOfWeek] = []
    for value in values:
        for part in value.split(","):
            part = part.strip().upper()
            if not part:
                continue
            try:
                days.append(DayOfWeek(part))
            except ValueError:
                raise ValidationError(f"Unknown day of week {part!r}") from None
    return days
