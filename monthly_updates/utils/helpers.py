"""Shared utility functions for blueprints and services.

parse_date:         returns None on bad input (lenient reads, query params)
parse_date_input:   raises ValidationError on bad input (request bodies)
parse_bool_arg:     "true"/"false" query-string flags
iso:                date/datetime → ISO string (None-safe)
require_int:        required integer id from a request body
"""
import logging
from datetime import date, datetime

from monthly_updates.core.exceptions import ValidationError

logger = logging.getLogger(__name__)


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY (European format)
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def parse_date_input(value, field: str = "date"):
    """Parse a date from a request body, raising ValidationError on bad input.

    Empty values (None, "") parse to None so clients can clear a date.
    """
    if value is None or value == "":
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(
            f"{field} must be a date (YYYY-MM-DD)",
            details={field: "invalid date"},
        )
    return parsed


def parse_bool_arg(value, default: bool = False) -> bool:
    """Interpret a query-string flag such as ``?force=true``."""
    if value is None:
        return default
    return str(value).strip().lower() in ("1", "true", "yes")


def iso(value):
    """Serialise a date/datetime for JSON responses."""
    return value.isoformat() if value else None


def require_int(data: dict, key: str) -> int:
    """Read a required integer id from a request body."""
    value = data.get(key)
    if isinstance(value, bool):
        value = None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} is required", details={key: "required integer"}) from None
