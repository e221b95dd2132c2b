"""Shared utility functions for services and blueprints.

utcnow:          timezone-aware "now" used for every server-assigned timestamp
ensure_utc:      normalise datetimes read back from SQLite (naive) to UTC
isoformat:       None-safe ISO-8601 rendering for to_dict() payloads
parse_datetime:  lenient ISO / DD.MM.YYYY parsing for request bodies
new_id:          prefixed, time-ordered unique identifiers
missing_fields:  names of required keys that are absent or blank
optional_text:   type check for free-text request fields
"""
import secrets
from datetime import date, datetime, time, timezone

from lotflow.core.exceptions import InvalidFieldError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value):
    """Attach UTC to naive datetimes.

    SQLite drops tzinfo even for ``DateTime(timezone=True)`` columns, so
    anything re-read from the store is compared only after passing
    through here.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat(value):
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value).isoformat()
    return value.isoformat()


def parse_datetime(value):
    """Parse a date/datetime string into an aware UTC datetime.

    Returns None for empty input. Raises ValueError for anything that is
    not YYYY-MM-DD, a full ISO-8601 timestamp (``Z`` suffix accepted) or
    DD.MM.YYYY.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        pass
    try:
        return datetime.strptime(text, "%d.%m.%Y").replace(tzinfo=timezone.utc)
    except ValueError as exc:
        raise ValueError(
            f"Invalid date {value!r}. Use ISO-8601 (YYYY-MM-DD[THH:MM:SS]) or DD.MM.YYYY."
        ) from exc


def new_id(prefix: str) -> str:
    """Return ``<PREFIX><UTC yyyymmddHHMMSSffffff><6 hex>``.

    The timestamp part keeps ids roughly sortable by creation time; the
    random suffix makes same-microsecond collisions practically impossible.
    """
    stamp = utcnow().strftime("%Y%m%d%H%M%S%f")
    return f"{prefix}{stamp}{secrets.token_hex(3).upper()}"


def missing_fields(data: dict, *names: str) -> list[str]:
    """Return the subset of *names* whose value in *data* is None or blank."""
    missing = []
    for name in names:
        value = data.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(name)
    return missing


def optional_text(field: str, value):
    """Return *value* if it is a string or None; InvalidFieldError otherwise."""
    if value is None or isinstance(value, str):
        return value
    raise InvalidFieldError(field, type(value).__name__)
