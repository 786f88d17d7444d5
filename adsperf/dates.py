"""
Date normalization for Meta Ads data.

Every date that enters or leaves the pipeline goes through this module so the
whole application agrees on one representation: a ``YYYY-MM-DD`` string for
the UTC calendar day. REFERENCE_TIMEZONE only decides what "today" is. When a time
of day has to be synthesized, noon is used so that a later conversion to
another offset cannot move the value onto a neighbouring day.

Invalid input raises InvalidDateError, a ValidationError subclass, so callers
can reject the request or substitute a default.
"""
import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Iterator, Optional, Union
from zoneinfo import ZoneInfo

from adsperf.config import config
from adsperf.exceptions import InvalidDateError
from adsperf.observability import get_logger

logger = get_logger(__name__)

CANONICAL_FORMAT = "%Y-%m-%d"
DEFAULT_TIME = "T12:00:00Z"

_CANONICAL_RE = re.compile(r"\d{4}-\d{2}-\d{2}")
_COMPACT_OFFSET_RE = re.compile(r"([+-]\d{2})(\d{2})$")

DateLike = Union[str, date, datetime, int, float]


def reference_timezone() -> ZoneInfo:
    """Timezone that decides the current day."""
    return ZoneInfo(config.performance.reference_timezone)


def is_valid_format(value: Any) -> bool:
    """
    Check that value is a canonical date string naming a real calendar day.

    ``2024-02-29`` is valid, ``2023-02-29`` and ``2024-3-5`` are not.
    """
    if not isinstance(value, str) or not _CANONICAL_RE.fullmatch(value):
        return False
    try:
        datetime.strptime(value, CANONICAL_FORMAT)
    except ValueError:
        return False
    return True


def validate_range(start: Any, end: Any) -> bool:
    """True when both dates are canonical and start is not after end."""
    if not is_valid_format(start) or not is_valid_format(end):
        return False
    return start <= end


def format_date(value: date) -> str:
    """Format a date object as a canonical string."""
    return value.strftime(CANONICAL_FORMAT)


def _from_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return format_date(value.astimezone(timezone.utc).date())


def _from_timestamp(value: Union[int, float]) -> str:
    # Epoch milliseconds, as produced by JavaScript clients
    try:
        moment = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as e:
        raise InvalidDateError("Timestamp out of range", value) from e
    return _from_datetime(moment)


def _from_string(value: str) -> str:
    text = value.strip()

    if _CANONICAL_RE.fullmatch(text):
        if not is_valid_format(text):
            raise InvalidDateError("Not a valid calendar date", value)
        return text

    candidate = text
    if candidate[-1:] in ("Z", "z"):
        candidate = candidate[:-1] + "+00:00"
    # Graph API timestamps use +0000 offsets
    candidate = _COMPACT_OFFSET_RE.sub(r"\1:\2", candidate)

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as e:
        raise InvalidDateError(
            "Invalid date format. Expected YYYY-MM-DD or an ISO-8601 timestamp",
            value,
        ) from e
    return _from_datetime(parsed)


def normalize(value: DateLike) -> str:
    """
    Convert any supported date representation to a canonical date string.

    Accepts:
        - canonical strings (returned unchanged once validated)
        - ISO-8601 strings, with or without time and offset
        - datetime (naive values are taken as UTC) and date objects
        - epoch timestamps in milliseconds

    Raises:
        InvalidDateError: If the value cannot be read as a real date
    """
    if value is None or value == "":
        raise InvalidDateError("Date is required", value)

    # bool is an int subclass; True is not a timestamp
    if isinstance(value, bool):
        raise InvalidDateError("Unsupported date type bool", value)

    if isinstance(value, datetime):
        return _from_datetime(value)
    if isinstance(value, date):
        return format_date(value)
    if isinstance(value, (int, float)):
        return _from_timestamp(value)
    if isinstance(value, str):
        return _from_string(value)

    raise InvalidDateError(f"Unsupported date type {type(value).__name__}", value)


def try_normalize(value: Any) -> Optional[str]:
    """Like normalize(), but returns None for invalid input."""
    try:
        return normalize(value)
    except InvalidDateError:
        return None


def to_date(value: DateLike) -> date:
    """Normalize value and return it as a date object."""
    return datetime.strptime(normalize(value), CANONICAL_FORMAT).date()


def add_default_time(value: DateLike) -> str:
    """Append the noon UTC reference time: ``2024-03-05`` -> ``2024-03-05T12:00:00Z``."""
    return f"{normalize(value)}{DEFAULT_TIME}"


def today(now: Optional[datetime] = None) -> str:
    """Current canonical date in the reference timezone."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return format_date(now.astimezone(reference_timezone()).date())


def shift_days(value: DateLike, days: int) -> str:
    """Move a date by a number of days (negative goes back)."""
    return format_date(to_date(value) + timedelta(days=days))


def days_between(start: DateLike, end: DateLike) -> int:
    """Whole days from start to end (0 for the same day)."""
    return (to_date(end) - to_date(start)).days


def iter_days(start: DateLike, end: DateLike) -> Iterator[str]:
    """Yield every canonical date from start to end inclusive."""
    current = to_date(start)
    last = to_date(end)
    while current <= last:
        yield format_date(current)
        current += timedelta(days=1)


def prepare_time_range(start: DateLike, end: DateLike) -> Dict[str, str]:
    """Build the ``{"since", "until"}`` object the insights endpoint expects."""
    return {"since": normalize(start), "until": normalize(end)}


def normalize_entity_dates(obj: Dict[str, Any], fields: Iterable[str]) -> Dict[str, Any]:
    """
    Return a copy of obj with the named date fields normalized.

    Fields that are missing or empty are left alone; fields that cannot be
    parsed keep their original value and are logged.
    """
    result = dict(obj)
    for name in fields:
        raw = result.get(name)
        if raw in (None, ""):
            continue
        normalized = try_normalize(raw)
        if normalized is None:
            logger.warning(
                f"Could not normalize date field {name}",
                extra={"field": name, "value": raw}
            )
            continue
        result[name] = normalized
    return result
