"""
Input validation functions for performance requests.

All validators raise ValidationError (or InvalidDateError for dates) on
invalid input, before any request reaches the Graph API.
"""

import re
from datetime import date
from typing import Iterable, List, Optional, Tuple, Union

from adsperf import dates
from adsperf.config import config
from adsperf.exceptions import InvalidDateError, ValidationError


# time_increment values accepted by the insights endpoint for each granularity
GRANULARITY_INCREMENTS = {
    "day": 1,
    "week": 7,
    "month": 30,
}

MAX_FIELDS = 50

_FIELD_RE = re.compile(r"^[a-z0-9_.]+$")
_GRAPH_ID_RE = re.compile(r"^(act_)?\d+$")


def validate_date_string(value: str, field: str = "date") -> date:
    """
    Validate a canonical date string and parse it.

    Args:
        value: Date string to validate (YYYY-MM-DD)
        field: Field name for error messages

    Returns:
        Parsed date object

    Raises:
        InvalidDateError: If date is missing, not a string, or not a real day
    """
    if not value:
        raise InvalidDateError("Date is required", value, field=field)

    if not isinstance(value, str):
        raise InvalidDateError("Must be a string", value, field=field)

    if not dates.is_valid_format(value):
        raise InvalidDateError(
            "Invalid date format. Expected YYYY-MM-DD",
            value,
            field=field,
        )

    return dates.to_date(value)


def validate_date_range(
    start_date: str,
    end_date: str,
    max_days: Optional[int] = None
) -> Tuple[date, date]:
    """
    Validate a date range.

    Args:
        start_date: Start date string (YYYY-MM-DD)
        end_date: End date string (YYYY-MM-DD)
        max_days: Maximum allowed span in days (defaults to config, 366)

    Returns:
        Tuple of (start_date, end_date) as date objects

    Raises:
        InvalidDateError: If dates are invalid, out of order, or too far apart
    """
    if max_days is None:
        max_days = config.performance.max_range_days

    start = validate_date_string(start_date, "start_date")
    end = validate_date_string(end_date, "end_date")

    if start > end:
        raise InvalidDateError(
            "Start date must be before or equal to end date",
            f"{start_date} to {end_date}",
            field="date_range",
        )

    days_diff = (end - start).days
    if days_diff > max_days:
        raise InvalidDateError(
            f"Date range cannot exceed {max_days} days",
            f"{days_diff} days",
            field="date_range",
        )

    return start, end


def validate_account_id(
    value: Optional[str],
    field: str = "account_id",
    allow_none: bool = True
) -> Optional[str]:
    """
    Validate an ad account ID.

    Accepts the bare numeric ID or the ``act_`` prefixed Graph form.

    Returns:
        Stripped account ID or None
    """
    if value is None or value == "":
        if allow_none:
            return None
        raise ValidationError(field, "Account ID is required")

    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)

    if not isinstance(value, str):
        raise ValidationError(field, "Must be a string", value)

    value = value.strip()

    if not _GRAPH_ID_RE.match(value):
        raise ValidationError(field, "Must be numeric, optionally prefixed with 'act_'", value)

    return value


def validate_entity_id(value: Optional[str], field: str = "entity_id") -> str:
    """Validate a Graph object ID (campaign, ad set, ad, or account)."""
    if value is None or value == "":
        raise ValidationError(field, "Entity ID is required")

    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)

    if not isinstance(value, str) or not _GRAPH_ID_RE.match(value.strip()):
        raise ValidationError(field, "Must be a numeric Graph object ID", value)

    return value.strip()


def validate_granularity(
    value: Union[str, int, None],
    field: str = "increment"
) -> int:
    """
    Validate a time granularity and return the matching time_increment.

    Accepts "day", "week", "month" or the numeric increments 1, 7, 30.
    None means daily.
    """
    if value is None or value == "":
        return GRANULARITY_INCREMENTS["day"]

    if isinstance(value, bool):
        raise ValidationError(field, "Must be a granularity name or increment", value)

    if isinstance(value, int):
        if value in GRANULARITY_INCREMENTS.values():
            return value
        raise ValidationError(
            field,
            f"Must be one of {sorted(GRANULARITY_INCREMENTS.values())}",
            value
        )

    if not isinstance(value, str):
        raise ValidationError(field, "Must be a string", value)

    key = value.lower().strip()
    if key not in GRANULARITY_INCREMENTS:
        raise ValidationError(
            field,
            f"Must be one of: {', '.join(GRANULARITY_INCREMENTS)}",
            value
        )

    return GRANULARITY_INCREMENTS[key]


def validate_fields(values: Iterable[str], field: str = "fields") -> List[str]:
    """
    Validate an insights field list.

    Returns:
        De-duplicated list preserving the original order
    """
    if isinstance(values, str):
        values = values.split(",")

    result: List[str] = []
    for raw in values:
        if not isinstance(raw, str):
            raise ValidationError(field, "Field names must be strings", raw)
        name = raw.strip()
        if not name:
            continue
        if not _FIELD_RE.match(name):
            raise ValidationError(field, "Contains invalid characters", name)
        if name not in result:
            result.append(name)

    if not result:
        raise ValidationError(field, "At least one field is required")

    if len(result) > MAX_FIELDS:
        raise ValidationError(field, f"Cannot request more than {MAX_FIELDS} fields", len(result))

    return result
