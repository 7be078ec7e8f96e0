"""
Timestamp helpers.

Stored timestamps are fixed-width UTC strings so that comparing the text
columns in SQL orders them chronologically. External timestamps use the
shorter RFC3339 form.
"""

import re
from datetime import UTC, datetime

from reminder_queue.errors import validation_error

# RFC3339 date-time: full date, "T", full time, required offset
RFC3339_PATTERN = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})[Tt]"
    r"(?P<time>\d{2}:\d{2}:\d{2})(?:\.(?P<fraction>\d+))?"
    r"(?P<offset>[Zz]|[+-]\d{2}:\d{2})$"
)


def parse_timestamp(value: object, field: str) -> datetime:
    """
    Parse an RFC3339 string into an aware UTC datetime.

    Basic ISO-8601 forms (``20240101T110000Z``) and a space separator are
    rejected. Fractions finer than a microsecond are truncated.

    Raises:
        ReminderServiceError: VALIDATION kind naming ``field`` when the value
            is not a string, is malformed, or carries no UTC offset.
    """
    if not isinstance(value, str) or not value.strip():
        raise validation_error(
            f"Invalid '{field}': expected an RFC3339 timestamp string", field=field
        )

    match = RFC3339_PATTERN.match(value.strip())
    if match is None:
        raise validation_error(
            f"Invalid '{field}' format: {value}. Expected RFC3339 with a 'Z' or '+HH:MM' offset.",
            field=field,
        )

    offset = match["offset"].upper()
    normalized = f"{match['date']}T{match['time']}"
    if match["fraction"]:
        normalized += "." + match["fraction"][:6].ljust(6, "0")
    normalized += "+00:00" if offset == "Z" else offset

    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError as e:
        raise validation_error(
            f"Invalid '{field}' format: {value}. Expected RFC3339 with a 'Z' or '+HH:MM' offset.",
            field=field,
        ) from e

    return parsed.astimezone(UTC)


def ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        raise ValueError("naive datetime; timestamps must be timezone-aware")
    return dt.astimezone(UTC)


def to_storage(dt: datetime) -> str:
    """Render ``dt`` as a fixed-width UTC string for persistence."""
    # isoformat zero-pads the year, strftime("%Y") does not on every platform
    return ensure_utc(dt).replace(tzinfo=None).isoformat(timespec="microseconds") + "Z"


def from_storage(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value).astimezone(UTC)


def to_rfc3339(dt: datetime) -> str:
    """Render ``dt`` in external form, e.g. ``2024-01-02T12:00:00Z``."""
    dt = ensure_utc(dt)
    if dt.microsecond == 0:
        timespec = "seconds"
    elif dt.microsecond % 1000 == 0:
        timespec = "milliseconds"
    else:
        timespec = "microseconds"
    return dt.replace(tzinfo=None).isoformat(timespec=timespec) + "Z"
