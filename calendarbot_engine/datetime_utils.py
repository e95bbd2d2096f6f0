"""DateTime helpers for the calendar engine.

All instants handled by the engine are timezone-aware. Naive values coming
from callers are interpreted in the configured calendar timezone, never in
the process-local one.
"""

import logging
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from typing import Any, Optional

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

# Last representable instant of a day at millisecond precision
END_OF_DAY_TIME = time(23, 59, 59, 999000)


def ensure_timezone_aware(dt: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Ensure datetime is timezone-aware.

    Args:
        dt: Datetime to make timezone-aware
        tz: Zone to attach to naive values (UTC when not given)

    Returns:
        Timezone-aware datetime
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz or UTC)
    return dt


def parse_instant(value: Any, tz: Optional[tzinfo] = None) -> datetime:
    """Parse an instant from a datetime, date or ISO 8601 string.

    Accepts both extended (``2025-01-08T09:00:00.000Z``) and basic
    (``20250108T090000Z``) ISO forms. Dates become midnight in ``tz``.

    Raises:
        ValueError: If the value cannot be interpreted as an instant
    """
    if isinstance(value, datetime):
        return ensure_timezone_aware(value, tz)
    if isinstance(value, date):
        return datetime.combine(value, time(0, 0), tzinfo=tz or UTC)
    if isinstance(value, str):
        try:
            parsed = date_parser.isoparse(value.strip())
        except (ValueError, OverflowError) as e:
            raise ValueError(f"Unable to parse instant: {value!r}") from e
        return ensure_timezone_aware(parsed, tz)
    raise ValueError(f"Unsupported instant value: {value!r}")


def format_instant(dt: datetime) -> str:
    """Format an instant as a UTC ISO string with millisecond precision.

    This is the storage form of EXDATE and RECURRENCE-ID values, e.g.
    ``2025-01-08T09:00:00.000Z``.
    """
    utc_dt = ensure_timezone_aware(dt).astimezone(UTC)
    return utc_dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def same_instant(a: Any, b: Any) -> bool:
    """Compare two instant values for exact equality, ignoring representation."""
    try:
        return parse_instant(a) == parse_instant(b)
    except ValueError:
        return False


def duration_between(start: datetime, end: datetime) -> timedelta:
    """Elapsed time between two instants.

    Both values are converted to UTC first: Python subtracts wall-clock times
    when the operands share a tzinfo, which is wrong across DST changes.
    """
    return ensure_timezone_aware(end).astimezone(UTC) - ensure_timezone_aware(start).astimezone(UTC)


def add_duration(dt: datetime, delta: timedelta) -> datetime:
    """Add elapsed time to an instant, keeping the original timezone."""
    aware = ensure_timezone_aware(dt)
    return (aware.astimezone(UTC) + delta).astimezone(aware.tzinfo)


def truncate_to_seconds(delta: timedelta) -> timedelta:
    """Drop the sub-second part of a duration (truncating toward zero)."""
    return timedelta(seconds=int(delta.total_seconds()))


def start_of_day(dt: datetime) -> datetime:
    """Midnight of the wall-clock day containing ``dt``."""
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(dt: datetime) -> datetime:
    """Last millisecond of the wall-clock day containing ``dt``."""
    return datetime.combine(dt.date(), END_OF_DAY_TIME, tzinfo=dt.tzinfo)


def is_start_of_day(dt: datetime) -> bool:
    return dt == start_of_day(dt)


def to_floating(dt: datetime, tz: tzinfo) -> datetime:
    """Convert an instant to naive wall-clock time in ``tz``.

    Recurrence rules are evaluated on these "floating" values so that a rule
    like every Wednesday 09:00 refers to the local Wednesday, whatever the
    UTC date is.
    """
    return ensure_timezone_aware(dt).astimezone(tz).replace(tzinfo=None)


def from_floating(naive: datetime, tz: tzinfo) -> datetime:
    """Attach ``tz`` to a floating wall-clock value."""
    return naive.replace(tzinfo=tz)


def coerce_window_bound(value: Any, tz: tzinfo, *, end: bool = False) -> datetime:
    """Turn a query window bound into an aware datetime.

    Plain dates cover the whole day: a start bound becomes midnight and an end
    bound becomes the last millisecond of that day.
    """
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, END_OF_DAY_TIME if end else time(0, 0), tzinfo=tz)
    return parse_instant(value, tz)


def intervals_intersect(
    start: datetime, end: datetime, window_start: datetime, window_end: datetime
) -> bool:
    """Check whether [start, end] touches [window_start, window_end].

    True when the event starts in the window, ends in the window, or spans
    it. Boundaries are inclusive.
    """
    starts_in_range = window_start <= start <= window_end
    ends_in_range = window_start <= end <= window_end
    spans_range = start < window_start and end > window_end
    return starts_in_range or ends_in_range or spans_range
