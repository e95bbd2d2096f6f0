"""RRULE string and structure conversion for the calendar engine.

Parsing and serialization go through icalendar's ``vRecur`` so the stored
strings follow the same canonical RFC 5545 layout the rest of the
calendarbot stack emits. Expansion itself is left to ``dateutil.rrule``;
``to_dateutil_kwargs`` builds the arguments for it.
"""

import logging
import re
from datetime import UTC, date, datetime, time, tzinfo
from typing import Any, Optional, Union

from dateutil import rrule as du_rrule
from icalendar.prop import vDate, vDatetime, vRecur

from .datetime_utils import END_OF_DAY_TIME, ensure_timezone_aware, to_floating
from .exceptions import InvalidRuleError
from .models import LegacyRecurrence, RecurrenceRule

logger = logging.getLogger(__name__)

FREQUENCIES = {
    "YEARLY": du_rrule.YEARLY,
    "MONTHLY": du_rrule.MONTHLY,
    "WEEKLY": du_rrule.WEEKLY,
    "DAILY": du_rrule.DAILY,
    "HOURLY": du_rrule.HOURLY,
    "MINUTELY": du_rrule.MINUTELY,
    "SECONDLY": du_rrule.SECONDLY,
}

WEEKDAYS = {
    "MO": du_rrule.MO,
    "TU": du_rrule.TU,
    "WE": du_rrule.WE,
    "TH": du_rrule.TH,
    "FR": du_rrule.FR,
    "SA": du_rrule.SA,
    "SU": du_rrule.SU,
}

# BYDAY entry with optional ordinal, e.g. "MO", "1MO", "-1FR", "+2TU"
_BYDAY_PATTERN = re.compile(r"^(?P<ordinal>[+-]?\d{1,2})?(?P<day>MO|TU|WE|TH|FR|SA|SU)$")

# TZID parameter of a DTSTART line, e.g. "DTSTART;TZID=Europe/Berlin:..."
_TZID_PATTERN = re.compile(r"TZID=([^;:]+)", re.IGNORECASE)

_FREQ_UNITS = {
    "YEARLY": ("Yearly", "year"),
    "MONTHLY": ("Monthly", "month"),
    "WEEKLY": ("Weekly", "week"),
    "DAILY": ("Daily", "day"),
    "HOURLY": ("Hourly", "hour"),
    "MINUTELY": ("Every minute", "minute"),
    "SECONDLY": ("Every second", "second"),
}

AnyRule = Union[RecurrenceRule, LegacyRecurrence]


def as_rrule(rule: AnyRule) -> RecurrenceRule:
    """Return the structured RRULE for either rule variant."""
    if isinstance(rule, LegacyRecurrence):
        return rule.to_rrule()
    return rule


def validate_rule(rule: AnyRule) -> RecurrenceRule:
    """Check that a rule can be expanded and return it in RRULE form.

    Args:
        rule: Rule of either variant

    Returns:
        The equivalent RecurrenceRule

    Raises:
        InvalidRuleError: If FREQ is missing or unknown, INTERVAL or COUNT is
            not positive, COUNT and UNTIL are combined, or a BYDAY/WKST entry
            is not a weekday
    """
    if rule is None:
        raise InvalidRuleError("Recurrence rule is missing")

    rrule = as_rrule(rule)

    if not rrule.freq:
        raise InvalidRuleError("Recurrence rule has no FREQ", rrule)
    if rrule.freq not in FREQUENCIES:
        raise InvalidRuleError(f"Unsupported recurrence frequency: {rrule.freq}", rrule.freq)
    if rrule.interval < 1:
        raise InvalidRuleError(
            f"Recurrence INTERVAL must be positive, got {rrule.interval}", rrule.interval
        )
    if rrule.count is not None and rrule.count < 1:
        raise InvalidRuleError(f"Recurrence COUNT must be positive, got {rrule.count}", rrule.count)
    if rrule.count is not None and rrule.until is not None:
        raise InvalidRuleError("Recurrence rule cannot set both COUNT and UNTIL", rrule)

    for entry in rrule.byweekday or []:
        if not _BYDAY_PATTERN.match(entry):
            raise InvalidRuleError(f"Invalid BYDAY entry: {entry!r}", entry)
    if rrule.wkst is not None and rrule.wkst not in WEEKDAYS:
        raise InvalidRuleError(f"Invalid WKST value: {rrule.wkst!r}", rrule.wkst)

    return rrule


def _first(values: Any) -> Any:
    if isinstance(values, (list, tuple)):
        return values[0] if values else None
    return values


def _as_list(values: Any) -> list[Any]:
    if values is None:
        return []
    if isinstance(values, (list, tuple)):
        return list(values)
    return [values]


def _as_int(value: Any) -> int:
    # BYMONTH values may carry a leap-month suffix ("5L") in RSCALE rules
    return int(str(value).strip().rstrip("Ll"))


def _parse_until(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, date):
        return datetime.combine(value, END_OF_DAY_TIME, tzinfo=UTC)
    raise InvalidRuleError(f"Invalid UNTIL value: {value!r}", value)


def _split_rule_text(text: str) -> tuple[str, Optional[str]]:
    """Split rule text into the RRULE body (prefix stripped) and a DTSTART line."""
    lines = [line.strip() for line in text.replace("\r", "\n").split("\n") if line.strip()]
    dtstart_lines = [line for line in lines if line.upper().startswith("DTSTART")]
    rule_lines = [line for line in lines if not line.upper().startswith("DTSTART")]
    if not rule_lines:
        raise InvalidRuleError("Empty RRULE string", text)
    if len(rule_lines) > 1:
        logger.debug("Multiple RRULE lines found, using the first: %r", rule_lines)
    rule_text = rule_lines[0]
    if rule_text.upper().startswith("RRULE:"):
        rule_text = rule_text[len("RRULE:") :]
    return rule_text, dtstart_lines[0] if dtstart_lines else None


def _parse_dtstart(line: str) -> datetime:
    """Parse a ``DTSTART[;TZID=...][;VALUE=DATE]:value`` line."""
    head, _, value = line.partition(":")
    tzid = _TZID_PATTERN.search(head)
    try:
        if len(value.strip()) == 8:
            return datetime.combine(vDate.from_ical(value.strip()), time(0, 0), tzinfo=UTC)
        return vDatetime.from_ical(value.strip(), timezone=tzid.group(1) if tzid else None)
    except ValueError as e:
        raise InvalidRuleError(f"Invalid DTSTART: {line!r}", line) from e


def parse_rrule(text: str) -> RecurrenceRule:
    """Parse an RRULE string into a RecurrenceRule.

    Args:
        text: RRULE string, with or without the ``RRULE:`` prefix
            (e.g. "FREQ=WEEKLY;INTERVAL=1;BYDAY=MO,WE,FR")

    Returns:
        Parsed RecurrenceRule

    Raises:
        InvalidRuleError: If the string is empty or not a valid RRULE
    """
    if not text or not text.strip():
        raise InvalidRuleError("Empty RRULE string", text)

    rule_text, dtstart_line = _split_rule_text(text)
    dtstart = _parse_dtstart(dtstart_line) if dtstart_line else None
    try:
        parsed = vRecur.from_ical(rule_text)
    except ValueError as e:
        raise InvalidRuleError(f"Invalid RRULE format: {text}", text) from e

    parts = {str(key).upper(): value for key, value in parsed.items()}
    if "FREQ" not in parts:
        raise InvalidRuleError("RRULE missing required FREQ parameter", text)

    try:
        until = _first(parts.get("UNTIL"))
        return RecurrenceRule(
            freq=str(_first(parts["FREQ"])),
            interval=_as_int(_first(parts["INTERVAL"])) if "INTERVAL" in parts else 1,
            count=_as_int(_first(parts["COUNT"])) if "COUNT" in parts else None,
            until=_parse_until(until) if until is not None else None,
            byweekday=[str(day) for day in _as_list(parts.get("BYDAY"))] or None,
            bymonthday=[_as_int(v) for v in _as_list(parts.get("BYMONTHDAY"))] or None,
            bymonth=[_as_int(v) for v in _as_list(parts.get("BYMONTH"))] or None,
            bysetpos=[_as_int(v) for v in _as_list(parts.get("BYSETPOS"))] or None,
            wkst=str(_first(parts["WKST"])) if "WKST" in parts else None,
            dtstart=dtstart,
        )
    except (TypeError, ValueError) as e:
        raise InvalidRuleError(f"Invalid RRULE value in: {text}", text) from e


def format_rrule(rule: AnyRule) -> str:
    """Serialize a rule to its canonical RRULE string.

    INTERVAL is omitted when it is 1 and UNTIL is always written in UTC. A
    rule with ``dtstart`` is written as a ``DTSTART:...Z`` line followed by
    ``RRULE:...``; without one, the bare ``FREQ=...`` body is returned.

    The text form has whole-second precision: sub-second parts of UNTIL and
    DTSTART are dropped. UNTIL is inclusive, so ``23:59:59.999`` written as
    ``23:59:59`` still keeps every occurrence starting on a whole second.
    """
    rrule = as_rrule(rule)
    if not rrule.freq:
        raise InvalidRuleError("Cannot format a rule without FREQ", rrule)

    parts: dict[str, Any] = {"FREQ": rrule.freq}
    if rrule.until is not None:
        parts["UNTIL"] = rrule.until.astimezone(UTC).replace(microsecond=0)
    if rrule.count is not None:
        parts["COUNT"] = rrule.count
    if rrule.interval != 1:
        parts["INTERVAL"] = rrule.interval
    if rrule.byweekday:
        parts["BYDAY"] = list(rrule.byweekday)
    if rrule.bymonthday:
        parts["BYMONTHDAY"] = list(rrule.bymonthday)
    if rrule.bymonth:
        parts["BYMONTH"] = list(rrule.bymonth)
    if rrule.bysetpos:
        parts["BYSETPOS"] = list(rrule.bysetpos)
    if rrule.wkst:
        parts["WKST"] = rrule.wkst

    try:
        body = vRecur(parts).to_ical().decode("utf-8")
    except ValueError as e:
        raise InvalidRuleError(f"Cannot format recurrence rule: {e}", rrule) from e

    if rrule.dtstart is None:
        return body
    dtstart = ensure_timezone_aware(rrule.dtstart).astimezone(UTC).replace(microsecond=0)
    return f"DTSTART:{vDatetime(dtstart).to_ical().decode('utf-8')}\nRRULE:{body}"


def _to_dateutil_weekday(entry: str) -> Any:
    match = _BYDAY_PATTERN.match(entry)
    if match is None:
        raise InvalidRuleError(f"Invalid BYDAY entry: {entry!r}", entry)
    weekday = WEEKDAYS[match.group("day")]
    ordinal = match.group("ordinal")
    return weekday(int(ordinal)) if ordinal else weekday


def to_dateutil_kwargs(rule: AnyRule, dtstart: datetime, tz: tzinfo) -> dict[str, Any]:
    """Build ``dateutil.rrule.rrule`` arguments for floating-time evaluation.

    Args:
        rule: Rule of either variant (validated here)
        dtstart: Naive wall-clock anchor in ``tz``
        tz: Zone the floating values are interpreted in; UNTIL is converted
            to it so both bounds are naive

    Returns:
        Keyword arguments including ``freq`` and ``dtstart``
    """
    rrule = validate_rule(rule)

    kwargs: dict[str, Any] = {
        "freq": FREQUENCIES[rrule.freq],
        "dtstart": dtstart,
        "interval": rrule.interval,
    }
    if rrule.count is not None:
        kwargs["count"] = rrule.count
    if rrule.until is not None:
        kwargs["until"] = to_floating(rrule.until, tz)
    if rrule.byweekday:
        kwargs["byweekday"] = [_to_dateutil_weekday(day) for day in rrule.byweekday]
    if rrule.bymonthday:
        kwargs["bymonthday"] = list(rrule.bymonthday)
    if rrule.bymonth:
        kwargs["bymonth"] = list(rrule.bymonth)
    if rrule.bysetpos:
        kwargs["bysetpos"] = list(rrule.bysetpos)
    if rrule.wkst:
        kwargs["wkst"] = WEEKDAYS[rrule.wkst]
    return kwargs


def describe_rule(rule: AnyRule) -> str:
    """Human-readable summary of a rule.

    Examples:
        "Weekly on MO, WE, FR, 3 times"
        "Every 2 days, until Jan 31, 2025"
    """
    rrule = validate_rule(rule)
    label, unit = _FREQ_UNITS[rrule.freq]

    text = label if rrule.interval == 1 else f"Every {rrule.interval} {unit}s"
    if rrule.byweekday:
        text += " on " + ", ".join(rrule.byweekday)
    if rrule.bymonthday:
        text += " on day " + ", ".join(str(day) for day in rrule.bymonthday)
    if rrule.count is not None:
        text += ", once" if rrule.count == 1 else f", {rrule.count} times"
    elif rrule.until is not None:
        until = rrule.until
        text += f", until {until:%b} {until.day}, {until.year}"
    return text
