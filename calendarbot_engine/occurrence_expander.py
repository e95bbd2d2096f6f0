"""Occurrence expansion for recurring series."""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from dateutil.rrule import rrule

from .config_loader import CalendarConfig
from .datetime_utils import (
    add_duration,
    coerce_window_bound,
    ensure_timezone_aware,
    format_instant,
    from_floating,
    intervals_intersect,
    parse_instant,
    same_instant,
    to_floating,
)
from .exceptions import InvalidRuleError
from .models import CalendarEvent
from .rrule_codec import to_dateutil_kwargs, validate_rule

logger = logging.getLogger(__name__)

# Slack on the floating search start so occurrences around a DST fold are not missed
_FOLD_SLACK = timedelta(hours=1)


def occurrence_id(base_id: Any, occurrence_start: datetime) -> str:
    """Id of a generated occurrence, stable across query windows."""
    return f"{base_id}_{format_instant(occurrence_start)}"


class OccurrenceExpander:
    """Expands a series base into the occurrences visible in a window.

    Rules are evaluated in floating time: the anchor is converted to naive
    wall-clock time in the calendar zone (``config.timezone``), dateutil
    generates naive instants, and the zone is re-attached afterwards. A
    weekly 09:00 meeting therefore stays at 09:00 local time across DST
    changes, and BYDAY is matched against local weekdays even for events
    stored in UTC.
    """

    def __init__(self, config: Optional[CalendarConfig] = None):
        self.config = config or CalendarConfig()

    def _anchor(self, series_base: CalendarEvent) -> datetime:
        tz = self.config.tzinfo
        start = ensure_timezone_aware(series_base.start, tz).astimezone(tz)
        rule = series_base.rrule
        dtstart = getattr(rule, "dtstart", None)
        if dtstart is not None and not same_instant(dtstart, start):
            logger.debug(
                "Rule dtstart %s differs from series start %s for %s; anchoring on start",
                dtstart,
                start,
                series_base.id,
            )
        return start

    def _excluded_instants(self, series_base: CalendarEvent) -> set[datetime]:
        excluded = set()
        for value in series_base.exdates:
            try:
                excluded.add(parse_instant(value))
            except ValueError as e:
                logger.warning("Failed to parse EXDATE %r on %s: %s", value, series_base.id, e)
        return excluded

    def _build_rrule(self, series_base: CalendarEvent, anchor: datetime) -> rrule:
        if series_base.rrule is None:
            raise InvalidRuleError(f"Event {series_base.id} has no recurrence rule", series_base.id)
        tz = anchor.tzinfo
        kwargs = to_dateutil_kwargs(series_base.rrule, to_floating(anchor, tz), tz)
        try:
            return rrule(**kwargs)
        except (TypeError, ValueError) as e:
            raise InvalidRuleError(f"Invalid recurrence rule on {series_base.id}: {e}", series_base.rrule) from e

    def expand(
        self, series_base: CalendarEvent, window_start: Any, window_end: Any
    ) -> list[CalendarEvent]:
        """Expand a series base into occurrences intersecting a window.

        Args:
            series_base: Stored record carrying the recurrence rule
            window_start: Window start (datetime, date or ISO string)
            window_end: Window end, inclusive; a plain date covers the whole day

        Returns:
            Occurrences in ascending start order, excluded instants removed.
            Occurrences starting before the window but still running inside it
            are included.

        Raises:
            InvalidRuleError: If the rule is missing or malformed
        """
        validate_rule(series_base.rrule)

        tz = self.config.tzinfo
        start_bound = coerce_window_bound(window_start, tz)
        end_bound = coerce_window_bound(window_end, tz, end=True)

        anchor = self._anchor(series_base)
        series_tz = anchor.tzinfo
        duration = series_base.duration
        uid = series_base.resolved_uid(self.config.uid_namespace)
        excluded = self._excluded_instants(series_base)

        # Widen backwards by the duration to catch occurrences spanning into the window
        search_start = to_floating(start_bound - max(duration, timedelta(0)), series_tz) - _FOLD_SLACK

        logger.debug(
            "Expanding %s (%s) over [%s, %s]", series_base.id, uid, start_bound, end_bound
        )

        occurrences: list[CalendarEvent] = []
        for naive_start in self._build_rrule(series_base, anchor).xafter(search_start, inc=True):
            occurrence_start = from_floating(naive_start, series_tz)
            if occurrence_start > end_bound:
                break
            if occurrence_start in excluded:
                continue

            occurrence_end = add_duration(occurrence_start, duration)
            if not intervals_intersect(occurrence_start, occurrence_end, start_bound, end_bound):
                continue

            if len(occurrences) >= self.config.max_occurrences:
                logger.warning(
                    "Expansion of %s reached max_occurrences=%d; truncating",
                    series_base.id,
                    self.config.max_occurrences,
                )
                break

            occurrences.append(
                series_base.model_copy(
                    update={
                        "id": occurrence_id(series_base.id, occurrence_start),
                        "uid": uid,
                        "start": occurrence_start,
                        "end": occurrence_end,
                        "rrule": None,
                        "exdates": [],
                        "recurrence_id": None,
                        "original_start": None,
                        "original_end": None,
                    }
                )
            )

        logger.debug("Expanded %s into %d occurrences", series_base.id, len(occurrences))
        return occurrences

    def count_occurrences_before(self, series_base: CalendarEvent, instant: datetime) -> int:
        """Number of scheduled occurrences starting strictly before ``instant``.

        Excluded instants are counted: COUNT applies to the rule's schedule,
        not to what remains visible.
        """
        validate_rule(series_base.rrule)
        anchor = self._anchor(series_base)
        limit = ensure_timezone_aware(instant, self.config.tzinfo)

        count = 0
        for naive_start in self._build_rrule(series_base, anchor):
            if from_floating(naive_start, anchor.tzinfo) >= limit:
                break
            count += 1
        return count

    def is_first_occurrence(self, series_base: CalendarEvent, instant: datetime) -> bool:
        """Whether ``instant`` is at or before the series' first scheduled start."""
        first = next(iter(self._build_rrule(series_base, self._anchor(series_base))), None)
        if first is None:
            return True
        return ensure_timezone_aware(instant, self.config.tzinfo) <= from_floating(
            first, self._anchor(series_base).tzinfo
        )


def expand_occurrences(
    series_base: CalendarEvent,
    window_start: Any,
    window_end: Any,
    config: Optional[CalendarConfig] = None,
) -> list[CalendarEvent]:
    """Functional form of OccurrenceExpander.expand."""
    return OccurrenceExpander(config).expand(series_base, window_start, window_end)
