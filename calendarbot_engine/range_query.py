"""Date-range query over the stored event collection."""

import logging
from collections.abc import Iterable
from typing import Any, Optional

from .config_loader import CalendarConfig
from .datetime_utils import coerce_window_bound, ensure_timezone_aware, intervals_intersect
from .models import CalendarEvent
from .occurrence_expander import OccurrenceExpander
from .override_resolver import OverrideKey, OverrideResolver

logger = logging.getLogger(__name__)


class DateRangeQuery:
    """Answers "which events are visible between A and B".

    Series bases are expanded and override-resolved; simple events are
    included when their interval intersects the window. Detached overrides
    are surfaced through their series, including overrides moved into the
    window from an original instant outside it. An override whose series
    base is not stored is treated as a simple event.
    """

    def __init__(
        self,
        config: Optional[CalendarConfig] = None,
        expander: Optional[OccurrenceExpander] = None,
        resolver: Optional[OverrideResolver] = None,
    ):
        self.config = config or CalendarConfig()
        self.expander = expander or OccurrenceExpander(self.config)
        self.resolver = resolver or OverrideResolver(self.config)

    def _intersects(self, event: CalendarEvent, window_start: Any, window_end: Any) -> bool:
        tz = self.config.tzinfo
        return intervals_intersect(
            ensure_timezone_aware(event.start, tz),
            ensure_timezone_aware(event.end, tz),
            window_start,
            window_end,
        )

    def query(self, store_events: Iterable[CalendarEvent], start: Any, end: Any) -> list[CalendarEvent]:
        """Visible events in ``[start, end]``, sorted by start.

        Args:
            store_events: Stored (non-expanded) records
            start: Window start (datetime, date or ISO string)
            end: Window end, inclusive; a plain date covers the whole day

        Returns:
            Generated occurrences, overrides and simple events. A single
            occurrence (series UID + original instant) appears at most once.

        Raises:
            InvalidRuleError: If any series carries a malformed rule
        """
        tz = self.config.tzinfo
        window_start = coerce_window_bound(start, tz)
        window_end = coerce_window_bound(end, tz, end=True)
        namespace = self.config.uid_namespace

        events = list(store_events)
        series_bases = [event for event in events if event.is_series_base]
        series_uids = {base.resolved_uid(namespace) for base in series_bases}
        override_index = self.resolver.index_overrides(events)

        overrides_by_uid: dict[str, list[tuple[OverrideKey, CalendarEvent]]] = {}
        for key, override in override_index.items():
            overrides_by_uid.setdefault(key[0], []).append((key, override))

        visible: list[CalendarEvent] = []
        seen: set[OverrideKey] = set()

        for base in series_bases:
            uid = base.resolved_uid(namespace)
            occurrences = self.expander.expand(base, window_start, window_end)
            for event in self.resolver.substitute(occurrences, override_index):
                key = self.resolver.key_for(event)
                if key in seen:
                    continue
                seen.add(key)
                # A substituted override keeps its own times, which may lie outside the window
                if event.is_override and not self._intersects(event, window_start, window_end):
                    continue
                visible.append(event)

            # Overrides whose original occurrence was excluded or lies outside the window
            for key, override in overrides_by_uid.get(uid, []):
                if key in seen or not self._intersects(override, window_start, window_end):
                    continue
                seen.add(key)
                visible.append(override)

        for event in events:
            if event.is_series_base:
                continue
            if event.is_override and event.resolved_uid(namespace) in series_uids:
                continue
            if self._intersects(event, window_start, window_end):
                visible.append(event)

        logger.debug(
            "Range query [%s, %s]: %d stored, %d visible",
            window_start,
            window_end,
            len(events),
            len(visible),
        )
        return sorted(visible, key=lambda event: ensure_timezone_aware(event.start, tz))


def get_events_for_date_range(
    store_events: Iterable[CalendarEvent],
    start: Any,
    end: Any,
    config: Optional[CalendarConfig] = None,
) -> list[CalendarEvent]:
    """Functional form of DateRangeQuery.query."""
    return DateRangeQuery(config).query(store_events, start, end)
