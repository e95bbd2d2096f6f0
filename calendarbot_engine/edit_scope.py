"""Scoped edits and deletes of recurring series.

Every operation takes the stored (non-expanded) collection and returns a new
list; records are replaced by validated copies, never mutated in place.

Scopes:
    this       exclude the occurrence from the series and store a detached
               override carrying the changes
    following  end the series the day before the occurrence and start a new,
               independent series from it
    all        change the series base itself
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import date, datetime, timedelta
from typing import Any, Optional, Union

from pydantic import BaseModel

from .config_loader import CalendarConfig
from .datetime_utils import (
    add_duration,
    end_of_day,
    ensure_timezone_aware,
    format_instant,
    parse_instant,
    same_instant,
)
from .exceptions import InvalidScopeError, SeriesNotFoundError
from .models import (
    CalendarEvent,
    EditScope,
    LegacyRecurrence,
    RecurrenceEditOptions,
    RecurrenceRule,
)
from .occurrence_expander import OccurrenceExpander
from .rrule_codec import as_rrule, parse_rrule

logger = logging.getLogger(__name__)

EditOptions = Union[RecurrenceEditOptions, Mapping[str, Any], EditScope, str]

# Fields an edit may never overwrite on a record it does not create
_IDENTITY_FIELDS = ("id", "uid", "recurrence_id")


def coerce_scope(value: Any) -> EditScope:
    """Accept an EditScope or one of the strings this/following/all."""
    if isinstance(value, EditScope):
        return value
    if isinstance(value, str):
        try:
            return EditScope(value.strip().lower())
        except ValueError:
            pass
    raise InvalidScopeError(
        f"Invalid scope: {value!r}. Must be 'this', 'following', or 'all'", value
    )


def coerce_options(options: EditOptions) -> tuple[EditScope, Optional[datetime | date]]:
    """Split edit options into a validated scope and optional event date."""
    if isinstance(options, RecurrenceEditOptions):
        return coerce_scope(options.scope), options.event_date
    if isinstance(options, Mapping):
        return coerce_scope(options.get("scope")), options.get("event_date")
    return coerce_scope(options), None


def normalize_updates(updates: Any) -> dict[str, Any]:
    """Turn updates (mapping, RetargetUpdates or other model) into a dict."""
    if updates is None:
        return {}
    if hasattr(updates, "as_updates"):
        return updates.as_updates()
    if isinstance(updates, BaseModel):
        return updates.model_dump(exclude_unset=True)
    return dict(updates)


def find_series_base(
    store_events: Iterable[CalendarEvent], event: CalendarEvent, namespace: str
) -> Optional[CalendarEvent]:
    """Stored series base for an occurrence, override or base, if any.

    The base is the record whose resolved UID equals the event's, that
    carries a rule and no recurrence_id. Both sides use the same
    ``{id}@{namespace}`` fallback.
    """
    uid = event.resolved_uid(namespace)
    for candidate in store_events:
        if candidate.is_series_base and candidate.resolved_uid(namespace) == uid:
            return candidate
    return None


class EditScopeMutator:
    """Applies this/following/all edits and deletes to a stored collection."""

    def __init__(
        self, config: Optional[CalendarConfig] = None, expander: Optional[OccurrenceExpander] = None
    ):
        self.config = config or CalendarConfig()
        self.expander = expander or OccurrenceExpander(self.config)

    @property
    def namespace(self) -> str:
        return self.config.uid_namespace

    def require_series_base(
        self, store_events: list[CalendarEvent], target: CalendarEvent
    ) -> CalendarEvent:
        """Locate the target's series base.

        Raises:
            SeriesNotFoundError: If no stored record qualifies
        """
        base = find_series_base(store_events, target, self.namespace)
        if base is None:
            uid = target.resolved_uid(self.namespace)
            raise SeriesNotFoundError(f"Base recurring event not found for uid {uid}", uid)
        return base

    def original_instant(
        self, target: CalendarEvent, event_date: Optional[datetime | date] = None
    ) -> datetime:
        """Instant of the occurrence being edited in the original schedule.

        An override already knows it (recurrence_id). Otherwise an explicit
        event date wins over the target's start; a plain date takes the
        target's time of day.
        """
        tz = self.config.tzinfo
        if target.recurrence_id is not None:
            return parse_instant(target.recurrence_id)
        target_start = ensure_timezone_aware(target.start, tz)
        if isinstance(event_date, datetime):
            return ensure_timezone_aware(event_date, tz)
        if isinstance(event_date, date):
            return datetime.combine(event_date, target_start.timetz())
        return target_start

    def _override_for(
        self, store_events: list[CalendarEvent], uid: str, instant: datetime
    ) -> Optional[CalendarEvent]:
        for event in store_events:
            if (
                event.is_override
                and event.resolved_uid(self.namespace) == uid
                and same_instant(event.recurrence_id, instant)
            ):
                return event
        return None

    def _overrides_from(
        self, store_events: list[CalendarEvent], uid: str, split: datetime
    ) -> set[Any]:
        """Ids of overrides of ``uid`` whose original instant is at or after ``split``."""
        doomed = set()
        for event in store_events:
            if not event.is_override or event.resolved_uid(self.namespace) != uid:
                continue
            try:
                if parse_instant(event.recurrence_id) >= split:
                    doomed.add(event.id)
            except ValueError:
                logger.warning("Override %s has unparseable recurrence_id; keeping it", event.id)
        return doomed

    @staticmethod
    def _replace(
        store_events: list[CalendarEvent], old: CalendarEvent, new: CalendarEvent
    ) -> list[CalendarEvent]:
        return [new if event is old else event for event in store_events]

    def _occurrence_window(
        self, base: CalendarEvent, target: CalendarEvent, instant: datetime
    ) -> tuple[datetime, datetime]:
        """Current start and end of the targeted occurrence."""
        if target.is_series_base:
            start = instant.astimezone(self.config.tzinfo)
            return start, add_duration(start, base.duration)
        tz = self.config.tzinfo
        return ensure_timezone_aware(target.start, tz), ensure_timezone_aware(target.end, tz)

    def _with_exdate(self, base: CalendarEvent, instant: datetime) -> CalendarEvent:
        if any(same_instant(existing, instant) for existing in base.exdates):
            return base
        return base.model_copy(update={"exdates": [*base.exdates, format_instant(instant)]})

    def _terminated(self, base: CalendarEvent, split: datetime) -> CalendarEvent:
        """Copy of ``base`` whose rule ends at the end of the day before ``split``."""
        until = end_of_day(split.astimezone(self.config.tzinfo) - timedelta(days=1))
        rule = as_rrule(base.rrule).model_copy(update={"until": until, "count": None})
        exdates = [value for value in base.exdates if parse_instant(value) < split]
        logger.debug("Terminating series %s with UNTIL %s", base.id, until)
        return base.model_copy(update={"rrule": rule, "exdates": exdates})

    def _following_rule(
        self, base: CalendarEvent, split: datetime, new_start: datetime, rule_update: Any
    ) -> RecurrenceRule:
        rule = as_rrule(base.rrule)
        if rule.count is not None:
            remaining = rule.count - self.expander.count_occurrences_before(base, split)
            rule = rule.model_copy(update={"count": max(remaining, 1)})

        if isinstance(rule_update, Mapping):
            fields = {**rule.model_dump(), **rule_update, "kind": "rrule"}
            rule = RecurrenceRule.model_validate(fields)
        elif isinstance(rule_update, str):
            rule = parse_rrule(rule_update)
        elif isinstance(rule_update, (RecurrenceRule, LegacyRecurrence)):
            rule = as_rrule(rule_update)

        return rule.model_copy(update={"dtstart": new_start})

    def update(
        self,
        store_events: Iterable[CalendarEvent],
        target: CalendarEvent,
        updates: Any,
        options: EditOptions,
    ) -> list[CalendarEvent]:
        """Apply field updates to an occurrence with the given scope.

        Args:
            store_events: Stored records
            target: Occurrence, override or series base being edited
            updates: Field updates (mapping or RetargetUpdates)
            options: Scope, optionally with the event date of the occurrence

        Returns:
            New stored collection

        Raises:
            InvalidScopeError: If the scope is not this/following/all
            SeriesNotFoundError: If the target's series base is not stored
        """
        scope, event_date = coerce_options(options)
        events = list(store_events)
        base = self.require_series_base(events, target)
        changes = normalize_updates(updates)
        instant = self.original_instant(target, event_date)

        logger.debug("Updating %s of series %s at %s", scope.value, base.id, format_instant(instant))

        if scope == EditScope.FOLLOWING and self.expander.is_first_occurrence(base, instant):
            logger.debug("Edit starts at the first occurrence of %s; applying to all", base.id)
            scope = EditScope.ALL

        if scope == EditScope.THIS:
            return self._update_this(events, base, target, changes, instant)
        if scope == EditScope.FOLLOWING:
            return self._update_following(events, base, target, changes, instant)
        return self._update_all(events, base, changes)

    def _update_this(
        self,
        events: list[CalendarEvent],
        base: CalendarEvent,
        target: CalendarEvent,
        changes: dict[str, Any],
        instant: datetime,
    ) -> list[CalendarEvent]:
        uid = base.resolved_uid(self.namespace)
        existing = self._override_for(events, uid, instant)

        if existing is not None:
            source = existing
            override_id = existing.id
        else:
            start, end = self._occurrence_window(base, target, instant)
            source = target.model_copy(update={"start": start, "end": end})
            override_id = f"{target.id}_modified_{format_instant(instant)}"

        override = source.merged(
            {
                **changes,
                "id": override_id,
                "uid": uid,
                "recurrence_id": format_instant(instant),
                "rrule": None,
                "exdates": [],
            }
        )

        result = self._replace(events, base, self._with_exdate(base, instant))
        if existing is not None:
            return self._replace(result, existing, override)
        return [*result, override]

    def _update_following(
        self,
        events: list[CalendarEvent],
        base: CalendarEvent,
        target: CalendarEvent,
        changes: dict[str, Any],
        instant: datetime,
    ) -> list[CalendarEvent]:
        tz = self.config.tzinfo
        uid = base.resolved_uid(self.namespace)
        occurrence_start, _ = self._occurrence_window(base, target, instant)

        new_start = parse_instant(changes["start"], tz) if changes.get("start") else occurrence_start
        if changes.get("end"):
            new_end = parse_instant(changes["end"], tz)
        else:
            new_end = add_duration(new_start, base.duration)

        new_id = f"{base.id}_following_{format_instant(instant)}"
        field_changes = {
            key: value
            for key, value in changes.items()
            if key not in (*_IDENTITY_FIELDS, "rrule", "start", "end", "exdates")
        }
        new_series = base.merged(
            {
                **field_changes,
                "id": new_id,
                "uid": f"{new_id}@{self.namespace}",
                "start": new_start,
                "end": new_end,
                "rrule": self._following_rule(base, instant, new_start, changes.get("rrule")),
                "exdates": [],
                "recurrence_id": None,
            }
        )

        doomed = self._overrides_from(events, uid, instant)
        if doomed:
            logger.debug("Dropping %d overrides after split of %s", len(doomed), base.id)
        result = [event for event in events if not (event.is_override and event.id in doomed)]
        result = self._replace(result, base, self._terminated(base, instant))
        return [*result, new_series]

    def _update_all(
        self, events: list[CalendarEvent], base: CalendarEvent, changes: dict[str, Any]
    ) -> list[CalendarEvent]:
        field_changes = {key: value for key, value in changes.items() if key not in _IDENTITY_FIELDS}
        updated = base.merged(field_changes)
        if isinstance(updated.rrule, RecurrenceRule):
            updated = updated.model_copy(
                update={"rrule": updated.rrule.model_copy(update={"dtstart": updated.start})}
            )
        return self._replace(events, base, updated)

    def delete(
        self,
        store_events: Iterable[CalendarEvent],
        target: CalendarEvent,
        options: EditOptions,
    ) -> list[CalendarEvent]:
        """Remove an occurrence with the given scope.

        ``this`` excludes the instant (and drops an override stored for it),
        ``following`` ends the series before the occurrence and ``all``
        removes every record of the series.

        Raises:
            InvalidScopeError: If the scope is not this/following/all
            SeriesNotFoundError: If the target's series base is not stored
        """
        scope, event_date = coerce_options(options)
        events = list(store_events)
        base = self.require_series_base(events, target)
        uid = base.resolved_uid(self.namespace)
        instant = self.original_instant(target, event_date)

        logger.debug("Deleting %s of series %s at %s", scope.value, base.id, format_instant(instant))

        if scope == EditScope.FOLLOWING and self.expander.is_first_occurrence(base, instant):
            scope = EditScope.ALL

        if scope == EditScope.THIS:
            existing = self._override_for(events, uid, instant)
            result = self._replace(events, base, self._with_exdate(base, instant))
            if existing is not None:
                result = [event for event in result if event is not existing]
            return result

        if scope == EditScope.FOLLOWING:
            doomed = self._overrides_from(events, uid, instant)
            result = [event for event in events if not (event.is_override and event.id in doomed)]
            return self._replace(result, base, self._terminated(base, instant))

        return [event for event in events if event.resolved_uid(self.namespace) != uid]


def update_recurring_event(
    store_events: Iterable[CalendarEvent],
    target: CalendarEvent,
    updates: Any,
    options: EditOptions,
    config: Optional[CalendarConfig] = None,
) -> list[CalendarEvent]:
    """Functional form of EditScopeMutator.update."""
    return EditScopeMutator(config).update(store_events, target, updates, options)


def delete_recurring_event(
    store_events: Iterable[CalendarEvent],
    target: CalendarEvent,
    options: EditOptions,
    config: Optional[CalendarConfig] = None,
) -> list[CalendarEvent]:
    """Functional form of EditScopeMutator.delete."""
    return EditScopeMutator(config).delete(store_events, target, options)
