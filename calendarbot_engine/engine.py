"""Calendar engine façade over the stored event collection."""

import logging
from collections.abc import Callable, Iterable
from typing import Any, Optional

from .config_loader import CalendarConfig
from .drag_retarget import get_updated_event
from .edit_scope import EditOptions, EditScopeMutator, find_series_base, normalize_updates
from .exceptions import EventNotFoundError
from .models import CalendarEvent, DropTarget, EditScope, EventId, RetargetResult
from .occurrence_expander import OccurrenceExpander
from .override_resolver import OverrideResolver
from .range_query import DateRangeQuery

logger = logging.getLogger(__name__)

EventCallback = Callable[[CalendarEvent], None]


class CalendarEngine:
    """Holds the stored events and routes every query and mutation.

    The collection is replaced wholesale after each mutation, so snapshots
    returned by ``events`` are never changed behind the caller's back.
    Callbacks run after the collection has been updated.
    """

    def __init__(
        self,
        events: Optional[Iterable[Any]] = None,
        config: Optional[CalendarConfig] = None,
        on_event_add: Optional[EventCallback] = None,
        on_event_update: Optional[EventCallback] = None,
        on_event_delete: Optional[EventCallback] = None,
    ):
        self.config = config or CalendarConfig()
        self.expander = OccurrenceExpander(self.config)
        self.resolver = OverrideResolver(self.config)
        self.range_query = DateRangeQuery(self.config, self.expander, self.resolver)
        self.mutator = EditScopeMutator(self.config, self.expander)

        self.on_event_add = on_event_add
        self.on_event_update = on_event_update
        self.on_event_delete = on_event_delete

        self._events: tuple[CalendarEvent, ...] = tuple(
            self._coerce_event(event) for event in events or ()
        )
        logger.debug("CalendarEngine initialized with %d stored events", len(self._events))

    @staticmethod
    def _coerce_event(event: Any) -> CalendarEvent:
        if isinstance(event, CalendarEvent):
            return event
        return CalendarEvent.model_validate(event)

    @property
    def events(self) -> list[CalendarEvent]:
        """Snapshot of the stored (non-expanded) records."""
        return list(self._events)

    def _store(self, events: Iterable[CalendarEvent]) -> None:
        self._events = tuple(events)

    def _commit(self, events: Iterable[CalendarEvent]) -> None:
        """Store a mutated collection and report the records that changed.

        Unchanged records are carried over by identity, so every new or
        replaced record goes to ``on_event_update``. A record whose id is no
        longer stored goes to ``on_event_delete``.
        """
        before = self._events
        self._store(events)
        kept = {id(event) for event in before}
        current_ids = {event.id for event in self._events}
        written = [event for event in self._events if id(event) not in kept]
        removed = [event for event in before if event.id not in current_ids]
        logger.debug("Committed %d written and %d removed records", len(written), len(removed))
        if self.on_event_update:
            for record in written:
                self.on_event_update(record)
        if self.on_event_delete:
            for record in removed:
                self.on_event_delete(record)

    def _index_of(self, event_id: EventId) -> int:
        for index, event in enumerate(self._events):
            if event.id == event_id:
                return index
        raise EventNotFoundError(f"Event {event_id!r} not found", event_id)

    def get_events_for_date_range(self, start: Any, end: Any) -> list[CalendarEvent]:
        """Visible events between ``start`` and ``end``, sorted by start."""
        return self.range_query.query(self._events, start, end)

    def add_event(self, event: Any) -> CalendarEvent:
        """Store a new record."""
        record = self._coerce_event(event)
        self._store([*self._events, record])
        logger.debug("Added event %s", record.id)
        if self.on_event_add:
            self.on_event_add(record)
        return record

    def update_event(self, event_id: EventId, updates: Any) -> CalendarEvent:
        """Merge field updates into the stored record with ``event_id``.

        Raises:
            EventNotFoundError: If no record has that id
        """
        index = self._index_of(event_id)
        changes = {key: value for key, value in normalize_updates(updates).items() if key != "id"}
        updated = self._events[index].merged(changes)

        events = list(self._events)
        events[index] = updated
        self._store(events)
        logger.debug("Updated event %s", event_id)
        if self.on_event_update:
            self.on_event_update(updated)
        return updated

    def delete_event(self, event_id: EventId) -> CalendarEvent:
        """Remove the stored record with ``event_id``.

        Raises:
            EventNotFoundError: If no record has that id
        """
        index = self._index_of(event_id)
        removed = self._events[index]
        self._store([event for i, event in enumerate(self._events) if i != index])
        logger.debug("Deleted event %s", event_id)
        if self.on_event_delete:
            self.on_event_delete(removed)
        return removed

    def update_recurring_event(
        self, event: CalendarEvent, updates: Any, options: EditOptions
    ) -> list[CalendarEvent]:
        """Scoped edit of a recurring occurrence; returns the new stored collection."""
        self._commit(self.mutator.update(self._events, event, updates, options))
        return self.events

    def delete_recurring_event(
        self, event: CalendarEvent, options: EditOptions
    ) -> list[CalendarEvent]:
        """Scoped delete of a recurring occurrence; returns the new stored collection."""
        self._commit(self.mutator.delete(self._events, event, options))
        return self.events

    def find_parent_recurring_event(self, event: CalendarEvent) -> Optional[CalendarEvent]:
        """Stored series base of an occurrence or override, if any."""
        return find_series_base(self._events, event, self.config.uid_namespace)

    def get_updated_event(
        self, drop_target: Optional[DropTarget], active_event: Optional[CalendarEvent]
    ) -> Optional[RetargetResult]:
        return get_updated_event(drop_target, active_event, self.config)

    def apply_drop(
        self, drop_target: Optional[DropTarget], active_event: Optional[CalendarEvent]
    ) -> Optional[RetargetResult]:
        """Retarget a dragged event and store the result.

        Occurrences of a recurring series are moved with ``this`` scope;
        everything else goes through a plain update. A drop onto a cell with
        a different resource also narrows ``resource_ids`` to that resource.
        """
        result = self.get_updated_event(drop_target, active_event)
        if result is None:
            return None

        updates = result.updates.as_updates()
        new_resource = result.updates.resource_id
        if (
            active_event.resource_ids
            and new_resource is not None
            and new_resource not in active_event.resource_ids
        ):
            updates["resource_ids"] = [new_resource]

        parent = None if active_event.is_series_base else self.find_parent_recurring_event(active_event)
        if parent is not None:
            self.update_recurring_event(active_event, updates, {"scope": EditScope.THIS})
        else:
            self.update_event(active_event.id, updates)
        return result
