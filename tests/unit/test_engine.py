"""Unit tests for calendarbot_engine.engine."""

from datetime import UTC, date, datetime
from unittest.mock import Mock

import pytest

from calendarbot_engine.engine import CalendarEngine
from calendarbot_engine.exceptions import EventNotFoundError, InvalidScopeError
from calendarbot_engine.models import CalendarEvent, DropTarget

pytestmark = pytest.mark.unit


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=UTC)


@pytest.fixture
def engine(weekly_series, config):
    return CalendarEngine([weekly_series], config)


def visible_at(engine, start):
    return next(
        event for event in engine.get_events_for_date_range(start.date(), start.date()) if event.start == start
    )


class TestConstruction:
    """Initial collection handling."""

    def test_init_when_mappings_then_validated_events(self):
        engine = CalendarEngine(
            [
                {
                    "id": "standup",
                    "start": "2025-01-06T09:00:00Z",
                    "end": "2025-01-06T10:00:00Z",
                    "rrule": "FREQ=WEEKLY;BYDAY=MO,WE,FR",
                }
            ]
        )

        assert isinstance(engine.events[0], CalendarEvent)
        assert len(engine.get_events_for_date_range(date(2025, 1, 6), date(2025, 1, 20))) == 7

    def test_events_snapshot_not_changed_by_later_mutations(self, engine, make_event):
        before = engine.events

        engine.add_event(make_event("new"))

        assert len(before) == 1
        assert len(engine.events) == 2


class TestPlainCrud:
    """Add, update and delete of stored records."""

    def test_add_event_fires_callback(self, make_event, config):
        on_add = Mock()
        engine = CalendarEngine(config=config, on_event_add=on_add)

        record = engine.add_event(make_event("lunch"))

        on_add.assert_called_once_with(record)
        assert engine.events == [record]

    def test_update_event_merges_fields_and_keeps_id(self, make_event, config):
        on_update = Mock()
        engine = CalendarEngine([make_event("lunch", title="Lunch")], config, on_event_update=on_update)

        updated = engine.update_event("lunch", {"id": "other", "title": "Team lunch"})

        assert updated.id == "lunch"
        assert updated.title == "Team lunch"
        assert engine.events == [updated]
        on_update.assert_called_once_with(updated)

    def test_delete_event_removes_record(self, make_event, config):
        on_delete = Mock()
        keep = make_event("keep")
        engine = CalendarEngine([keep, make_event("drop")], config, on_event_delete=on_delete)

        removed = engine.delete_event("drop")

        assert removed.id == "drop"
        assert engine.events == [keep]
        on_delete.assert_called_once_with(removed)

    @pytest.mark.parametrize("operation", ["update", "delete"])
    def test_unknown_id_raises_event_not_found(self, engine, operation):
        with pytest.raises(EventNotFoundError) as exc_info:
            if operation == "update":
                engine.update_event("missing", {"title": "x"})
            else:
                engine.delete_event("missing")

        assert exc_info.value.value == "missing"


class TestRecurringOperations:
    """Scoped edits routed through the façade."""

    def test_find_parent_recurring_event_when_occurrence_then_base(self, engine, weekly_series):
        occurrence = visible_at(engine, utc(2025, 1, 15, 9))

        assert engine.find_parent_recurring_event(occurrence) is weekly_series

    def test_find_parent_recurring_event_when_simple_then_none(self, engine, make_event):
        assert engine.find_parent_recurring_event(make_event("alone")) is None

    def test_update_recurring_event_this_then_stored_and_callback(self, weekly_series, config):
        on_update = Mock()
        engine = CalendarEngine([weekly_series], config, on_event_update=on_update)
        occurrence = visible_at(engine, utc(2025, 1, 8, 9))

        result = engine.update_recurring_event(occurrence, {"title": "Moved"}, {"scope": "this"})

        assert result == engine.events
        assert len(result) == 2
        written = [call.args[0] for call in on_update.call_args_list]
        assert written == result
        assert written[0].exdates == ["2025-01-08T09:00:00.000Z"]
        assert written[1].title == "Moved"
        assert written[1].recurrence_id is not None
        assert visible_at(engine, utc(2025, 1, 8, 9)).title == "Moved"

    def test_delete_recurring_event_all_then_removed_records_reported(self, weekly_series, config):
        on_update = Mock()
        on_delete = Mock()
        engine = CalendarEngine(
            [weekly_series], config, on_event_update=on_update, on_event_delete=on_delete
        )
        engine.update_recurring_event(visible_at(engine, utc(2025, 1, 8, 9)), {"title": "Moved"}, {"scope": "this"})
        stored = engine.events

        engine.delete_recurring_event(visible_at(engine, utc(2025, 1, 10, 9)), "all")

        assert [call.args[0] for call in on_delete.call_args_list] == stored
        assert on_update.call_count == 2

    def test_update_recurring_event_when_scope_invalid_then_store_untouched(self, engine, weekly_series):
        occurrence = visible_at(engine, utc(2025, 1, 8, 9))

        with pytest.raises(InvalidScopeError):
            engine.update_recurring_event(occurrence, {"title": "x"}, {"scope": "never"})

        assert engine.events == [weekly_series]

    def test_delete_recurring_event_all_then_empty(self, engine):
        occurrence = visible_at(engine, utc(2025, 1, 8, 9))

        assert engine.delete_recurring_event(occurrence, "all") == []
        assert engine.get_events_for_date_range(date(2025, 1, 1), date(2025, 1, 31)) == []


class TestApplyDrop:
    """Drag-and-drop persisted through the engine."""

    def test_apply_drop_on_occurrence_then_this_scope_override(self, engine):
        occurrence = visible_at(engine, utc(2025, 1, 8, 9))
        target = DropTarget(kind="time", date=date(2025, 1, 9), hour=13)

        result = engine.apply_drop(target, occurrence)

        assert result.updates.start == utc(2025, 1, 9, 13)
        base = next(event for event in engine.events if event.is_series_base)
        assert base.exdates == ["2025-01-08T09:00:00.000Z"]
        visible = engine.get_events_for_date_range(date(2025, 1, 6), date(2025, 1, 10))
        assert [event.start for event in visible] == [
            utc(2025, 1, 6, 9),
            utc(2025, 1, 9, 13),
            utc(2025, 1, 10, 9),
        ]

    def test_apply_drop_on_simple_event_then_plain_update(self, make_event, config):
        event = make_event("meeting", resource_id="room-a", resource_ids=["room-a", "room-c"])
        engine = CalendarEngine([event], config)
        target = DropTarget(kind="time", date=date(2025, 1, 9), hour=11, resource_id="room-b")

        engine.apply_drop(target, event)

        stored = engine.events[0]
        assert stored.start == utc(2025, 1, 9, 11)
        assert stored.end == utc(2025, 1, 9, 12)
        assert stored.resource_id == "room-b"
        assert stored.resource_ids == ["room-b"]
        assert stored.original_start is None

    def test_apply_drop_when_no_target_then_nothing_stored(self, engine, weekly_series):
        assert engine.apply_drop(None, weekly_series) is None
        assert engine.events == [weekly_series]
