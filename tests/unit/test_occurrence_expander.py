"""Unit tests for calendarbot_engine.occurrence_expander."""

import logging
from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from calendarbot_engine.config_loader import CalendarConfig
from calendarbot_engine.exceptions import InvalidRuleError
from calendarbot_engine.models import LegacyRecurrence, RecurrenceRule
from calendarbot_engine.occurrence_expander import (
    OccurrenceExpander,
    expand_occurrences,
    occurrence_id,
)

pytestmark = pytest.mark.unit


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=UTC)


class TestExpandWindow:
    """Occurrence selection within a window."""

    def test_expand_when_weekly_mo_we_fr_over_two_weeks_then_seven(self, weekly_series, config):
        occurrences = OccurrenceExpander(config).expand(weekly_series, date(2025, 1, 6), date(2025, 1, 20))

        assert [o.start for o in occurrences] == [
            utc(2025, 1, 6, 9),
            utc(2025, 1, 8, 9),
            utc(2025, 1, 10, 9),
            utc(2025, 1, 13, 9),
            utc(2025, 1, 15, 9),
            utc(2025, 1, 17, 9),
            utc(2025, 1, 20, 9),
        ]

    def test_expand_when_exdate_matches_then_occurrence_removed(self, weekly_series, config):
        series = weekly_series.model_copy(update={"exdates": ["2025-01-08T09:00:00.000Z"]})

        occurrences = OccurrenceExpander(config).expand(series, date(2025, 1, 6), date(2025, 1, 20))
        starts = [o.start for o in occurrences]

        assert len(occurrences) == 6
        assert utc(2025, 1, 8, 9) not in starts
        assert utc(2025, 1, 10, 9) in starts

    def test_expand_when_exdate_off_by_a_minute_then_not_removed(self, weekly_series, config):
        series = weekly_series.model_copy(update={"exdates": ["2025-01-08T09:01:00.000Z"]})

        occurrences = OccurrenceExpander(config).expand(series, date(2025, 1, 6), date(2025, 1, 20))

        assert len(occurrences) == 7

    def test_expand_when_occurrence_spans_window_start_then_included(self, make_event, config):
        overnight = make_event(
            "overnight",
            start=utc(2025, 1, 1, 22),
            end=utc(2025, 1, 2, 2),
            rrule=RecurrenceRule(freq="DAILY"),
        )

        occurrences = OccurrenceExpander(config).expand(
            overnight, utc(2025, 1, 3, 0), utc(2025, 1, 3, 1)
        )

        assert [(o.start, o.end) for o in occurrences] == [(utc(2025, 1, 2, 22), utc(2025, 1, 3, 2))]

    def test_expand_when_window_boundaries_touch_then_inclusive(self, weekly_series, config):
        occurrences = OccurrenceExpander(config).expand(
            weekly_series, utc(2025, 1, 8, 10), utc(2025, 1, 10, 9)
        )

        assert [o.start for o in occurrences] == [utc(2025, 1, 8, 9), utc(2025, 1, 10, 9)]

    def test_expand_when_count_then_series_stops(self, daily_series, config):
        expander = OccurrenceExpander(config)

        assert len(expander.expand(daily_series, date(2025, 1, 1), date(2025, 1, 31))) == 10
        assert len(expander.expand(daily_series, date(2025, 1, 8), date(2025, 1, 31))) == 3

    def test_expand_when_until_then_last_occurrence_on_until_day(self, make_event, config):
        series = make_event(
            "until",
            start=utc(2025, 1, 1, 9),
            end=utc(2025, 1, 1, 10),
            rrule=RecurrenceRule(freq="DAILY", until=date(2025, 1, 5)),
        )

        occurrences = OccurrenceExpander(config).expand(series, date(2025, 1, 1), date(2025, 1, 31))

        assert occurrences[-1].start == utc(2025, 1, 5, 9)
        assert len(occurrences) == 5

    def test_expand_when_legacy_rule_then_same_schedule(self, weekly_series, config):
        legacy = weekly_series.model_copy(
            update={
                "rrule": LegacyRecurrence(
                    frequency="weekly", days_of_week=["monday", "wednesday", "friday"]
                )
            }
        )

        occurrences = OccurrenceExpander(config).expand(legacy, date(2025, 1, 6), date(2025, 1, 20))

        assert len(occurrences) == 7

    def test_expand_when_cap_reached_then_truncated_with_warning(self, make_event, caplog):
        series = make_event("endless", rrule=RecurrenceRule(freq="DAILY"))
        expander = OccurrenceExpander(CalendarConfig(max_occurrences=5))

        with caplog.at_level(logging.WARNING, logger="calendarbot_engine.occurrence_expander"):
            occurrences = expander.expand(series, date(2025, 1, 1), date(2025, 12, 31))

        assert len(occurrences) == 5
        assert "max_occurrences=5" in caplog.text


class TestExpandInvalidRules:
    """Malformed rules fail loudly."""

    def test_expand_when_freq_missing_then_invalid_rule_error(self, make_event, config):
        series = make_event(rrule=RecurrenceRule(interval=2))

        with pytest.raises(InvalidRuleError):
            OccurrenceExpander(config).expand(series, date(2025, 1, 1), date(2025, 1, 31))

    def test_expand_when_interval_not_positive_then_invalid_rule_error(self, make_event, config):
        series = make_event(rrule=RecurrenceRule(freq="DAILY", interval=-1))

        with pytest.raises(InvalidRuleError):
            OccurrenceExpander(config).expand(series, date(2025, 1, 1), date(2025, 1, 31))

    def test_expand_when_no_rule_then_invalid_rule_error(self, make_event, config):
        with pytest.raises(InvalidRuleError):
            OccurrenceExpander(config).expand(make_event(), date(2025, 1, 1), date(2025, 1, 31))


class TestGeneratedOccurrences:
    """Shape and identity of generated occurrences."""

    def test_occurrence_fields_when_generated_then_no_rule_and_parent_uid(self, weekly_series, config):
        occurrence = OccurrenceExpander(config).expand(
            weekly_series, date(2025, 1, 8), date(2025, 1, 8)
        )[0]

        assert occurrence.id == "standup_2025-01-08T09:00:00.000Z"
        assert occurrence.uid == "standup@ilamy.calendar"
        assert occurrence.rrule is None
        assert occurrence.recurrence_id is None
        assert occurrence.exdates == []
        assert occurrence.title == "Standup"
        assert occurrence.duration == timedelta(hours=1)

    def test_occurrence_ids_when_windows_differ_then_stable(self, weekly_series, config):
        expander = OccurrenceExpander(config)

        wide = {o.start: o.id for o in expander.expand(weekly_series, date(2025, 1, 6), date(2025, 1, 31))}
        narrow = {o.start: o.id for o in expander.expand(weekly_series, date(2025, 1, 15), date(2025, 1, 17))}

        for start, event_id in narrow.items():
            assert wide[start] == event_id

    def test_occurrence_id_helper_uses_utc_instant(self):
        start = datetime(2025, 1, 8, 10, 0, tzinfo=ZoneInfo("Europe/Berlin"))

        assert occurrence_id(7, start) == "7_2025-01-08T09:00:00.000Z"

    def test_expand_occurrences_function_matches_class(self, weekly_series):
        assert len(expand_occurrences(weekly_series, date(2025, 1, 6), date(2025, 1, 20))) == 7


class TestFloatingTime:
    """Rules are evaluated on local wall-clock time."""

    def test_expand_when_dst_starts_then_local_time_kept(self, make_event):
        tz = ZoneInfo("America/New_York")
        series = make_event(
            "wednesday",
            start=datetime(2025, 3, 5, 9, 0, tzinfo=tz),
            end=datetime(2025, 3, 5, 10, 0, tzinfo=tz),
            rrule=RecurrenceRule(freq="WEEKLY", byweekday=["WE"]),
        )
        expander = OccurrenceExpander(CalendarConfig(timezone="America/New_York"))

        occurrences = expander.expand(series, date(2025, 3, 1), date(2025, 3, 15))

        assert [o.start.hour for o in occurrences] == [9, 9]
        assert [o.start.astimezone(UTC).hour for o in occurrences] == [14, 13]
        assert all(o.duration == timedelta(hours=1) for o in occurrences)

    def test_expand_when_local_wednesday_is_utc_thursday_then_wednesday_kept(self, make_event):
        tz = ZoneInfo("America/Los_Angeles")
        series = make_event(
            "late",
            start=datetime(2025, 1, 1, 20, 0, tzinfo=tz),
            end=datetime(2025, 1, 1, 21, 0, tzinfo=tz),
            rrule=RecurrenceRule(freq="WEEKLY", byweekday=["WE"], count=2),
        )
        expander = OccurrenceExpander(CalendarConfig(timezone="America/Los_Angeles"))

        occurrences = expander.expand(series, date(2025, 1, 1), date(2025, 1, 31))

        assert [o.start.date() for o in occurrences] == [date(2025, 1, 1), date(2025, 1, 8)]
        assert all(o.start.astimezone(UTC).weekday() == 3 for o in occurrences)

    def test_expand_when_stored_in_utc_then_byday_matched_in_calendar_zone(self, make_event):
        berlin = ZoneInfo("Europe/Berlin")
        series = make_event(
            "early",
            start=utc(2025, 1, 6, 23, 30),
            end=utc(2025, 1, 7, 0, 30),
            rrule=RecurrenceRule(freq="WEEKLY", byweekday=["TU"], count=2),
        )
        expander = OccurrenceExpander(CalendarConfig(timezone="Europe/Berlin"))

        occurrences = expander.expand(series, date(2025, 1, 1), date(2025, 1, 31))

        assert [o.start.astimezone(berlin).date() for o in occurrences] == [date(2025, 1, 7), date(2025, 1, 14)]
        assert [o.start.astimezone(UTC) for o in occurrences] == [utc(2025, 1, 6, 23, 30), utc(2025, 1, 13, 23, 30)]

    def test_expand_when_stored_in_utc_across_dst_then_calendar_local_time_kept(self, make_event):
        new_york = ZoneInfo("America/New_York")
        series = make_event(
            "wednesday",
            start=utc(2025, 3, 5, 14, 0),
            end=utc(2025, 3, 5, 15, 0),
            rrule=RecurrenceRule(freq="WEEKLY", byweekday=["WE"]),
        )
        expander = OccurrenceExpander(CalendarConfig(timezone="America/New_York"))

        occurrences = expander.expand(series, date(2025, 3, 1), date(2025, 3, 15))

        assert [o.start.astimezone(new_york).hour for o in occurrences] == [9, 9]
        assert [o.start.astimezone(UTC).hour for o in occurrences] == [14, 13]
        assert [o.id for o in occurrences] == [
            "wednesday_2025-03-05T14:00:00.000Z",
            "wednesday_2025-03-12T13:00:00.000Z",
        ]


class TestScheduleQueries:
    """Helpers used when splitting a series."""

    def test_count_occurrences_before(self, weekly_series, config):
        expander = OccurrenceExpander(config)

        assert expander.count_occurrences_before(weekly_series, utc(2025, 1, 13, 9)) == 3
        assert expander.count_occurrences_before(weekly_series, utc(2025, 1, 6, 9)) == 0

    def test_is_first_occurrence(self, weekly_series, config):
        expander = OccurrenceExpander(config)

        assert expander.is_first_occurrence(weekly_series, utc(2025, 1, 6, 9))
        assert not expander.is_first_occurrence(weekly_series, utc(2025, 1, 8, 9))
