"""Shared fixtures for calendarbot_engine tests."""

from collections.abc import Callable, Generator
from datetime import UTC, datetime
from typing import Any

import pytest

from calendarbot_engine.config_loader import CalendarConfig
from calendarbot_engine.models import CalendarEvent, RecurrenceRule


def utc(*args: int) -> datetime:
    """Shorthand for an aware UTC datetime."""
    return datetime(*args, tzinfo=UTC)


def pytest_configure(config: Any) -> None:
    """Register the markers used across the suite."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "critical_path: Core functionality tests")
    config.addinivalue_line("markers", "smoke: Basic smoke tests")


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Keep engine environment overrides from leaking into tests."""
    for var in ("CALENDARBOT_ENGINE_TZ", "CALENDARBOT_DEBUG", "CALENDARBOT_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture
def config() -> CalendarConfig:
    """Default UTC configuration."""
    return CalendarConfig()


@pytest.fixture
def test_timezone() -> str:
    """Fixed non-UTC zone so DST-sensitive tests do not depend on the host."""
    return "America/Los_Angeles"


@pytest.fixture
def make_event() -> Callable[..., CalendarEvent]:
    """Factory for stored events with one-hour defaults."""

    def _make(event_id: Any = "event-1", start: Any = None, end: Any = None, **fields: Any) -> CalendarEvent:
        start = start or utc(2025, 1, 6, 9, 0)
        end = end or start.replace(hour=start.hour + 1)
        return CalendarEvent(id=event_id, title=fields.pop("title", f"Event {event_id}"), start=start, end=end, **fields)

    return _make


@pytest.fixture
def weekly_series(make_event: Callable[..., CalendarEvent]) -> CalendarEvent:
    """Weekly MO/WE/FR standup from 2025-01-06 09:00 UTC, one hour long."""
    return make_event(
        "standup",
        start=utc(2025, 1, 6, 9, 0),
        end=utc(2025, 1, 6, 10, 0),
        title="Standup",
        rrule=RecurrenceRule(
            freq="WEEKLY", byweekday=["MO", "WE", "FR"], dtstart=utc(2025, 1, 6, 9, 0)
        ),
    )


@pytest.fixture
def daily_series(make_event: Callable[..., CalendarEvent]) -> CalendarEvent:
    """Daily series of ten occurrences from 2025-01-01 14:00 UTC."""
    return make_event(
        "daily",
        start=utc(2025, 1, 1, 14, 0),
        end=utc(2025, 1, 1, 15, 30),
        title="Daily sync",
        rrule=RecurrenceRule(freq="DAILY", count=10),
    )
