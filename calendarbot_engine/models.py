"""Data models for the calendar engine."""

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from .datetime_utils import END_OF_DAY_TIME, UTC, duration_between, format_instant
from .exceptions import InvalidRuleError

# Namespace used to derive a UID from a stored id when none is set
DEFAULT_UID_NAMESPACE = "ilamy.calendar"

EventId = Union[str, int]
DropDate = Union[datetime, date]


class Frequency(str, Enum):
    """RFC 5545 recurrence frequencies."""

    SECONDLY = "SECONDLY"
    MINUTELY = "MINUTELY"
    HOURLY = "HOURLY"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class Weekday(str, Enum):
    """RRULE weekday abbreviations."""

    MO = "MO"
    TU = "TU"
    WE = "WE"
    TH = "TH"
    FR = "FR"
    SA = "SA"
    SU = "SU"


class EditScope(str, Enum):
    """How far an edit or delete propagates through a recurring series."""

    THIS = "this"
    FOLLOWING = "following"
    ALL = "all"


class EventKind(str, Enum):
    """Structural role of a stored record."""

    SERIES_BASE = "series_base"
    OVERRIDE = "override"
    SIMPLE = "simple"


class DropTargetKind(str, Enum):
    """Granularity of the grid cell an event was dropped on."""

    DAY = "day"
    TIME = "time"


# dateutil weekday numbering (MO=0) used when rules arrive with integer weekdays
_WEEKDAY_BY_INDEX = [day.value for day in Weekday]

# Legacy day names, Sunday first as in the legacy recurrence editor
LEGACY_DAY_TO_WEEKDAY = {
    "sunday": "SU",
    "monday": "MO",
    "tuesday": "TU",
    "wednesday": "WE",
    "thursday": "TH",
    "friday": "FR",
    "saturday": "SA",
}


class RecurrenceRule(BaseModel):
    """Structured RRULE, mirroring the RFC 5545 fields.

    The model is deliberately lenient: it stores whatever the caller supplied
    (including a missing or unknown ``freq``) and leaves rejection to
    ``rrule_codec.validate_rule``, which the expander calls before expanding.
    """

    kind: Literal["rrule"] = "rrule"
    freq: Optional[str] = Field(default=None, description="FREQ value, e.g. WEEKLY")
    interval: int = Field(default=1, description="INTERVAL between occurrences")
    count: Optional[int] = Field(default=None, description="COUNT of occurrences")
    until: Optional[datetime] = Field(default=None, description="UNTIL instant (inclusive)")
    byweekday: Optional[list[str]] = Field(
        default=None, description="BYDAY entries, e.g. ['MO', 'WE'] or ['-1FR']"
    )
    bymonthday: Optional[list[int]] = Field(default=None, description="BYMONTHDAY entries")
    bymonth: Optional[list[int]] = Field(default=None, description="BYMONTH entries")
    bysetpos: Optional[list[int]] = Field(default=None, description="BYSETPOS entries")
    wkst: Optional[str] = Field(default=None, description="WKST weekday")
    dtstart: Optional[datetime] = Field(
        default=None, description="Anchor of the series (the first start)"
    )

    @field_validator("freq", mode="before")
    @classmethod
    def _normalize_freq(cls, value: Any) -> Any:
        if isinstance(value, Frequency):
            return value.value
        if isinstance(value, int) and not isinstance(value, bool):
            # dateutil constants: YEARLY=0 .. SECONDLY=6
            ordered = ["YEARLY", "MONTHLY", "WEEKLY", "DAILY", "HOURLY", "MINUTELY", "SECONDLY"]
            return ordered[value] if 0 <= value < len(ordered) else str(value)
        if isinstance(value, str):
            return value.strip().upper() or None
        return value

    @field_validator("byweekday", mode="before")
    @classmethod
    def _normalize_byweekday(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, (str, int)):
            value = [value]
        normalized = []
        for day in value:
            if isinstance(day, Weekday):
                normalized.append(day.value)
            elif isinstance(day, int) and not isinstance(day, bool):
                normalized.append(_WEEKDAY_BY_INDEX[day % 7])
            else:
                normalized.append(str(day).strip().upper())
        return normalized

    @field_validator("wkst", mode="before")
    @classmethod
    def _normalize_wkst(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return _WEEKDAY_BY_INDEX[value % 7]
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("bymonthday", "bymonth", "bysetpos", mode="before")
    @classmethod
    def _listify(cls, value: Any) -> Any:
        if isinstance(value, int):
            return [value]
        return value

    @field_validator("until", mode="before")
    @classmethod
    def _date_until_covers_whole_day(cls, value: Any) -> Any:
        if isinstance(value, date) and not isinstance(value, datetime):
            return datetime.combine(value, END_OF_DAY_TIME, tzinfo=UTC)
        return value


class LegacyRecurrence(BaseModel):
    """Recurrence in the legacy editor format.

    Kept only as an input format. It is never expanded directly: ``to_rrule``
    converts it and the single RRULE expander does the work.
    """

    kind: Literal["legacy"] = "legacy"
    frequency: str = Field(..., description="daily, weekly, monthly or yearly")
    interval: int = Field(default=1, description="Step between occurrences")
    days_of_week: Optional[list[str]] = Field(
        default=None, description="Weekday names for weekly rules, e.g. ['monday']"
    )
    end_type: Literal["never", "on", "after"] = Field(default="never")
    end_date: Optional[datetime] = Field(default=None, description="Last day when end_type='on'")
    count: Optional[int] = Field(default=None, description="Occurrences when end_type='after'")

    @field_validator("frequency", mode="before")
    @classmethod
    def _lower_frequency(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    def to_rrule(self) -> RecurrenceRule:
        """Convert to the equivalent structured RRULE."""
        byweekday = None
        if self.frequency == "weekly" and self.days_of_week:
            byweekday = [
                LEGACY_DAY_TO_WEEKDAY.get(day.lower(), day.upper()) for day in self.days_of_week
            ]

        until = None
        count = None
        if self.end_type == "on" and self.end_date is not None:
            # The legacy engine compared end dates by day, so the whole day is included
            until = datetime.combine(self.end_date.date(), END_OF_DAY_TIME, tzinfo=self.end_date.tzinfo)
        elif self.end_type == "after" and self.count:
            count = self.count

        return RecurrenceRule(
            freq=self.frequency.upper(),
            interval=self.interval,
            count=count,
            until=until,
            byweekday=byweekday,
        )


RuleVariant = Annotated[Union[RecurrenceRule, LegacyRecurrence], Field(discriminator="kind")]


class CalendarEvent(BaseModel):
    """A stored calendar record or a generated occurrence.

    Exactly one structural role applies to a stored record: series base
    (``rrule`` set), detached override (``recurrence_id`` set) or simple
    event (neither).
    """

    # Core properties
    id: EventId = Field(..., description="Event ID")
    title: str = Field(default="", description="Display title")
    description: Optional[str] = Field(default=None, description="Notes")
    location: Optional[str] = Field(default=None, description="Location")
    color: Optional[str] = Field(default=None, description="Foreground color")
    background_color: Optional[str] = Field(default=None, description="Background color")

    # Time information
    start: datetime = Field(..., description="Event start")
    end: datetime = Field(..., description="Event end; duration is end - start")
    all_day: bool = Field(default=False, description="All-day event flag")

    # Drag snapshots of the un-dragged times
    original_start: Optional[datetime] = Field(default=None, description="Start before dragging")
    original_end: Optional[datetime] = Field(default=None, description="End before dragging")

    # Recurrence
    uid: Optional[str] = Field(default=None, description="Series UID (iCalendar UID)")
    rrule: Optional[RuleVariant] = Field(default=None, description="Recurrence rule")
    exdates: list[str] = Field(default_factory=list, description="Excluded instants (EXDATE)")
    recurrence_id: Optional[str] = Field(
        default=None, description="Original instant replaced by this override (RECURRENCE-ID)"
    )

    # Resources
    resource_id: Optional[EventId] = Field(default=None, description="Assigned resource")
    resource_ids: Optional[list[EventId]] = Field(default=None, description="Assigned resources")

    data: dict[str, Any] = Field(default_factory=dict, description="Caller-defined metadata")

    model_config = ConfigDict(use_enum_values=True)

    @field_validator("rrule", mode="before")
    @classmethod
    def _coerce_rule(cls, value: Any) -> Any:
        if isinstance(value, str):
            from .rrule_codec import parse_rrule  # noqa: PLC0415

            try:
                return parse_rrule(value)
            except InvalidRuleError as e:
                raise ValueError(e.message) from e
        if isinstance(value, dict) and "kind" not in value:
            return {**value, "kind": "legacy" if "frequency" in value else "rrule"}
        return value

    @field_validator("recurrence_id", mode="before")
    @classmethod
    def _coerce_recurrence_id(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return format_instant(value)
        return value

    @field_validator("exdates", mode="before")
    @classmethod
    def _coerce_exdates(cls, value: Any) -> Any:
        if value is None:
            return []
        return [format_instant(v) if isinstance(v, datetime) else v for v in value]

    @model_validator(mode="after")
    def _check_structural_role(self) -> "CalendarEvent":
        if self.rrule is not None and self.recurrence_id is not None:
            raise ValueError("A record cannot carry both a recurrence rule and a recurrence_id")
        return self

    def resolved_uid(self, namespace: str = DEFAULT_UID_NAMESPACE) -> str:
        """Return the stored UID, or derive ``{id}@{namespace}`` when absent."""
        return self.uid or f"{self.id}@{namespace}"

    @property
    def kind(self) -> EventKind:
        if self.rrule is not None:
            return EventKind.SERIES_BASE
        if self.recurrence_id is not None:
            return EventKind.OVERRIDE
        return EventKind.SIMPLE

    @property
    def is_series_base(self) -> bool:
        return self.kind == EventKind.SERIES_BASE

    @property
    def is_override(self) -> bool:
        return self.kind == EventKind.OVERRIDE

    @property
    def duration(self) -> timedelta:
        return duration_between(self.start, self.end)

    def resource_id_list(self) -> list[EventId]:
        """Resources this event is assigned to, as a list."""
        if self.resource_ids:
            return list(self.resource_ids)
        if self.resource_id is not None:
            return [self.resource_id]
        return []

    def merged(self, updates: dict[str, Any]) -> "CalendarEvent":
        """Return a validated copy with ``updates`` applied over this event."""
        return type(self).model_validate({**self.model_dump(), **updates})

    @field_serializer("start", "end", when_used="json")
    def serialize_datetime(self, dt: datetime) -> str:
        """Serialize datetime to ISO format."""
        return dt.isoformat()


class RecurrenceEditOptions(BaseModel):
    """Scope selection for an edit or delete of a recurring occurrence."""

    scope: EditScope = Field(..., description="this, following or all")
    event_date: Optional[DropDate] = Field(
        default=None, description="Occurrence being edited, when the target is the series base"
    )

    model_config = ConfigDict(use_enum_values=True)


class DropTarget(BaseModel):
    """Grid cell an event was released on."""

    kind: DropTargetKind = Field(..., description="day or time cell")
    date: DropDate = Field(..., description="Day of the cell")
    hour: Optional[int] = Field(default=None, ge=0, le=23, description="Hour of a time cell")
    minute: Optional[int] = Field(default=None, ge=0, le=59, description="Minute of a time cell")
    resource_id: Optional[EventId] = Field(default=None, description="Resource of the cell")
    all_day: Optional[bool] = Field(default=None, description="Explicit all-day flag of the cell")

    model_config = ConfigDict(use_enum_values=True)


class RetargetUpdates(BaseModel):
    """New placement computed for a dragged event."""

    start: datetime
    end: datetime
    resource_id: Optional[EventId] = None
    all_day: bool = False

    def as_updates(self) -> dict[str, Any]:
        """Field updates to feed into an edit, clearing the drag snapshots."""
        updates = self.model_dump()
        updates["original_start"] = None
        updates["original_end"] = None
        return updates


class RetargetResult(BaseModel):
    """Dragged event together with the updates to apply to it."""

    active_event: CalendarEvent
    updates: RetargetUpdates
