"""calendarbot_engine - recurrence, edit-scope and drag retarget core for calendar UIs.

The package turns stored event records into the occurrences visible in a time
window and computes how stored events change when an occurrence is edited,
deleted or dragged to another grid cell. It has no I/O of its own apart from
config loading and the diagnostics CLI.
"""

__version__ = "0.1.0"

from .config_loader import CalendarConfig, load_config
from .drag_retarget import get_updated_event, retarget
from .edit_scope import EditScopeMutator, delete_recurring_event, update_recurring_event
from .engine import CalendarEngine
from .engine_logging import configure_engine_logging
from .exceptions import (
    CalendarEngineError,
    EventNotFoundError,
    InvalidRuleError,
    InvalidScopeError,
    SeriesNotFoundError,
)
from .models import (
    CalendarEvent,
    DropTarget,
    DropTargetKind,
    EditScope,
    Frequency,
    LegacyRecurrence,
    RecurrenceEditOptions,
    RecurrenceRule,
    RetargetResult,
    RetargetUpdates,
    Weekday,
)
from .occurrence_expander import OccurrenceExpander, expand_occurrences
from .override_resolver import OverrideResolver
from .range_query import DateRangeQuery, get_events_for_date_range
from .rrule_codec import describe_rule, format_rrule, parse_rrule

__all__ = [
    "CalendarConfig",
    "CalendarEngine",
    "CalendarEngineError",
    "CalendarEvent",
    "DateRangeQuery",
    "DropTarget",
    "DropTargetKind",
    "EditScope",
    "EditScopeMutator",
    "EventNotFoundError",
    "Frequency",
    "InvalidRuleError",
    "InvalidScopeError",
    "LegacyRecurrence",
    "OccurrenceExpander",
    "OverrideResolver",
    "RecurrenceEditOptions",
    "RecurrenceRule",
    "RetargetResult",
    "RetargetUpdates",
    "SeriesNotFoundError",
    "Weekday",
    "__version__",
    "configure_engine_logging",
    "delete_recurring_event",
    "describe_rule",
    "expand_occurrences",
    "format_rrule",
    "get_events_for_date_range",
    "get_updated_event",
    "load_config",
    "parse_rrule",
    "retarget",
    "update_recurring_event",
]
