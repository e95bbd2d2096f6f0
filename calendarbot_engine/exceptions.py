"""Exception hierarchy for the calendar engine.

Errors raised here are meant to reach the UI layer unchanged. The engine
never swallows them: a half-expanded series or a silently skipped edit would
leave the displayed calendar out of sync with storage.
"""

from typing import Any, Optional


class CalendarEngineError(Exception):
    """Base exception for all calendar engine errors.

    Carries the offending value (rule, scope, id) when there is one so callers
    can report what went wrong without parsing the message.
    """

    def __init__(self, message: str, value: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.value = value


class InvalidRuleError(CalendarEngineError):
    """Recurrence rule is malformed or unsupported.

    Raised when:
    - FREQ is missing or not one of the RFC 5545 frequencies
    - INTERVAL or COUNT is not a positive integer
    - COUNT and UNTIL are both set
    - An RRULE string cannot be parsed
    """


class SeriesNotFoundError(CalendarEngineError):
    """No series base matches the occurrence being edited or deleted.

    A series base is a stored record with the occurrence's UID, a recurrence
    rule and no RECURRENCE-ID.
    """


class InvalidScopeError(CalendarEngineError):
    """Edit scope is not one of ``this``, ``following`` or ``all``."""


class EventNotFoundError(CalendarEngineError):
    """Plain update or delete referenced an id that is not stored."""
