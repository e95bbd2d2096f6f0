"""Drag-and-drop retargeting of events onto grid cells."""

import logging
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Optional

from .config_loader import CalendarConfig
from .datetime_utils import (
    add_duration,
    duration_between,
    end_of_day,
    ensure_timezone_aware,
    is_start_of_day,
    truncate_to_seconds,
)
from .models import CalendarEvent, DropTarget, DropTargetKind, RetargetResult, RetargetUpdates

logger = logging.getLogger(__name__)


def _drop_day(target: DropTarget, tz: tzinfo) -> date:
    """Calendar day of the drop cell in the calendar zone."""
    if isinstance(target.date, datetime):
        return ensure_timezone_aware(target.date, tz).astimezone(tz).date()
    return target.date


def retarget(
    drop_target: Optional[DropTarget],
    active_event: Optional[CalendarEvent],
    config: Optional[CalendarConfig] = None,
) -> Optional[RetargetUpdates]:
    """Compute the new placement of a dragged event.

    Args:
        drop_target: Cell the event was released on
        active_event: Event being dragged
        config: Engine configuration (precision and the calendar zone the grid is drawn in)

    Returns:
        New start/end/resource/all-day, or None when either input is missing

    Rules:
        - Duration comes from the un-dragged start/end (original_start /
          original_end snapshots when present).
        - Time cell: start at the cell's hour and minute, never all-day.
        - Day cell: start keeps the event's hour and minute; all-day follows
          the cell's flag, else the event's own.
        - An end landing exactly on midnight moves back to the end of the
          previous day.
    """
    if drop_target is None or active_event is None:
        logger.debug("Drop ignored: target=%r, event=%r", drop_target, active_event)
        return None

    config = config or CalendarConfig()
    original_start = ensure_timezone_aware(
        active_event.original_start or active_event.start, config.tzinfo
    )
    original_end = ensure_timezone_aware(active_event.original_end or active_event.end, config.tzinfo)
    tz = config.tzinfo

    duration = duration_between(original_start, original_end)
    if config.legacy_second_precision:
        duration = truncate_to_seconds(duration)

    day = _drop_day(drop_target, tz)
    if drop_target.kind == DropTargetKind.DAY:
        local_start = original_start.astimezone(tz)
        new_start = datetime.combine(day, time(local_start.hour, local_start.minute), tzinfo=tz)
        all_day = active_event.all_day if drop_target.all_day is None else drop_target.all_day
    else:
        new_start = datetime.combine(
            day, time(drop_target.hour or 0, drop_target.minute or 0), tzinfo=tz
        )
        all_day = False

    new_end = add_duration(new_start, duration)
    if is_start_of_day(new_end) and new_end > new_start:
        # Ending at 00:00 would show an empty last day
        new_end = end_of_day(new_end - timedelta(days=1))

    resource_id = active_event.resource_id
    if drop_target.resource_id is not None and drop_target.resource_id != resource_id:
        logger.debug(
            "Event %s reassigned from resource %s to %s",
            active_event.id,
            resource_id,
            drop_target.resource_id,
        )
        resource_id = drop_target.resource_id

    return RetargetUpdates(start=new_start, end=new_end, resource_id=resource_id, all_day=all_day)


def get_updated_event(
    drop_target: Optional[DropTarget],
    active_event: Optional[CalendarEvent],
    config: Optional[CalendarConfig] = None,
) -> Optional[RetargetResult]:
    """Pair the dragged event with its retargeted placement, or None on a no-op drag."""
    updates = retarget(drop_target, active_event, config)
    if updates is None:
        return None
    return RetargetResult(active_event=active_event, updates=updates)
