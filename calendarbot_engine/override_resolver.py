"""Substitution of detached overrides into expanded occurrences."""

import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Optional

from .config_loader import CalendarConfig
from .datetime_utils import parse_instant
from .models import CalendarEvent

logger = logging.getLogger(__name__)

OverrideKey = tuple[str, datetime]


def override_key(uid: str, instant: datetime) -> OverrideKey:
    """Identity of one occurrence: series UID plus its original UTC start."""
    return uid, instant.astimezone(UTC)


class OverrideResolver:
    """Replaces generated occurrences with their stored overrides."""

    def __init__(self, config: Optional[CalendarConfig] = None):
        self.config = config or CalendarConfig()

    def key_for(self, event: CalendarEvent) -> OverrideKey:
        """Occurrence identity of a generated occurrence or stored override."""
        uid = event.resolved_uid(self.config.uid_namespace)
        if event.recurrence_id is not None:
            return override_key(uid, parse_instant(event.recurrence_id))
        return override_key(uid, event.start)

    def index_overrides(self, candidates: Iterable[CalendarEvent]) -> dict[OverrideKey, CalendarEvent]:
        """Map (uid, original instant) to the override stored for it.

        Records without a recurrence_id are ignored, so the whole stored
        collection can be passed in. When two overrides claim the same
        occurrence the later one wins.
        """
        index: dict[OverrideKey, CalendarEvent] = {}
        for candidate in candidates:
            if candidate.recurrence_id is None:
                continue
            try:
                instant = parse_instant(candidate.recurrence_id)
            except ValueError as e:
                logger.warning(
                    "Ignoring override %s with unparseable recurrence_id %r: %s",
                    candidate.id,
                    candidate.recurrence_id,
                    e,
                )
                continue
            key = override_key(candidate.resolved_uid(self.config.uid_namespace), instant)
            if key in index:
                logger.debug("Override %s supersedes %s for %s", candidate.id, index[key].id, key)
            index[key] = candidate
        return index

    def resolve(
        self, occurrences: Iterable[CalendarEvent], candidates: Iterable[CalendarEvent]
    ) -> list[CalendarEvent]:
        """Substitute overrides for the occurrences they replace.

        Args:
            occurrences: Generated occurrences of one or more series
            candidates: Stored records; only detached overrides are used

        Returns:
            One record per occurrence, in input order: the stored override
            (keeping its own id) where one matches, else the generated
            occurrence
        """
        return self.substitute(occurrences, self.index_overrides(candidates))

    def substitute(
        self, occurrences: Iterable[CalendarEvent], index: dict[OverrideKey, CalendarEvent]
    ) -> list[CalendarEvent]:
        """Apply a prebuilt override index to occurrences."""
        resolved = []
        for occurrence in occurrences:
            key = override_key(occurrence.resolved_uid(self.config.uid_namespace), occurrence.start)
            override = index.get(key)
            if override is None:
                resolved.append(occurrence)
                continue
            logger.debug("Occurrence %s replaced by override %s", occurrence.id, override.id)
            resolved.append(override)
        return resolved
