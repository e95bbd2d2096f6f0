"""calendarbot_engine.config_loader

Explicit configuration for the calendar engine.

- Every entry point takes a `CalendarConfig` instead of reading process-wide
  date-library defaults, so expansion and retargeting stay deterministic.
- `load_config()` reads YAML (PyYAML) and applies the `CALENDARBOT_ENGINE_TZ`
  environment override.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from .models import DEFAULT_UID_NAMESPACE

logger = logging.getLogger(__name__)

TIMEZONE_ENV_VAR = "CALENDARBOT_ENGINE_TZ"
DEFAULT_MAX_OCCURRENCES = 1000

_TRUTHY = ("1", "true", "yes", "on")


def _zone_exists(name: str) -> bool:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


@dataclass
class CalendarConfig:
    """Typed configuration for the calendar engine.

    Fields:
        timezone: IANA calendar zone; naive datetimes are read in it and
            all wall-clock evaluation happens in it
        locale: locale code of the calendar UI
        first_day_of_week: 0=Sunday .. 6=Saturday, for the UI's week grid;
            recurrence keeps the RRULE's own WKST
        uid_namespace: namespace of the `{id}@{namespace}` UID fallback
        max_occurrences: cap on occurrences produced per series and window
        legacy_second_precision: truncate drag durations to whole seconds
        log_level: logging level name
    """

    timezone: str = "UTC"
    locale: str = "en"
    first_day_of_week: int = 0
    uid_namespace: str = DEFAULT_UID_NAMESPACE
    max_occurrences: int = DEFAULT_MAX_OCCURRENCES
    legacy_second_precision: bool = False
    log_level: str = "INFO"

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> CalendarConfig:
        """Create CalendarConfig from a plain mapping, applying defaults and validation.

        Values are coerced rather than rejected: unknown time zones fall back
        to UTC, first_day_of_week is clamped to 0..6 and max_occurrences to at
        least 1, each with a warning.
        """
        if data is None:
            data = {}

        def _coerce_int(key: str, default: int) -> int:
            raw = data.get(key, default)
            try:
                return int(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not an int; using default %d", key, raw, default)
                return default

        timezone = str(data.get("timezone") or "UTC")
        if not _zone_exists(timezone):
            logger.warning("Unknown timezone %r; falling back to UTC", timezone)
            timezone = "UTC"

        locale = str(data.get("locale") or "en")

        first_day = _coerce_int("first_day_of_week", 0)
        if not 0 <= first_day <= 6:
            clamped = min(max(first_day, 0), 6)
            logger.warning("first_day_of_week %d out of range; coercing to %d", first_day, clamped)
            first_day = clamped

        uid_namespace = str(data.get("uid_namespace") or DEFAULT_UID_NAMESPACE)

        max_occurrences = _coerce_int("max_occurrences", DEFAULT_MAX_OCCURRENCES)
        if max_occurrences < 1:
            logger.warning("max_occurrences %d below minimum; coercing to 1", max_occurrences)
            max_occurrences = 1

        legacy_raw = data.get("legacy_second_precision", False)
        if isinstance(legacy_raw, str):
            legacy_second_precision = legacy_raw.strip().lower() in _TRUTHY
        else:
            legacy_second_precision = bool(legacy_raw)

        log_level = data.get("log_level", "INFO")
        log_level = str(log_level).upper() if log_level is not None else "INFO"

        return cls(
            timezone=timezone,
            locale=locale,
            first_day_of_week=first_day,
            uid_namespace=uid_namespace,
            max_occurrences=max_occurrences,
            legacy_second_precision=legacy_second_precision,
            log_level=log_level,
        )


def _load_yaml(path: Path) -> Any:
    """Load a YAML document, normalizing an empty file to an empty mapping."""
    loaded = yaml.safe_load(path.read_text())
    if loaded is None:
        return {}
    return loaded


def load_config(path: str | None = None) -> CalendarConfig:
    """Load configuration from a YAML file and return a CalendarConfig instance.

    Args:
        path: Optional path to the config file. If not provided the default is
              ./calendarbot_engine/config.yaml (relative to current working dir).

    Returns:
        CalendarConfig dataclass instance with values from file (or defaults).

    Behavior:
    - If file is missing: returns defaults.
    - If file exists but top-level is not a mapping: raises ValueError.
    - CALENDARBOT_ENGINE_TZ, when set, replaces the configured timezone.
    """
    p = Path(path) if path else Path.cwd() / "calendarbot_engine" / "config.yaml"
    logger.debug("Attempting to load config from %s", p)

    raw: dict[str, Any] = {}
    if p.exists():
        loaded = _load_yaml(p)
        if not isinstance(loaded, dict):
            logger.warning("Config file %s parsed but top-level is not a mapping: %r", p, loaded)
            raise ValueError("Config file must contain a mapping at top level")  # noqa: TRY004
        raw = loaded
        logger.info("Loaded configuration from %s", p)
    else:
        logger.info("Config file %s not found; using defaults", p)

    env_tz = os.getenv(TIMEZONE_ENV_VAR, "").strip()
    if env_tz:
        logger.debug("Timezone overridden by %s=%s", TIMEZONE_ENV_VAR, env_tz)
        raw = {**raw, "timezone": env_tz}

    cfg = CalendarConfig.from_dict(raw)
    logger.debug("Configuration values: %s", cfg)
    return cfg
