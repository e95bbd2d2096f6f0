"""
Central logging configuration for calendarbot_engine.

Keeps the engine's own debug tracing (expansion windows, override
substitutions, series mutations) available on demand while quieting the
date and iCalendar libraries underneath it.
"""

import logging
import os
import sys
from typing import Optional

from colorlog import ColoredFormatter

# HH:MM:SS  LEVEL   logger.name: message
# Only the level is colorized, left-aligned to 7 chars for column alignment.
CONSOLE_FORMAT = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}

ENGINE_MODULES = [
    "calendarbot_engine",
    "calendarbot_engine.occurrence_expander",
    "calendarbot_engine.override_resolver",
    "calendarbot_engine.edit_scope",
    "calendarbot_engine.drag_retarget",
    "calendarbot_engine.range_query",
    "calendarbot_engine.engine",
    "calendarbot_engine.rrule_codec",
    "calendarbot_engine.config_loader",
]

# Third-party loggers kept quiet unless everything is reset to DEBUG
THIRD_PARTY_LEVELS: dict[str, int] = {
    "dateutil": logging.WARNING,
    "icalendar": logging.INFO,
}

VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def build_console_handler(level: int = logging.NOTSET) -> logging.Handler:
    """Create a stderr handler with the colorized engine format."""
    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(ColoredFormatter(CONSOLE_FORMAT, datefmt="%H:%M:%S", log_colors=LOG_COLORS))
    return handler


def configure_engine_logging(
    debug_mode: bool = False, force_debug: Optional[bool] = None, log_level: Optional[str] = None
) -> None:
    """
    Configure logging levels for calendarbot_engine.

    Debug mode can be overridden via environment variable for troubleshooting.

    Args:
        debug_mode: Whether to enable debug logging for calendarbot_engine modules
        force_debug: Override debug mode setting (None to use env var detection)
        log_level: Configured root level (``CalendarConfig.log_level``); DEBUG
            also enables engine debug logging. The environment wins over it.

    Environment Variables:
        CALENDARBOT_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        CALENDARBOT_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("CALENDARBOT_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("CALENDARBOT_LOG_LEVEL", "").upper()
    config_log_level = (log_level or "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    elif config_log_level == "DEBUG":
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in VALID_LEVELS:
        root_level = getattr(logging, env_log_level)
    elif config_log_level in VALID_LEVELS and not final_debug:
        root_level = getattr(logging, config_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    # Only add a handler if none exist, so embedding applications keep theirs
    if not root_logger.handlers:
        root_logger.addHandler(build_console_handler(root_level))

    logger_config = dict(THIRD_PARTY_LEVELS)
    engine_level = logging.DEBUG if final_debug else max(logging.INFO, root_level)
    for module in ENGINE_MODULES:
        logger_config[module] = engine_level

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    if final_debug:
        root_logger.debug("Debug logging enabled for calendarbot_engine modules")
    else:
        root_logger.debug("Production logging configuration applied")


def reset_logging_to_debug() -> None:
    """
    Reset all loggers to DEBUG level for troubleshooting.
    """
    logging.getLogger().setLevel(logging.DEBUG)
    for logger_name in [*THIRD_PARTY_LEVELS, *ENGINE_MODULES]:
        logging.getLogger(logger_name).setLevel(logging.DEBUG)

    logging.getLogger().info("All loggers reset to DEBUG level for troubleshooting")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in ["calendarbot_engine", *THIRD_PARTY_LEVELS]:
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return status
