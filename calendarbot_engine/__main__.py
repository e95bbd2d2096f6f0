"""Command-line diagnostics for calendarbot_engine.

Loads stored events from a YAML file and either prints the events visible in
a window (``expand``) or a summary of every recurring series (``describe``).
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from .config_loader import CalendarConfig, load_config
from .engine import CalendarEngine
from .engine_logging import configure_engine_logging
from .exceptions import CalendarEngineError
from .rrule_codec import describe_rule, format_rrule

logger = logging.getLogger(__name__)


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the calendarbot_engine CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="calendarbot_engine",
        description="CalendarBot Engine - recurrence expansion diagnostics",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m calendarbot_engine expand events.yaml --start 2025-01-06 --end 2025-01-20
  python -m calendarbot_engine describe events.yaml
        """,
    )
    parser.add_argument("--config", metavar="PATH", help="Path to engine config YAML")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    expand = subparsers.add_parser("expand", help="Print events visible in a window as JSON")
    expand.add_argument("events", metavar="EVENTS.yaml", help="Stored events file")
    expand.add_argument("--start", required=True, metavar="ISO", help="Window start")
    expand.add_argument("--end", required=True, metavar="ISO", help="Window end (inclusive)")

    describe = subparsers.add_parser("describe", help="Summarize each recurring series")
    describe.add_argument("events", metavar="EVENTS.yaml", help="Stored events file")

    return parser


def load_events(path: str) -> list[dict[str, Any]]:
    """Read stored event mappings from a YAML list or an ``events:`` mapping."""
    loaded = yaml.safe_load(Path(path).read_text())
    if loaded is None:
        return []
    if isinstance(loaded, dict):
        loaded = loaded.get("events", [])
    if not isinstance(loaded, list):
        raise ValueError(f"Events file {path} must contain a list of events")  # noqa: TRY004
    return loaded


def _window_bound(value: str) -> Any:
    """Keep date-only bounds as dates so the end bound covers the whole day."""
    try:
        return date.fromisoformat(value)
    except ValueError:
        return value


def run(args: argparse.Namespace, config: Optional[CalendarConfig] = None) -> int:
    """Execute a parsed command and return the process exit code."""
    config = config or load_config(args.config)
    engine = CalendarEngine(load_events(args.events), config)

    if args.command == "expand":
        visible = engine.get_events_for_date_range(
            _window_bound(args.start), _window_bound(args.end)
        )
        payload = [event.model_dump(mode="json", exclude_none=True) for event in visible]
        print(json.dumps(payload, indent=2))
        return 0

    for event in engine.events:
        if event.is_series_base:
            print(f"{event.id}: {describe_rule(event.rrule)} [{format_rrule(event.rrule)}]")
    return 0


def main() -> None:
    """Run the calendarbot_engine CLI."""
    parser = _create_parser()
    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except (ValidationError, ValueError, OSError, yaml.YAMLError) as exc:
        configure_engine_logging(debug_mode=args.debug)
        logger.error("Failed to load configuration: %s", exc)
        sys.exit(1)

    configure_engine_logging(debug_mode=args.debug, log_level=config.log_level)

    try:
        sys.exit(run(args, config))
    except (CalendarEngineError, ValidationError, ValueError, OSError) as exc:
        logger.error("calendarbot_engine %s failed: %s", args.command, exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
