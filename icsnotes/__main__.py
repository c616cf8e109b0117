"""Command-line entry for icsnotes.

Prints the occurrences of a date window from the configured feeds and notes.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import timedelta
from typing import Optional, Sequence

from .calendar_service import CalendarService, CalendarSnapshot
from .exceptions import ConfigError
from .interval import Window, is_date_instant, parse_instant
from .logging_config import configure_logging
from .settings import load_settings
from .timezone_utils import now_utc, resolve_timezone

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 7


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the icsnotes CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="icsnotes",
        description="List calendar occurrences from iCalendar feeds and local notes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m icsnotes                                  # Next 7 days
  python -m icsnotes --start 2024-01-01 --end 2024-01-31
  python -m icsnotes --config ~/cal.yaml --json
        """,
    )
    parser.add_argument("--config", metavar="PATH", help="YAML config file")
    parser.add_argument("--start", metavar="DATE", help="Window start (default: today)")
    parser.add_argument(
        "--end",
        metavar="DATE",
        help=f"Window end, inclusive (default: start + {DEFAULT_WINDOW_DAYS} days)",
    )
    parser.add_argument("--json", action="store_true", help="Print occurrences as JSON")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def _format_text(snapshot: CalendarSnapshot) -> str:
    lines = []
    for occurrence in snapshot.occurrences:
        if is_date_instant(occurrence.start):
            when = f"{occurrence.start.isoformat()} (all day)"
        else:
            when = occurrence.start.strftime("%Y-%m-%d %H:%M")
        suffix = f" [{occurrence.instance_id}]" if occurrence.instance_id else ""
        title = occurrence.title or "(untitled)"
        lines.append(f"{when:<22} {title}  <{occurrence.series_id}{suffix}>")
    if not lines:
        lines.append("No events in this window.")
    return "\n".join(lines)


def _format_json(snapshot: CalendarSnapshot) -> str:
    payload = {
        "occurrences": [occ.model_dump(mode="json") for occ in snapshot.occurrences],
        "stale_sources": snapshot.stale_sources,
        "notices": snapshot.notices,
    }
    return json.dumps(payload, indent=2)


def _build_window(start_text: Optional[str], end_text: Optional[str], local_tz) -> Window:
    today = now_utc().astimezone(local_tz).date()
    start = parse_instant(start_text) if start_text else today
    if end_text:
        end = parse_instant(end_text)
    else:
        start_day = start if is_date_instant(start) else start.date()
        end = start_day + timedelta(days=DEFAULT_WINDOW_DAYS)
    return Window.between(start, end, local_tz)


async def _run(args: argparse.Namespace) -> int:
    settings = load_settings(args.config)
    configure_logging(settings.log_level, debug_mode=args.debug)

    local_tz = resolve_timezone(settings.default_timezone)
    try:
        window = _build_window(args.start, args.end, local_tz)
    except ValueError as e:
        print(f"Invalid window: {e}", file=sys.stderr)
        return 2

    async with CalendarService.from_settings(settings) as service:
        snapshot = await service.occurrences_between(window)

    for notice in snapshot.notices:
        print(f"Notice: {notice}", file=sys.stderr)

    print(_format_json(snapshot) if args.json else _format_text(snapshot))
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the icsnotes CLI."""
    parser = _create_parser()
    args = parser.parse_args(argv)
    configure_logging("INFO", debug_mode=args.debug)

    try:
        return asyncio.run(_run(args))
    except ConfigError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
