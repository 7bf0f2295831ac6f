#!/usr/bin/env python3
"""
Generate the Stamjer iCal/ICS feed from event records.

The web API calls generate_icalendar() (or build_calendar_feed() with its
database query) for every subscription request. This script does the same
from a YAML/JSON export of the events table, which is handy for checking a
feed by hand or for publishing a static copy.

Usage:
    python generate_calendar.py                          # data/events.yaml -> output/stamjer.ics
    python generate_calendar.py --sources export.yaml    # Other event export
    python generate_calendar.py --config feed.yaml       # Override feed settings
    python generate_calendar.py --publish                # Also copy to docs/

Feed layout:
    BEGIN:VCALENDAR
    VERSION / PRODID / CALSCALE / METHOD / X-WR-* headers
    VTIMEZONE for Europe/Amsterdam
    one VEVENT per event record
    END:VCALENDAR
"""

import argparse
import logging
import shutil
import sys
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from calendar_utils import (
    DEFAULT_CONFIG,
    FeedConfig,
    get_default_events_path,
    load_events,
    load_feed_config,
    validate_all_events,
)
from ical_format import (
    CRLF,
    ICalFormatError,
    escape_ical_text,
    fold_ical_line,
    format_date_only,
    format_local_datetime,
    format_utc_instant,
    next_calendar_day,
)

logger = logging.getLogger(__name__)

FEED_ERROR_MESSAGE = "Failed to generate calendar feed"

OPKOMSTMAKERS_LABEL = "Opkomstmakers: "

# EU summer time: last Sunday of March 02:00 until last Sunday of October 03:00.
VTIMEZONE_RULES = [
    "BEGIN:DAYLIGHT",
    "TZOFFSETFROM:+0100",
    "TZOFFSETTO:+0200",
    "TZNAME:CEST",
    "DTSTART:19700329T020000",
    "RRULE:FREQ=YEARLY;BYMONTH=3;BYDAY=-1SU",
    "END:DAYLIGHT",
    "BEGIN:STANDARD",
    "TZOFFSETFROM:+0200",
    "TZOFFSETTO:+0100",
    "TZNAME:CET",
    "DTSTART:19701025T030000",
    "RRULE:FREQ=YEARLY;BYMONTH=10;BYDAY=-1SU",
    "END:STANDARD",
]

Clock = Callable[[], datetime]


class CalendarFeedError(RuntimeError):
    """The feed as a whole could not be produced."""

    def __init__(self, message: str = FEED_ERROR_MESSAGE):
        super().__init__(message)


@dataclass(frozen=True)
class RenderResult:
    """Outcome of rendering one event: a VEVENT block or the reason it failed."""

    event_id: object
    block: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.block is not None

    @classmethod
    def success(cls, event_id, block: str) -> "RenderResult":
        return cls(event_id=event_id, block=block)

    @classmethod
    def failure(cls, event_id, error: str) -> "RenderResult":
        return cls(event_id=event_id, error=error)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_description(event: Mapping) -> str:
    """Combine the event description with the opkomstmakers credit line."""
    description = str(event.get("description") or "")

    makers = event.get("opkomstmakers")
    if isinstance(makers, (list, tuple)):
        makers = ", ".join(str(name) for name in makers if name)

    if event.get("isOpkomst") and makers:
        credit = OPKOMSTMAKERS_LABEL + str(makers)
        description = f"{description}\n\n{credit}" if description else credit

    return description


def resolve_sequence(event: Mapping) -> int:
    """Return the revision number of an event, 0 when it has none."""
    sequence = event.get("sequence")
    if sequence is None or sequence == "":
        return 0
    if isinstance(sequence, bool):
        raise ICalFormatError(f"Invalid sequence: {sequence!r}")
    if isinstance(sequence, str) and sequence.strip().isdigit():
        sequence = int(sequence)
    if not isinstance(sequence, int) or sequence < 0:
        raise ICalFormatError(f"Invalid sequence: {sequence!r}")
    return sequence


def _event_lines(event: Mapping, config: FeedConfig, clock: Clock) -> list[str]:
    event_id = event.get("id")
    if event_id is None or event_id == "":
        raise ICalFormatError("Event has no id")
    start = event.get("start")
    end = event.get("end")
    all_day = bool(event.get("allDay"))
    tz_name = config.timezone

    lines = [f"UID:{event_id}@{config.uid_domain}"]

    if all_day:
        lines.append(f"DTSTART;VALUE=DATE:{format_date_only(start)}")
        # No end: the all-day event covers just its start date
        end_date = format_date_only(end if end else next_calendar_day(start))
        lines.append(f"DTEND;VALUE=DATE:{end_date}")
    else:
        lines.append(f"DTSTART;TZID={tz_name}:{format_local_datetime(start, tz_name)}")
        lines.append(f"DTEND;TZID={tz_name}:{format_local_datetime(end or start, tz_name)}")

    if event.get("title"):
        lines.append(f"SUMMARY:{escape_ical_text(event['title'])}")

    if event.get("location"):
        lines.append(f"LOCATION:{escape_ical_text(event['location'])}")

    description = build_description(event)
    if description:
        lines.append(f"DESCRIPTION:{escape_ical_text(description)}")

    lines.append(f"SEQUENCE:{resolve_sequence(event)}")
    lines.append(f"DTSTAMP:{format_utc_instant(clock())}")

    return ["BEGIN:VEVENT"] + [fold_ical_line(line) for line in lines] + ["END:VEVENT"]


def render_vevent(event, config: FeedConfig = DEFAULT_CONFIG, clock: Clock = utc_now) -> RenderResult:
    """Render one event record into a VEVENT block.

    Never raises for a bad record: the problem is reported in the result so
    the caller can skip the event and carry on with the rest of the feed.
    """
    if not isinstance(event, Mapping):
        return RenderResult.failure(None, f"expected a mapping, got {type(event).__name__}")

    event_id = event.get("id")
    try:
        lines = _event_lines(event, config, clock)
    except (ValueError, TypeError) as exc:
        return RenderResult.failure(event_id, str(exc) or type(exc).__name__)

    return RenderResult.success(event_id, CRLF.join(lines))


def generate_vtimezone(tz_name: str = DEFAULT_CONFIG.timezone) -> list[str]:
    """Generate the VTIMEZONE component for the feed timezone."""
    return ["BEGIN:VTIMEZONE", f"TZID:{tz_name}"] + VTIMEZONE_RULES + ["END:VTIMEZONE"]


def calendar_header(config: FeedConfig) -> list[str]:
    return [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        fold_ical_line(f"PRODID:{config.prodid}"),
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        fold_ical_line(f"X-WR-CALNAME:{escape_ical_text(config.calendar_name)}"),
        fold_ical_line(f"X-WR-TIMEZONE:{config.timezone}"),
        fold_ical_line(f"X-WR-CALDESC:{escape_ical_text(config.calendar_description)}"),
    ]


def _as_event_list(events) -> Sequence:
    if events is None or isinstance(events, (str, bytes, bytearray)):
        return []
    if not isinstance(events, Sequence):
        return []
    return events


def generate_icalendar(events, config: FeedConfig | None = None, clock: Clock | None = None) -> str:
    """Generate the complete iCalendar document for a sequence of event records.

    Events that cannot be rendered are logged and left out. Anything that
    goes wrong outside the per-event rendering propagates to the caller.
    """
    config = config or DEFAULT_CONFIG
    clock = clock or utc_now

    lines = calendar_header(config)
    lines.extend(generate_vtimezone(config.timezone))

    events = _as_event_list(events)
    skipped = 0
    for event in events:
        result = render_vevent(event, config, clock)
        if result.ok:
            lines.append(result.block)
        else:
            skipped += 1
            logger.error("Error generating VEVENT for event %s: %s", result.event_id, result.error)

    lines.append("END:VCALENDAR")

    logger.debug("Generated calendar with %d of %d events", len(events) - skipped, len(events))
    return CRLF.join(lines)


def build_calendar_feed(
    fetch_events: Callable[[], object],
    config: FeedConfig | None = None,
    clock: Clock | None = None,
) -> str:
    """Fetch events from the data layer and generate the feed.

    Raises CalendarFeedError with a generic message when the events cannot be
    fetched or the document cannot be assembled; the cause is logged.
    """
    try:
        events = fetch_events()
        return generate_icalendar(events, config=config, clock=clock)
    except Exception as exc:
        logger.exception("Error generating iCalendar feed")
        raise CalendarFeedError() from exc


def feed_headers(config: FeedConfig | None = None) -> dict[str, str]:
    """HTTP headers for serving the feed to calendar clients."""
    config = config or DEFAULT_CONFIG
    return {
        "Content-Type": "text/calendar; charset=utf-8",
        "Content-Disposition": f'inline; filename="{config.filename}"',
        "Cache-Control": "no-cache, no-store, must-revalidate",
        "Pragma": "no-cache",
        "Expires": "0",
    }


def copy_to_docs(feed_path: Path, docs_dir: Path) -> Path:
    """Copy the generated feed to docs/ for static hosting."""
    docs_dir.mkdir(parents=True, exist_ok=True)
    target = docs_dir / feed_path.name
    shutil.copy2(feed_path, target)
    print(f"Copied calendar file to {docs_dir}")
    return target


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Generate the Stamjer calendar feed from an event export")
    parser.add_argument("--sources", default=str(get_default_events_path()),
                        help="Path to the events YAML/JSON export")
    parser.add_argument("--output", default="../output", help="Output directory")
    parser.add_argument("--config", help="YAML file with feed settings")
    parser.add_argument("--publish", action="store_true",
                        help="Copy the generated file to docs/ for static hosting")
    parser.add_argument("--quiet", action="store_true", help="Do not print validation warnings")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    script_dir = Path(__file__).parent
    sources_path = (script_dir / args.sources).resolve()
    output_dir = (script_dir / args.output).resolve()

    if not sources_path.exists():
        print(f"Error: events file not found at {sources_path}")
        sys.exit(1)

    try:
        config = load_feed_config(args.config)
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    print(f"Loading events from {sources_path}...")
    events = load_events(sources_path)
    print(f"Loaded {len(events)} events")

    validate_all_events(events, quiet=args.quiet)

    try:
        calendar = build_calendar_feed(lambda: events, config=config)
    except CalendarFeedError as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / config.filename
    with open(output_path, "w", encoding="utf-8", newline="") as f:
        f.write(calendar)

    print(f"Generated {output_path} ({calendar.count('BEGIN:VEVENT')} events)")

    if args.publish:
        copy_to_docs(output_path, script_dir.parent / "docs")


if __name__ == "__main__":
    main()
