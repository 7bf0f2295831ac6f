"""
Low-level iCalendar (RFC 5545) text helpers.

Escaping of text values, line folding, and the three date renderings used
by the feed generator:

    format_utc_instant("2024-06-01T12:00:00Z")        -> 20240601T120000Z
    format_local_datetime("2024-06-01 14:00")         -> 20240601T140000
    format_local_datetime("2024-06-01T12:00:00Z")     -> 20240601T140000
    format_date_only("2024-03-10")                    -> 20240310

Every formatter raises ICalFormatError when the value cannot be resolved to
a point in time.
"""

import re
from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

CRLF = "\r\n"
MAX_LINE_LENGTH = 75

# YYYY-MM-DD, optionally followed by a time, fraction and offset.
ISO_DATETIME_PATTERN = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})"
    r"(?:[ T](\d{2})(?::(\d{2})(?::(\d{2}))?)?)?"
    r"(?:\.(\d+))?"
    r"(Z|[+-]\d{2}:?\d{2})?$"
)


class ICalFormatError(ValueError):
    """A value could not be rendered as an iCalendar date or time."""


def escape_ical_text(text) -> str:
    r"""Escape special characters for iCal format.

    Per RFC 5545, these characters must be escaped with backslash:
    - Backslash itself: \\
    - Semicolon: \;
    - Comma: \,
    - Newline: \n (literal backslash-n in the file)
    """
    if not text:
        return ""
    text = str(text)
    # Order matters: escape backslashes first
    text = text.replace("\\", "\\\\")
    text = text.replace(";", "\\;")
    text = text.replace(",", "\\,")
    text = text.replace("\r\n", "\n")
    text = text.replace("\n", r"\n")
    return text


def fold_ical_line(line: str, max_length: int = MAX_LINE_LENGTH) -> str:
    """Fold one content line according to the iCal spec.

    The first physical line holds max_length characters, every continuation
    holds max_length - 1 characters after its leading space.
    """
    if len(line) <= max_length:
        return line

    result = [line[:max_length]]
    remaining = line[max_length:]
    step = max_length - 1
    while remaining:
        result.append(" " + remaining[:step])
        remaining = remaining[step:]
    return CRLF.join(result)


@lru_cache(maxsize=None)
def get_zone(tz_name: str) -> ZoneInfo:
    """Look up an IANA timezone, raising ICalFormatError for unknown names."""
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ICalFormatError(f"Unknown timezone: {tz_name!r}") from exc


def _parse_offset(raw: str) -> timezone:
    if raw == "Z":
        return timezone.utc
    sign = -1 if raw[0] == "-" else 1
    digits = raw[1:].replace(":", "")
    hours, minutes = int(digits[:2]), int(digits[2:])
    if minutes >= 60:
        raise ICalFormatError(f"Invalid UTC offset: {raw!r}")
    try:
        return timezone(sign * timedelta(hours=hours, minutes=minutes))
    except ValueError as exc:
        raise ICalFormatError(f"Invalid UTC offset: {raw!r}") from exc


def parse_datetime_string(value: str) -> datetime:
    """Parse an ISO-like date/time string.

    Returns a naive datetime when the string carries no offset or 'Z' marker,
    an aware one otherwise.
    """
    text = value.strip()
    match = ISO_DATETIME_PATTERN.match(text)
    if match:
        year, month, day, hour, minute, second, fraction, offset = match.groups()
        micro = int(fraction[:6].ljust(6, "0")) if fraction else 0
        tzinfo = _parse_offset(offset) if offset else None
        try:
            return datetime(
                int(year), int(month), int(day),
                int(hour or 0), int(minute or 0), int(second or 0),
                micro, tzinfo=tzinfo,
            )
        except ValueError as exc:
            raise ICalFormatError(f"Invalid date: {value!r}") from exc

    # Other ISO 8601 spellings (basic format, week dates, ...)
    try:
        return datetime.fromisoformat(text)
    except ValueError as exc:
        raise ICalFormatError(f"Unrecognized date format: {value!r}") from exc


def to_datetime(value) -> datetime:
    """Coerce a str, date or datetime into a datetime (naive or aware)."""
    if value is None or value == "":
        raise ICalFormatError("Missing date value")
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        return parse_datetime_string(value)
    raise ICalFormatError(f"Unsupported date value: {value!r}")


def to_calendar_date(value) -> date:
    """Return the calendar date a value names in its own frame of reference.

    An aware datetime keeps its own offset: 2024-03-10T23:30:00-05:00 is
    March 10th, even though it is already March 11th in UTC.
    """
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    return to_datetime(value).date()


def _basic_date(d: date) -> str:
    return f"{d.year:04d}{d.month:02d}{d.day:02d}"


def _basic_datetime(dt: datetime) -> str:
    return f"{_basic_date(dt)}T{dt.hour:02d}{dt.minute:02d}{dt.second:02d}"


def format_utc_instant(value) -> str:
    """Format an instant as YYYYMMDDTHHMMSSZ.

    Naive values are read as server local time before conversion to UTC.
    """
    dt = to_datetime(value)
    try:
        dt = dt.astimezone(timezone.utc)
    except (OverflowError, OSError) as exc:
        raise ICalFormatError(f"Date out of range: {value!r}") from exc
    return _basic_datetime(dt) + "Z"


def format_local_datetime(value, tz_name: str) -> str:
    """Format a value as wall-clock YYYYMMDDTHHMMSS in tz_name.

    Values without an offset are already wall-clock time in tz_name and are
    kept as they are. Values with an offset (or 'Z') are absolute instants
    and are converted into tz_name.
    """
    zone = get_zone(tz_name)
    dt = to_datetime(value)
    if dt.tzinfo is None:
        return _basic_datetime(dt)
    try:
        local = dt.astimezone(zone)
    except OverflowError as exc:
        raise ICalFormatError(f"Date out of range: {value!r}") from exc
    return _basic_datetime(local)


def format_date_only(value) -> str:
    """Format a value as YYYYMMDD for all-day events."""
    return _basic_date(to_calendar_date(value))


def next_calendar_day(value) -> date:
    """The day after the calendar date of value (exclusive all-day end)."""
    try:
        return to_calendar_date(value) + timedelta(days=1)
    except OverflowError as exc:
        raise ICalFormatError(f"Date out of range: {value!r}") from exc
