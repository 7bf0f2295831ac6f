"""Tests for the low-level iCalendar text and date helpers."""

from datetime import date, datetime, timezone

import pytest

from ical_format import (
    ICalFormatError,
    escape_ical_text,
    fold_ical_line,
    format_date_only,
    format_local_datetime,
    format_utc_instant,
    next_calendar_day,
)

AMSTERDAM = "Europe/Amsterdam"


# ---------------------------------------------------------------------------
#  Text escaping
# ---------------------------------------------------------------------------

def test_escape_reserved_characters():
    assert escape_ical_text("a\\b;c,d\ne") == "a\\\\b\\;c\\,d\\ne"


def test_escape_backslash_before_other_characters():
    # A comma must become "\," and not "\\,"
    assert escape_ical_text(",") == "\\,"
    assert escape_ical_text("\\,") == "\\\\\\,"


def test_escape_windows_newline_is_one_newline():
    assert escape_ical_text("a\r\nb") == "a\\nb"


@pytest.mark.parametrize("value", [None, "", 0])
def test_escape_empty_values(value):
    assert escape_ical_text(value) == ""


def test_escape_plain_text_unchanged():
    assert escape_ical_text("Opkomst bij het clubhuis") == "Opkomst bij het clubhuis"


# ---------------------------------------------------------------------------
#  Line folding
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("length", [0, 1, 74, 75])
def test_fold_short_lines_unchanged(length):
    line = "x" * length
    assert fold_ical_line(line) == line


def test_fold_76_characters():
    line = "a" * 75 + "b"
    assert fold_ical_line(line) == "a" * 75 + "\r\n b"


def test_fold_continuation_segments_hold_74_characters():
    line = "a" * 75 + "b" * 74 + "c"
    assert fold_ical_line(line) == "a" * 75 + "\r\n " + "b" * 74 + "\r\n c"


def test_fold_unfolds_to_same_line():
    line = "DESCRIPTION:" + "abcdefghij" * 20
    folded = fold_ical_line(line)

    assert all(len(part) <= 75 for part in folded.split("\r\n"))
    assert folded.replace("\r\n ", "") == line


# ---------------------------------------------------------------------------
#  Timezone-local date-times
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("value, expected", [
    ("2024-06-01 14:00", "20240601T140000"),
    ("2024-06-01T14:00:30", "20240601T140030"),
    ("2024-06-01T14:00:00.123", "20240601T140000"),
    ("2024-01-15 09:15", "20240115T091500"),
    ("2024-06-01", "20240601T000000"),
])
def test_local_datetime_without_offset_is_wall_clock(value, expected):
    assert format_local_datetime(value, AMSTERDAM) == expected


@pytest.mark.parametrize("value, expected", [
    ("2024-06-01T12:00:00Z", "20240601T140000"),       # CEST, UTC+2
    ("2024-01-15T12:00:00Z", "20240115T130000"),       # CET, UTC+1
    ("2024-06-01T14:00:00+02:00", "20240601T140000"),
    ("2024-06-01T12:00:00.000+0000", "20240601T140000"),
    ("2024-10-27T00:30:00Z", "20241027T023000"),       # last hour of summer time
    ("2024-10-27T01:30:00Z", "20241027T023000"),       # first hour of winter time
])
def test_local_datetime_with_offset_is_converted(value, expected):
    assert format_local_datetime(value, AMSTERDAM) == expected


def test_local_datetime_from_datetime_objects():
    assert format_local_datetime(datetime(2024, 6, 1, 14, 0), AMSTERDAM) == "20240601T140000"
    aware = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
    assert format_local_datetime(aware, AMSTERDAM) == "20240601T140000"


def test_local_datetime_in_other_timezone():
    assert format_local_datetime("2024-06-01T12:00:00Z", "Europe/London") == "20240601T130000"


@pytest.mark.parametrize("value", [None, "", "not a date", "2024-02-30 10:00", "2024-06-01T25:00", 12345])
def test_local_datetime_rejects_invalid_values(value):
    with pytest.raises(ICalFormatError):
        format_local_datetime(value, AMSTERDAM)


def test_local_datetime_rejects_unknown_timezone():
    with pytest.raises(ICalFormatError):
        format_local_datetime("2024-06-01 14:00", "Mars/Olympus_Mons")


# ---------------------------------------------------------------------------
#  UTC instants and date-only values
# ---------------------------------------------------------------------------

def test_utc_instant():
    value = datetime(2024, 6, 1, 12, 0, 5, tzinfo=timezone.utc)
    assert format_utc_instant(value) == "20240601T120005Z"


def test_utc_instant_converts_offsets():
    assert format_utc_instant("2024-06-01T14:00:00+02:00") == "20240601T120000Z"


def test_utc_instant_rejects_garbage():
    with pytest.raises(ICalFormatError):
        format_utc_instant("yesterday")


@pytest.mark.parametrize("value", [
    "2024-03-10",
    "2024-03-10T00:00:00",
    "2024-03-10T23:30:00-05:00",
    date(2024, 3, 10),
    datetime(2024, 3, 10, 23, 59),
])
def test_date_only_uses_own_calendar_date(value):
    assert format_date_only(value) == "20240310"


def test_date_only_rejects_invalid_date():
    with pytest.raises(ICalFormatError):
        format_date_only("2024-13-01")


@pytest.mark.parametrize("value, expected", [
    ("2024-03-10", date(2024, 3, 11)),
    ("2024-02-28", date(2024, 2, 29)),
    (date(2024, 12, 31), date(2025, 1, 1)),
])
def test_next_calendar_day(value, expected):
    assert next_calendar_day(value) == expected
