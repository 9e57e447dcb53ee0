from datetime import date, datetime, time, timezone

import pytest

from edubus.core.exceptions import ValidationError
from edubus.services.timeofday import (
    normalize_time_of_day,
    occurrence_window,
    parse_time_of_day,
    resolve_timezone,
)


def test_parse_accepts_minutes_and_seconds():
    assert parse_time_of_day("07:05") == time(7, 5)
    assert parse_time_of_day("7:05:30") == time(7, 5, 30)
    assert normalize_time_of_day("7:05") == "07:05"
    assert normalize_time_of_day("07:05:09") == "07:05:09"


@pytest.mark.parametrize("value", ["24:00", "07:60", "07:00:60", "seven", "", None])
def test_parse_rejects_malformed_or_out_of_range(value):
    with pytest.raises(ValidationError):
        parse_time_of_day(value)


def test_unknown_timezone_is_a_validation_error():
    with pytest.raises(ValidationError):
        resolve_timezone("Mars/Olympus_Mons")
    with pytest.raises(ValidationError):
        resolve_timezone("")


def test_local_time_converts_to_utc():
    tz = resolve_timezone("Asia/Ho_Chi_Minh")
    start, end = occurrence_window(date(2024, 3, 4), time(7, 0), time(8, 0), tz)
    assert start == datetime(2024, 3, 4, 0, 0, tzinfo=timezone.utc)
    assert end == datetime(2024, 3, 4, 1, 0, tzinfo=timezone.utc)


def test_end_before_start_rolls_to_next_day():
    tz = resolve_timezone("UTC")
    start, end = occurrence_window(date(2024, 3, 4), time(22, 0), time(1, 0), tz)
    assert start == datetime(2024, 3, 4, 22, 0, tzinfo=timezone.utc)
    assert end == datetime(2024, 3, 5, 1, 0, tzinfo=timezone.utc)


def test_nonexistent_local_time_moves_forward_across_the_gap():
    tz = resolve_timezone("America/New_York")
    # 02:30 does not exist on 2024-03-10; fold=0 resolves it with the pre-transition offset.
    start, _ = occurrence_window(date(2024, 3, 10), time(2, 30), time(4, 0), tz)
    assert start == datetime(2024, 3, 10, 7, 30, tzinfo=timezone.utc)


def test_ambiguous_local_time_uses_first_occurrence():
    tz = resolve_timezone("America/New_York")
    # 01:30 happens twice on 2024-11-03; the first is still EDT (UTC-4).
    start, _ = occurrence_window(date(2024, 11, 3), time(1, 30), time(3, 0), tz)
    assert start == datetime(2024, 11, 3, 5, 30, tzinfo=timezone.utc)
