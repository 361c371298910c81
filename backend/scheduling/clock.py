"""Clock-time helpers for ``HH:mm`` values within a single civil day."""

import re
from datetime import date, timedelta
from typing import Iterator

from backend.scheduling.errors import ValidationError

MINUTES_PER_DAY = 24 * 60
LAST_MINUTE = MINUTES_PER_DAY - 1

_TIME_PATTERN = re.compile(r'^([01]\d|2[0-3]):([0-5]\d)$')


def parse_time(value: str) -> str:
    if not isinstance(value, str):
        raise ValidationError(f'Time must be a string in HH:mm format, got {value!r}.')

    normalized = value.strip()
    if not _TIME_PATTERN.match(normalized):
        raise ValidationError(f'Time must be between 00:00 and 23:59 in HH:mm format, got {value!r}.')

    return normalized


def to_minutes(value: str) -> int:
    hours, minutes = parse_time(value).split(':')
    return int(hours) * 60 + int(minutes)


def from_minutes(total_minutes: int) -> str:
    if total_minutes < 0 or total_minutes > LAST_MINUTE:
        raise ValidationError('Time must stay within the same day (00:00 to 23:59).')

    return f'{total_minutes // 60:02d}:{total_minutes % 60:02d}'


def add_minutes(value: str, minutes: int) -> str:
    """Shift ``value`` by ``minutes`` without wrapping past midnight."""
    return from_minutes(to_minutes(value) + minutes)


def is_before(a: str, b: str) -> bool:
    return parse_time(a) < parse_time(b)


def is_after(a: str, b: str) -> bool:
    return parse_time(a) > parse_time(b)


def is_equal(a: str, b: str) -> bool:
    return parse_time(a) == parse_time(b)


def overlaps(a_start: str, a_end: str, b_start: str, b_end: str) -> bool:
    """Half-open ``[start, end)`` overlap test."""
    return minutes_overlap(to_minutes(a_start), to_minutes(a_end), to_minutes(b_start), to_minutes(b_end))


def minutes_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    return a_start < b_end and b_start < a_end


def require_positive_duration(duration_minutes: int) -> int:
    if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int) or duration_minutes <= 0:
        raise ValidationError('Duration must be a positive number of minutes.')

    return duration_minutes


def window_end(start_time: str, duration_minutes: int) -> int:
    """End of ``[start_time, start_time + duration)`` in minutes, rejecting past-midnight windows."""
    require_positive_duration(duration_minutes)
    end = to_minutes(start_time) + duration_minutes
    if end > LAST_MINUTE:
        raise ValidationError(f'A {duration_minutes} minute window starting at {start_time} runs past 23:59.')

    return end


def day_of_week(day: date) -> int:
    """0=Sunday .. 6=Saturday."""
    return (day.weekday() + 1) % 7


def iter_days(start: date, end: date) -> Iterator[date]:
    if end < start:
        raise ValidationError('End date must not be before start date.')

    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
