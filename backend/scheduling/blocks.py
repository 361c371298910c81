"""One-off blocked intervals (vacations, meetings, holidays)."""

from collections import defaultdict
from datetime import date
from typing import Iterable, Iterator

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from backend.scheduling import clock
from backend.scheduling.errors import ValidationError


class BlockedInterval(BaseModel):
    """A blocked span on one civil date. No times means the whole day."""

    id: int | None = None
    professional_id: str
    date: date
    start_time: str | None = None
    end_time: str | None = None
    reason: str = ''
    recurring_yearly: bool = False

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_clock_time(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return clock.parse_time(value)

    @model_validator(mode='after')
    def validate_window(self) -> 'BlockedInterval':
        if (self.start_time is None) != (self.end_time is None):
            raise ValidationError('A partial block needs both a start time and an end time.')
        if self.start_time is not None and not clock.is_before(self.start_time, self.end_time):
            raise ValidationError('Block start time must be before its end time.')
        return self

    @property
    def is_full_day(self) -> bool:
        return self.start_time is None

    def applies_on(self, day: date) -> bool:
        if self.recurring_yearly:
            return (self.date.month, self.date.day) == (day.month, day.day) and day >= self.date
        return self.date == day

    def covers(self, start_minute: int, end_minute: int) -> bool:
        if self.is_full_day:
            return True
        return clock.minutes_overlap(
            clock.to_minutes(self.start_time),
            clock.to_minutes(self.end_time),
            start_minute,
            end_minute,
        )


class ExceptionCalendar:
    """Read snapshot of blocked intervals, indexed by professional."""

    def __init__(self, blocks: Iterable[BlockedInterval] = ()):
        self._by_professional: dict[str, list[BlockedInterval]] = defaultdict(list)
        for block in blocks:
            self._by_professional[block.professional_id].append(block)

    def __iter__(self) -> Iterator[BlockedInterval]:
        for blocks in self._by_professional.values():
            yield from blocks

    def blocks_for(self, professional_id: str, day: date) -> list[BlockedInterval]:
        matching = [block for block in self._by_professional.get(professional_id, ()) if block.applies_on(day)]
        # Full-day blocks first, then partial blocks in clock order.
        return sorted(matching, key=lambda block: (not block.is_full_day, block.start_time or '', block.id or 0))

    def full_day_block(self, professional_id: str, day: date) -> BlockedInterval | None:
        for block in self.blocks_for(professional_id, day):
            if block.is_full_day:
                return block
        return None

    def is_date_fully_blocked(self, professional_id: str, day: date) -> bool:
        return self.full_day_block(professional_id, day) is not None

    def blocking_interval(
        self,
        professional_id: str,
        day: date,
        time: str,
        duration_minutes: int,
    ) -> BlockedInterval | None:
        start = clock.to_minutes(time)
        end = start + clock.require_positive_duration(duration_minutes)

        for block in self.blocks_for(professional_id, day):
            if block.covers(start, end):
                return block
        return None

    def is_time_blocked(self, professional_id: str, day: date, time: str, duration_minutes: int) -> bool:
        return self.blocking_interval(professional_id, day, time, duration_minutes) is not None
