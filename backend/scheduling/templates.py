"""Weekly availability: recurring per-weekday working windows."""

from datetime import date
from typing import Iterable, Iterator

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from backend.scheduling import clock
from backend.scheduling.errors import ValidationError


class TimeSlotTemplate(BaseModel):
    """A recurring weekly window cut into fixed-length slots."""

    id: int | None = None
    professional_id: str
    day_of_week: int
    start_time: str
    end_time: str
    slot_duration: int
    is_active: bool = True
    valid_from: date | None = None
    valid_until: date | None = None
    notes: str | None = None

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator('day_of_week')
    @classmethod
    def validate_day_of_week(cls, value: int) -> int:
        if value < 0 or value > 6:
            raise ValidationError('Day of week must be between 0 (Sunday) and 6 (Saturday).')
        return value

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_clock_time(cls, value: str) -> str:
        return clock.parse_time(value)

    @field_validator('slot_duration')
    @classmethod
    def validate_slot_duration(cls, value: int) -> int:
        return clock.require_positive_duration(value)

    @model_validator(mode='after')
    def validate_window(self) -> 'TimeSlotTemplate':
        if not clock.is_before(self.start_time, self.end_time):
            raise ValidationError('Template start time must be before its end time.')
        if self.valid_from and self.valid_until and self.valid_until < self.valid_from:
            raise ValidationError('Template validity must not end before it starts.')
        return self

    def applies_on(self, day: date) -> bool:
        if self.valid_from and day < self.valid_from:
            return False
        if self.valid_until and day > self.valid_until:
            return False
        return True

    def validity_overlaps(self, other: 'TimeSlotTemplate') -> bool:
        if self.valid_until and other.valid_from and self.valid_until < other.valid_from:
            return False
        if other.valid_until and self.valid_from and other.valid_until < self.valid_from:
            return False
        return True


def generate_slot_starts(template: TimeSlotTemplate) -> Iterator[str]:
    """Yield every slot start that leaves room for a full slot before ``end_time``."""
    current = clock.to_minutes(template.start_time)
    end = clock.to_minutes(template.end_time)

    while current + template.slot_duration <= end:
        yield clock.from_minutes(current)
        current += template.slot_duration


class WeeklyAvailability:
    """Read snapshot of every professional's weekly templates."""

    def __init__(self, templates: Iterable[TimeSlotTemplate] = ()):
        self._templates = tuple(templates)

    def __iter__(self) -> Iterator[TimeSlotTemplate]:
        return iter(self._templates)

    def __len__(self) -> int:
        return len(self._templates)

    def templates_for(self, professional_id: str, day_of_week: int, on: date | None = None) -> list[TimeSlotTemplate]:
        matching = [
            template
            for template in self._templates
            if template.professional_id == professional_id
            and template.day_of_week == day_of_week
            and template.is_active
            and (on is None or template.applies_on(on))
        ]
        return sorted(matching, key=lambda template: (template.start_time, template.id or 0))

    def overlapping_templates(self, candidate: TimeSlotTemplate) -> list[TimeSlotTemplate]:
        if not candidate.is_active:
            return []

        return [
            template
            for template in self.templates_for(candidate.professional_id, candidate.day_of_week)
            if (candidate.id is None or template.id != candidate.id)
            and template.validity_overlaps(candidate)
            and clock.overlaps(template.start_time, template.end_time, candidate.start_time, candidate.end_time)
        ]

    def ensure_no_overlap(self, candidate: TimeSlotTemplate) -> None:
        """Reject a template whose window collides with another active one on the same weekday."""
        overlapping = self.overlapping_templates(candidate)
        if overlapping:
            other = overlapping[0]
            raise ValidationError(
                f'Template {candidate.start_time}-{candidate.end_time} overlaps the existing '
                f'{other.start_time}-{other.end_time} window on the same day.'
            )
