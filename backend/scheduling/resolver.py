"""Availability resolution.

Turns a professional's weekly templates, blocked intervals and booked
appointments into dated slots tagged ``available``, ``busy`` or ``blocked``.

Per date:

1. No active template for the weekday: nothing is emitted. A day the
   professional does not work is distinct from a blocked working day.
2. A full-day block: every template slot is emitted as ``blocked`` and
   points at that block, regardless of appointments.
3. Otherwise each template is walked on its own. A slot overlapped by an
   occupying appointment is ``busy``, one overlapped by a partial block is
   ``blocked``, anything else is ``available``.

Templates are walked in ``start_time`` order, so when templates do not
overlap the output for a date is chronological.

Resolution reads nothing but its ``ScheduleSnapshot`` argument, so it is safe
to call from any number of threads as long as each caller hands in a
read-consistent snapshot.
"""

import enum
from datetime import date
from typing import Iterable

from pydantic import BaseModel, ConfigDict

from backend.scheduling import clock
from backend.scheduling.appointments import AppointmentIndex, BookedAppointment
from backend.scheduling.blocks import BlockedInterval, ExceptionCalendar
from backend.scheduling.templates import TimeSlotTemplate, WeeklyAvailability, generate_slot_starts


class SlotStatus(str, enum.Enum):
    AVAILABLE = 'available'
    BUSY = 'busy'
    BLOCKED = 'blocked'


class ResolvedSlot(BaseModel):
    date: date
    time: str
    end_time: str
    duration_minutes: int
    status: SlotStatus
    occupant_ref: int | None = None
    template_id: int | None = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_available(self) -> bool:
        return self.status == SlotStatus.AVAILABLE

    @property
    def start_minute(self) -> int:
        return clock.to_minutes(self.time)

    @property
    def end_minute(self) -> int:
        return self.start_minute + self.duration_minutes


class ScheduleSnapshot:
    """The three resolver inputs, read together."""

    def __init__(
        self,
        availability: WeeklyAvailability | None = None,
        exceptions: ExceptionCalendar | None = None,
        appointments: AppointmentIndex | None = None,
    ):
        self.availability = availability if availability is not None else WeeklyAvailability()
        self.exceptions = exceptions if exceptions is not None else ExceptionCalendar()
        self.appointments = appointments if appointments is not None else AppointmentIndex()

    @classmethod
    def build(
        cls,
        templates: Iterable[TimeSlotTemplate] = (),
        blocks: Iterable[BlockedInterval] = (),
        appointments: Iterable[BookedAppointment] = (),
    ) -> 'ScheduleSnapshot':
        return cls(WeeklyAvailability(templates), ExceptionCalendar(blocks), AppointmentIndex(appointments))


def _resolve_slot(
    snapshot: ScheduleSnapshot,
    professional_id: str,
    day: date,
    template: TimeSlotTemplate,
    start_time: str,
    full_day_block: BlockedInterval | None,
    exclude_appointment_id: int | None,
) -> ResolvedSlot:
    duration = template.slot_duration
    status = SlotStatus.AVAILABLE
    occupant_ref = None

    if full_day_block is not None:
        status = SlotStatus.BLOCKED
        occupant_ref = full_day_block.id
    else:
        occupant = snapshot.appointments.occupant_during(
            professional_id, day, start_time, duration, exclude_appointment_id
        )
        if occupant is not None:
            status = SlotStatus.BUSY
            occupant_ref = occupant.id
        else:
            block = snapshot.exceptions.blocking_interval(professional_id, day, start_time, duration)
            if block is not None:
                status = SlotStatus.BLOCKED
                occupant_ref = block.id

    return ResolvedSlot(
        date=day,
        time=start_time,
        end_time=clock.add_minutes(start_time, duration),
        duration_minutes=duration,
        status=status,
        occupant_ref=occupant_ref,
        template_id=template.id,
    )


def resolve_day(
    snapshot: ScheduleSnapshot,
    professional_id: str,
    day: date,
    exclude_appointment_id: int | None = None,
) -> list[ResolvedSlot]:
    """Resolve one date. ``exclude_appointment_id`` ignores that appointment's occupancy."""
    templates = snapshot.availability.templates_for(professional_id, clock.day_of_week(day), on=day)
    if not templates:
        return []

    full_day_block = snapshot.exceptions.full_day_block(professional_id, day)

    slots: list[ResolvedSlot] = []
    for template in templates:
        for start_time in generate_slot_starts(template):
            slots.append(
                _resolve_slot(snapshot, professional_id, day, template, start_time, full_day_block, exclude_appointment_id)
            )

    return slots


def resolve_availability(
    snapshot: ScheduleSnapshot,
    professional_id: str,
    start: date,
    end: date | None = None,
) -> list[ResolvedSlot]:
    """Resolve every date in the inclusive range ``start..end`` (``end`` defaults to ``start``)."""
    slots: list[ResolvedSlot] = []
    for day in clock.iter_days(start, end or start):
        slots.extend(resolve_day(snapshot, professional_id, day))
    return slots
