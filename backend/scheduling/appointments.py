"""Booked appointments: status rules and the per-day occupancy index."""

import enum
from bisect import bisect_right
from collections import Counter, defaultdict
from datetime import date, datetime
from typing import Iterable

from pydantic import BaseModel, ConfigDict, field_validator

from backend.scheduling import clock
from backend.scheduling.errors import InvalidTransitionError


class AppointmentStatus(str, enum.Enum):
    SCHEDULED = 'scheduled'
    CONFIRMED = 'confirmed'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    NO_SHOW = 'no_show'


class AppointmentType(str, enum.Enum):
    FIRST_VISIT = 'first_visit'
    FOLLOW_UP = 'follow_up'
    EMERGENCY = 'emergency'
    ROUTINE = 'routine'
    SPECIALIST = 'specialist'


OCCUPYING_STATUSES = frozenset({
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.IN_PROGRESS,
})

TERMINAL_STATUSES = frozenset({
    AppointmentStatus.COMPLETED,
    AppointmentStatus.CANCELLED,
    AppointmentStatus.NO_SHOW,
})

ALLOWED_TRANSITIONS = {
    AppointmentStatus.SCHEDULED: frozenset({
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }),
    AppointmentStatus.CONFIRMED: frozenset({
        AppointmentStatus.IN_PROGRESS,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }),
    AppointmentStatus.IN_PROGRESS: frozenset({AppointmentStatus.COMPLETED}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}


def transition_status(current: AppointmentStatus | str, target: AppointmentStatus | str) -> AppointmentStatus:
    current_status = AppointmentStatus(current)
    target_status = AppointmentStatus(target)

    if target_status not in ALLOWED_TRANSITIONS[current_status]:
        raise InvalidTransitionError(current_status.value, target_status.value)

    return target_status


class BookedAppointment(BaseModel):
    id: int | None = None
    professional_id: str
    patient_id: str
    date: date
    start_time: str
    duration: int
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    appointment_type: AppointmentType = AppointmentType.FIRST_VISIT
    reason: str | None = None
    notes: str | None = None
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator('start_time')
    @classmethod
    def validate_start_time(cls, value: str) -> str:
        return clock.parse_time(value)

    @field_validator('duration')
    @classmethod
    def validate_duration(cls, value: int) -> int:
        return clock.require_positive_duration(value)

    @property
    def is_occupying(self) -> bool:
        return self.status in OCCUPYING_STATUSES

    @property
    def start_minute(self) -> int:
        return clock.to_minutes(self.start_time)

    @property
    def end_minute(self) -> int:
        return self.start_minute + self.duration

    @property
    def end_time(self) -> str:
        return clock.from_minutes(min(self.end_minute, clock.LAST_MINUTE))


class _DayOccupancy:
    """Occupying appointments of one professional on one date, sorted by start.

    ``reach[i]`` is the latest end among ``appointments[:i + 1]`` so that a
    lookup can stop walking backwards as soon as nothing earlier can still be
    running.
    """

    def __init__(self, appointments: list[BookedAppointment]):
        self.appointments = sorted(appointments, key=lambda appointment: (appointment.start_minute, appointment.id or 0))
        self.starts = [appointment.start_minute for appointment in self.appointments]
        self.reach: list[int] = []
        latest = -1
        for appointment in self.appointments:
            latest = max(latest, appointment.end_minute)
            self.reach.append(latest)

    def overlapping(self, start: int, end: int, exclude_appointment_id: int | None = None) -> list[BookedAppointment]:
        found: list[BookedAppointment] = []
        index = bisect_right(self.starts, end - 1) - 1

        while index >= 0 and self.reach[index] > start:
            appointment = self.appointments[index]
            if appointment.end_minute > start and (
                exclude_appointment_id is None or appointment.id != exclude_appointment_id
            ):
                found.append(appointment)
            index -= 1

        found.reverse()
        return found


class AppointmentIndex:
    """Occupancy lookup over booked appointments.

    Lookups bisect on start time, so for a day without overlapping bookings
    ``occupant_at`` is O(log n).
    """

    def __init__(self, appointments: Iterable[BookedAppointment] = ()):
        grouped: dict[tuple[str, date], list[BookedAppointment]] = defaultdict(list)
        self._all: list[BookedAppointment] = []
        for appointment in appointments:
            self._all.append(appointment)
            if appointment.is_occupying:
                grouped[(appointment.professional_id, appointment.date)].append(appointment)

        self._days = {key: _DayOccupancy(items) for key, items in grouped.items()}

    def __iter__(self):
        return iter(self._all)

    def for_day(self, professional_id: str, day: date) -> list[BookedAppointment]:
        occupancy = self._days.get((professional_id, day))
        return list(occupancy.appointments) if occupancy else []

    def occupant_at(self, professional_id: str, day: date, time: str) -> BookedAppointment | None:
        minute = clock.to_minutes(time)
        return self._first_overlapping(professional_id, day, minute, minute + 1, None)

    def occupant_during(
        self,
        professional_id: str,
        day: date,
        time: str,
        duration_minutes: int,
        exclude_appointment_id: int | None = None,
    ) -> BookedAppointment | None:
        start = clock.to_minutes(time)
        end = start + clock.require_positive_duration(duration_minutes)
        return self._first_overlapping(professional_id, day, start, end, exclude_appointment_id)

    def _first_overlapping(
        self,
        professional_id: str,
        day: date,
        start: int,
        end: int,
        exclude_appointment_id: int | None,
    ) -> BookedAppointment | None:
        occupancy = self._days.get((professional_id, day))
        if occupancy is None:
            return None

        found = occupancy.overlapping(start, end, exclude_appointment_id)
        return found[0] if found else None


def summarize_statuses(appointments: Iterable[BookedAppointment]) -> dict[str, int]:
    counts = Counter(AppointmentStatus(appointment.status).value for appointment in appointments)
    summary = {status.value: counts.get(status.value, 0) for status in AppointmentStatus}
    summary['total'] = sum(counts.values())
    return summary
