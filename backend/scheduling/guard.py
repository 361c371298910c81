"""Pre-persistence checks for new and rescheduled appointments."""

from datetime import date

from backend.scheduling import clock
from backend.scheduling.errors import ConflictError, ValidationError
from backend.scheduling.resolver import ResolvedSlot, ScheduleSnapshot, SlotStatus, resolve_day

NO_AVAILABILITY_MESSAGE = 'No availability configured for this time.'
PARTIAL_AVAILABILITY_MESSAGE = 'The requested time extends beyond the configured availability.'
BUSY_MESSAGE = 'This time is no longer available.'
BLOCKED_MESSAGE = 'This time is blocked.'


def _is_covered(slots: list[ResolvedSlot], start: int, end: int) -> bool:
    cursor = start
    for slot in sorted(slots, key=lambda item: item.start_minute):
        if slot.start_minute > cursor:
            return False
        cursor = max(cursor, slot.end_minute)
    return cursor >= end


def check_booking_conflict(
    snapshot: ScheduleSnapshot,
    professional_id: str,
    day: date,
    start_time: str,
    duration_minutes: int,
    exclude_appointment_id: int | None = None,
) -> list[ResolvedSlot]:
    """Validate ``[start_time, start_time + duration_minutes)`` against the resolved day.

    Returns the slots the window intersects. Pass ``exclude_appointment_id``
    when re-validating an edit so the appointment does not collide with its
    own current booking. Nothing is mutated.
    """
    start = clock.to_minutes(start_time)
    end = clock.window_end(start_time, duration_minutes)

    slots = resolve_day(snapshot, professional_id, day, exclude_appointment_id=exclude_appointment_id)
    intersecting = [slot for slot in slots if clock.minutes_overlap(slot.start_minute, slot.end_minute, start, end)]

    for slot in intersecting:
        if slot.status == SlotStatus.BUSY:
            raise ConflictError(BUSY_MESSAGE, status=slot.status.value, occupant_ref=slot.occupant_ref)

    for slot in intersecting:
        if slot.status == SlotStatus.BLOCKED:
            raise ConflictError(BLOCKED_MESSAGE, status=slot.status.value, occupant_ref=slot.occupant_ref)

    if not intersecting:
        raise ValidationError(NO_AVAILABILITY_MESSAGE)

    if not _is_covered(intersecting, start, end):
        raise ValidationError(PARTIAL_AVAILABILITY_MESSAGE)

    return intersecting


def check_booking_window(day: date, today: date, min_advance_days: int, max_advance_days: int) -> None:
    """Reject dates closer than ``min_advance_days`` or further than ``max_advance_days`` from ``today``."""
    lead_days = (day - today).days

    if lead_days < min_advance_days:
        if min_advance_days == 0:
            raise ValidationError('Appointments cannot be booked in the past.')
        raise ValidationError(f'Appointments must be booked at least {min_advance_days} day(s) in advance.')

    if lead_days > max_advance_days:
        raise ValidationError(f'Appointments can only be booked up to {max_advance_days} day(s) ahead.')
