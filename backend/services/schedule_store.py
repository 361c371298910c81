"""SQLAlchemy-backed reads and writes around the scheduling core.

Every write re-validates through the core before committing, and every
error rolls the session back before it is re-raised.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core import config
from backend.models.appointment import Appointment
from backend.models.schedule import Schedule
from backend.models.schedule_block import ScheduleBlock
from backend.scheduling import clock
from backend.scheduling.appointments import (
    AppointmentIndex,
    AppointmentStatus,
    AppointmentType,
    BookedAppointment,
    summarize_statuses,
    transition_status,
)
from backend.scheduling.blocks import BlockedInterval, ExceptionCalendar
from backend.scheduling.errors import ConflictError, SchedulingError, ValidationError
from backend.scheduling.guard import BUSY_MESSAGE, check_booking_conflict, check_booking_window
from backend.scheduling.resolver import ResolvedSlot, ScheduleSnapshot, resolve_availability
from backend.scheduling.templates import TimeSlotTemplate, WeeklyAvailability

logger = logging.getLogger(__name__)

MAX_BLOCK_RANGE_DAYS = 366

RESCHEDULABLE_STATUSES = frozenset({AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED})

REQUIRED_TEMPLATE_FIELDS = ('day_of_week', 'start_time', 'end_time', 'slot_duration', 'is_active')


class RecordNotFoundError(LookupError):
    pass


def _get_schedule_row(db: Session, professional_id: str, template_id: int) -> Schedule:
    row = db.query(Schedule).filter(
        Schedule.id == template_id,
        Schedule.professional_id == professional_id,
    ).first()
    if row is None:
        raise RecordNotFoundError('Schedule template not found.')
    return row


def _appointment_values(appointment: BookedAppointment) -> dict[str, Any]:
    values = appointment.model_dump(exclude={'id'})
    values['status'] = appointment.status.value
    values['appointment_type'] = appointment.appointment_type.value
    return values


def _get_appointment_row(db: Session, appointment_id: int) -> Appointment:
    row = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if row is None:
        raise RecordNotFoundError('Appointment not found.')
    return row


# Snapshot ------------------------------------------------------------------


def load_snapshot(db: Session, professional_id: str, start: date, end: date | None = None) -> ScheduleSnapshot:
    """Read templates, blocks and appointments for ``start..end`` in one transaction."""
    end = end or start

    schedule_rows = db.query(Schedule).filter(Schedule.professional_id == professional_id).all()

    block_rows = db.query(ScheduleBlock).filter(
        ScheduleBlock.professional_id == professional_id,
        or_(
            ScheduleBlock.date.between(start, end),
            (ScheduleBlock.recurring_yearly.is_(True)) & (ScheduleBlock.date <= end),
        ),
    ).all()

    appointment_rows = db.query(Appointment).filter(
        Appointment.professional_id == professional_id,
        Appointment.date.between(start, end),
    ).all()

    return ScheduleSnapshot(
        WeeklyAvailability(TimeSlotTemplate.model_validate(row) for row in schedule_rows),
        ExceptionCalendar(BlockedInterval.model_validate(row) for row in block_rows),
        AppointmentIndex(BookedAppointment.model_validate(row) for row in appointment_rows),
    )


def get_availability(db: Session, professional_id: str, start: date, end: date | None = None) -> list[ResolvedSlot]:
    end = end or start
    if end < start:
        raise ValidationError('End date must not be before start date.')
    if (end - start).days + 1 > config.MAX_RESOLVE_RANGE_DAYS:
        raise ValidationError(f'Availability can be requested for at most {config.MAX_RESOLVE_RANGE_DAYS} days at a time.')

    snapshot = load_snapshot(db, professional_id, start, end)
    return resolve_availability(snapshot, professional_id, start, end)


# Templates -----------------------------------------------------------------


def list_templates(db: Session, professional_id: str) -> list[TimeSlotTemplate]:
    rows = db.query(Schedule).filter(Schedule.professional_id == professional_id).order_by(
        Schedule.day_of_week.asc(),
        Schedule.start_time.asc(),
    ).all()
    return [TimeSlotTemplate.model_validate(row) for row in rows]


def _existing_templates(db: Session, professional_id: str) -> WeeklyAvailability:
    return WeeklyAvailability(list_templates(db, professional_id))


def create_template(db: Session, professional_id: str, values: dict[str, Any]) -> TimeSlotTemplate:
    try:
        if values.get('slot_duration') is None:
            values = {**values, 'slot_duration': config.DEFAULT_SLOT_DURATION}
        candidate = TimeSlotTemplate(professional_id=professional_id, **values)
        _existing_templates(db, professional_id).ensure_no_overlap(candidate)

        row = Schedule(**candidate.model_dump(exclude={'id'}))
        db.add(row)
        db.commit()
        db.refresh(row)
    except (SchedulingError, SQLAlchemyError):
        db.rollback()
        raise

    logger.info('Created schedule template %s for professional %s', row.id, professional_id)
    return TimeSlotTemplate.model_validate(row)


def update_template(db: Session, professional_id: str, template_id: int, changes: dict[str, Any]) -> TimeSlotTemplate:
    try:
        row = _get_schedule_row(db, professional_id, template_id)
        missing = [field_name for field_name in REQUIRED_TEMPLATE_FIELDS if field_name in changes and changes[field_name] is None]
        if missing:
            raise ValidationError(f'Template fields cannot be cleared: {", ".join(missing)}.')

        current = TimeSlotTemplate.model_validate(row)
        candidate = TimeSlotTemplate(**{**current.model_dump(), **changes, 'professional_id': professional_id})
        _existing_templates(db, professional_id).ensure_no_overlap(candidate)

        for field_name, value in candidate.model_dump(exclude={'id', 'professional_id'}).items():
            setattr(row, field_name, value)
        db.commit()
        db.refresh(row)
    except (SchedulingError, SQLAlchemyError, RecordNotFoundError):
        db.rollback()
        raise

    logger.info('Updated schedule template %s for professional %s', template_id, professional_id)
    return TimeSlotTemplate.model_validate(row)


def delete_template(db: Session, professional_id: str, template_id: int) -> None:
    try:
        row = _get_schedule_row(db, professional_id, template_id)
        db.delete(row)
        db.commit()
    except (SQLAlchemyError, RecordNotFoundError):
        db.rollback()
        raise

    logger.info('Deleted schedule template %s for professional %s', template_id, professional_id)


def get_schedule_config(db: Session, professional_id: str, today: date | None = None) -> dict[str, Any]:
    """Templates, blocks inside the booking window and the booking defaults, read together."""
    today = today or date.today()
    horizon = today + timedelta(days=config.MAX_ADVANCE_BOOKING_DAYS)

    return {
        'professional_id': professional_id,
        'templates': list_templates(db, professional_id),
        'blocks': list_blocks(db, professional_id, today, horizon),
        'default_slot_duration': config.DEFAULT_SLOT_DURATION,
        'min_advance_booking_days': config.MIN_ADVANCE_BOOKING_DAYS,
        'max_advance_booking_days': config.MAX_ADVANCE_BOOKING_DAYS,
    }


# Blocks --------------------------------------------------------------------


def list_blocks(db: Session, professional_id: str, start: date, end: date) -> list[BlockedInterval]:
    if end < start:
        raise ValidationError('End date must not be before start date.')

    calendar = load_snapshot(db, professional_id, start, end).exceptions
    blocks: list[BlockedInterval] = []
    for day in clock.iter_days(start, end):
        for block in calendar.blocks_for(professional_id, day):
            if block not in blocks:
                blocks.append(block)
    return blocks


def create_blocks(
    db: Session,
    professional_id: str,
    start_date: date,
    end_date: date | None = None,
    start_time: str | None = None,
    end_time: str | None = None,
    reason: str = '',
    recurring_yearly: bool = False,
) -> list[BlockedInterval]:
    """Block one date or every date of an inclusive range (one row per day)."""
    end_date = end_date or start_date

    try:
        if (end_date - start_date).days + 1 > MAX_BLOCK_RANGE_DAYS:
            raise ValidationError(f'A block can span at most {MAX_BLOCK_RANGE_DAYS} days.')

        candidates = [
            BlockedInterval(
                professional_id=professional_id,
                date=day,
                start_time=start_time,
                end_time=end_time,
                reason=reason,
                recurring_yearly=recurring_yearly,
            )
            for day in clock.iter_days(start_date, end_date)
        ]

        rows = [ScheduleBlock(**candidate.model_dump(exclude={'id'})) for candidate in candidates]
        db.add_all(rows)
        db.commit()
        for row in rows:
            db.refresh(row)
    except (SchedulingError, SQLAlchemyError):
        db.rollback()
        raise

    blocks = [BlockedInterval.model_validate(row) for row in rows]
    _warn_about_booked_appointments(db, professional_id, blocks)
    logger.info('Created %d block(s) for professional %s', len(blocks), professional_id)
    return blocks


def _warn_about_booked_appointments(db: Session, professional_id: str, blocks: list[BlockedInterval]) -> None:
    # Existing bookings keep their slot; the professional has to reschedule them.
    index = load_snapshot(db, professional_id, blocks[0].date, blocks[-1].date).appointments
    for block in blocks:
        for appointment in index.for_day(professional_id, block.date):
            if block.covers(appointment.start_minute, appointment.end_minute):
                logger.warning(
                    'Block %s on %s overlaps booked appointment %s at %s',
                    block.id,
                    block.date,
                    appointment.id,
                    appointment.start_time,
                )


def delete_block(db: Session, professional_id: str, block_id: int) -> None:
    try:
        row = db.query(ScheduleBlock).filter(
            ScheduleBlock.id == block_id,
            ScheduleBlock.professional_id == professional_id,
        ).first()
        if row is None:
            raise RecordNotFoundError('Blocked time not found.')

        db.delete(row)
        db.commit()
    except (SQLAlchemyError, RecordNotFoundError):
        db.rollback()
        raise

    logger.info('Deleted block %s for professional %s', block_id, professional_id)


# Appointments --------------------------------------------------------------


def check_booking(
    db: Session,
    professional_id: str,
    day: date,
    start_time: str,
    duration_minutes: int,
    exclude_appointment_id: int | None = None,
    today: date | None = None,
) -> list[ResolvedSlot]:
    if config.ENFORCE_BOOKING_WINDOW:
        check_booking_window(
            day,
            today or date.today(),
            config.MIN_ADVANCE_BOOKING_DAYS,
            config.MAX_ADVANCE_BOOKING_DAYS,
        )

    snapshot = load_snapshot(db, professional_id, day)
    return check_booking_conflict(snapshot, professional_id, day, start_time, duration_minutes, exclude_appointment_id)


def book_appointment(
    db: Session,
    professional_id: str,
    patient_id: str,
    day: date,
    start_time: str,
    duration_minutes: int,
    appointment_type: AppointmentType | str = AppointmentType.FIRST_VISIT,
    reason: str | None = None,
    notes: str | None = None,
    today: date | None = None,
) -> BookedAppointment:
    """Re-check availability and insert in the same transaction."""
    try:
        check_booking(db, professional_id, day, start_time, duration_minutes, today=today)

        candidate = BookedAppointment(
            professional_id=professional_id,
            patient_id=patient_id,
            date=day,
            start_time=start_time,
            duration=duration_minutes,
            status=AppointmentStatus.SCHEDULED,
            appointment_type=appointment_type,
            reason=reason,
            notes=notes,
        )
        row = Appointment(**_appointment_values(candidate))
        db.add(row)
        db.commit()
        db.refresh(row)
    except IntegrityError as exc:
        db.rollback()
        logger.warning('Concurrent booking for professional %s on %s at %s', professional_id, day, start_time)
        raise ConflictError(BUSY_MESSAGE, status='busy') from exc
    except ConflictError as exc:
        db.rollback()
        logger.info('Booking rejected for professional %s on %s at %s: %s', professional_id, day, start_time, exc.message)
        raise
    except (SchedulingError, SQLAlchemyError):
        db.rollback()
        raise

    logger.info('Booked appointment %s for professional %s on %s at %s', row.id, professional_id, day, start_time)
    return BookedAppointment.model_validate(row)


def reschedule_appointment(
    db: Session,
    appointment_id: int,
    day: date,
    start_time: str,
    duration_minutes: int | None = None,
    today: date | None = None,
) -> BookedAppointment:
    """Move a live appointment, ignoring its own current booking during the check."""
    try:
        row = _get_appointment_row(db, appointment_id)
        current = BookedAppointment.model_validate(row)
        if current.status not in RESCHEDULABLE_STATUSES:
            raise ValidationError(f'Appointments in status {current.status.value} cannot be rescheduled.')

        duration_minutes = current.duration if duration_minutes is None else duration_minutes
        check_booking(
            db,
            current.professional_id,
            day,
            start_time,
            duration_minutes,
            exclude_appointment_id=current.id,
            today=today,
        )

        row.date = day
        row.start_time = clock.parse_time(start_time)
        row.duration = duration_minutes
        db.commit()
        db.refresh(row)
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError(BUSY_MESSAGE, status='busy') from exc
    except (SchedulingError, SQLAlchemyError, RecordNotFoundError):
        db.rollback()
        raise

    logger.info('Rescheduled appointment %s to %s at %s', appointment_id, day, start_time)
    return BookedAppointment.model_validate(row)


def change_status(
    db: Session,
    appointment_id: int,
    target: AppointmentStatus | str,
    cancellation_reason: str | None = None,
    now: datetime | None = None,
) -> BookedAppointment:
    """Apply a state-machine transition. Availability is not re-checked."""
    try:
        row = _get_appointment_row(db, appointment_id)
        previous = row.status
        new_status = transition_status(row.status, target)

        row.status = new_status.value
        if new_status == AppointmentStatus.CANCELLED:
            row.cancelled_at = now or datetime.now()
            row.cancellation_reason = cancellation_reason
        db.commit()
        db.refresh(row)
    except (SchedulingError, SQLAlchemyError, RecordNotFoundError):
        db.rollback()
        raise

    logger.info('Appointment %s moved from %s to %s', appointment_id, previous, new_status.value)
    return BookedAppointment.model_validate(row)


def cancel_appointment(
    db: Session,
    appointment_id: int,
    reason: str | None = None,
    now: datetime | None = None,
) -> BookedAppointment:
    return change_status(db, appointment_id, AppointmentStatus.CANCELLED, cancellation_reason=reason, now=now)


def get_appointment(db: Session, appointment_id: int) -> BookedAppointment:
    return BookedAppointment.model_validate(_get_appointment_row(db, appointment_id))


def list_appointments(
    db: Session,
    professional_id: str | None = None,
    patient_id: str | None = None,
    status: AppointmentStatus | str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[BookedAppointment]:
    query = db.query(Appointment)
    if professional_id:
        query = query.filter(Appointment.professional_id == professional_id)
    if patient_id:
        query = query.filter(Appointment.patient_id == patient_id)
    if status:
        query = query.filter(Appointment.status == AppointmentStatus(status).value)
    if start_date:
        query = query.filter(Appointment.date >= start_date)
    if end_date:
        query = query.filter(Appointment.date <= end_date)

    rows = query.order_by(Appointment.date.asc(), Appointment.start_time.asc(), Appointment.id.asc()).all()
    return [BookedAppointment.model_validate(row) for row in rows]


def appointment_stats(db: Session, professional_id: str | None = None) -> dict[str, int]:
    return summarize_statuses(list_appointments(db, professional_id=professional_id))



def todays_appointments(
    db: Session,
    professional_id: str | None = None,
    today: date | None = None,
) -> list[BookedAppointment]:
    today = today or date.today()
    return list_appointments(db, professional_id=professional_id, start_date=today, end_date=today)


def upcoming_appointments(
    db: Session,
    professional_id: str | None = None,
    days: int = 7,
    today: date | None = None,
) -> list[BookedAppointment]:
    """Appointments from ``today`` through ``today + days`` inclusive."""
    if days < 1:
        raise ValidationError('Days must be at least 1.')

    today = today or date.today()
    return list_appointments(
        db,
        professional_id=professional_id,
        start_date=today,
        end_date=today + timedelta(days=days),
    )
