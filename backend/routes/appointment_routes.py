from datetime import date

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.routes.dependencies import ensure_database_ready, get_db, to_http_exception
from backend.scheduling.appointments import AppointmentStatus, AppointmentType, BookedAppointment
from backend.scheduling.errors import SchedulingError
from backend.scheduling.resolver import ResolvedSlot
from backend.services import schedule_store
from backend.services.schedule_store import RecordNotFoundError

router = APIRouter(tags=['appointments'])

MAX_APPOINTMENT_NOTES_LENGTH = 600
MAX_UPCOMING_DAYS = 90


def _normalize_optional_text(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > MAX_APPOINTMENT_NOTES_LENGTH:
        raise ValueError(f'Text must be {MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

    return normalized


class BookingCheckRequest(BaseModel):
    professional_id: str
    date: date
    start_time: str
    duration: int
    exclude_appointment_id: int | None = None

    @field_validator('professional_id', 'start_time')
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Value is required.')
        return normalized


class BookingCheckResponse(BaseModel):
    available: bool
    slots: list[ResolvedSlot]


class CreateAppointmentRequest(BaseModel):
    professional_id: str
    patient_id: str
    date: date
    start_time: str
    duration: int
    appointment_type: AppointmentType = AppointmentType.FIRST_VISIT
    reason: str | None = None
    notes: str | None = None

    @field_validator('professional_id', 'patient_id', 'start_time')
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Value is required.')
        return normalized

    @field_validator('reason', 'notes')
    @classmethod
    def validate_optional_text(cls, value: str | None) -> str | None:
        return _normalize_optional_text(value)


class RescheduleAppointmentRequest(BaseModel):
    date: date
    start_time: str
    duration: int | None = None

    @field_validator('start_time')
    @classmethod
    def validate_start_time(cls, value: str) -> str:
        return value.strip()


class ChangeStatusRequest(BaseModel):
    status: AppointmentStatus
    cancellation_reason: str | None = None

    @field_validator('cancellation_reason')
    @classmethod
    def validate_cancellation_reason(cls, value: str | None) -> str | None:
        return _normalize_optional_text(value)


class CancelAppointmentRequest(BaseModel):
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return _normalize_optional_text(value)


class AppointmentStatsResponse(BaseModel):
    total: int
    scheduled: int
    confirmed: int
    in_progress: int
    completed: int
    cancelled: int
    no_show: int


@router.post('/check', response_model=BookingCheckResponse)
def check_booking(data: BookingCheckRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        slots = schedule_store.check_booking(
            db,
            data.professional_id,
            data.date,
            data.start_time,
            data.duration,
            exclude_appointment_id=data.exclude_appointment_id,
        )
    except (SchedulingError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc

    return BookingCheckResponse(available=True, slots=slots)


@router.post('', response_model=BookedAppointment, status_code=status.HTTP_201_CREATED)
def create_appointment(data: CreateAppointmentRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return schedule_store.book_appointment(
            db,
            professional_id=data.professional_id,
            patient_id=data.patient_id,
            day=data.date,
            start_time=data.start_time,
            duration_minutes=data.duration,
            appointment_type=data.appointment_type,
            reason=data.reason,
            notes=data.notes,
        )
    except (SchedulingError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc


@router.get('', response_model=list[BookedAppointment])
def list_appointments(
    professional_id: str | None = Query(default=None),
    patient_id: str | None = Query(default=None),
    status_filter: AppointmentStatus | None = Query(default=None, alias='status'),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return schedule_store.list_appointments(
            db,
            professional_id=professional_id,
            patient_id=patient_id,
            status=status_filter,
            start_date=start_date,
            end_date=end_date,
        )
    except SQLAlchemyError as exc:
        raise to_http_exception(exc) from exc


@router.get('/today', response_model=list[BookedAppointment])
def list_todays_appointments(
    professional_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return schedule_store.todays_appointments(db, professional_id=professional_id)
    except SQLAlchemyError as exc:
        raise to_http_exception(exc) from exc


@router.get('/upcoming', response_model=list[BookedAppointment])
def list_upcoming_appointments(
    professional_id: str | None = Query(default=None),
    days: int = Query(default=7, ge=1, le=MAX_UPCOMING_DAYS),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return schedule_store.upcoming_appointments(db, professional_id=professional_id, days=days)
    except (SchedulingError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc


@router.get('/stats', response_model=AppointmentStatsResponse)
def get_appointment_stats(
    professional_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return AppointmentStatsResponse(**schedule_store.appointment_stats(db, professional_id))
    except SQLAlchemyError as exc:
        raise to_http_exception(exc) from exc


@router.get('/{appointment_id}', response_model=BookedAppointment)
def get_appointment(appointment_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return schedule_store.get_appointment(db, appointment_id)
    except (SQLAlchemyError, RecordNotFoundError) as exc:
        raise to_http_exception(exc) from exc


@router.put('/{appointment_id}', response_model=BookedAppointment)
def reschedule_appointment(
    appointment_id: int,
    data: RescheduleAppointmentRequest,
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return schedule_store.reschedule_appointment(
            db,
            appointment_id,
            day=data.date,
            start_time=data.start_time,
            duration_minutes=data.duration,
        )
    except (SchedulingError, SQLAlchemyError, RecordNotFoundError) as exc:
        raise to_http_exception(exc) from exc


@router.patch('/{appointment_id}/status', response_model=BookedAppointment)
def change_appointment_status(
    appointment_id: int,
    data: ChangeStatusRequest,
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return schedule_store.change_status(
            db,
            appointment_id,
            data.status,
            cancellation_reason=data.cancellation_reason,
        )
    except (SchedulingError, SQLAlchemyError, RecordNotFoundError) as exc:
        raise to_http_exception(exc) from exc


@router.post('/{appointment_id}/cancel', response_model=BookedAppointment)
def cancel_appointment(
    appointment_id: int,
    data: CancelAppointmentRequest,
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return schedule_store.cancel_appointment(db, appointment_id, reason=data.reason)
    except (SchedulingError, SQLAlchemyError, RecordNotFoundError) as exc:
        raise to_http_exception(exc) from exc
