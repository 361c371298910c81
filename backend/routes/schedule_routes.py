from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.routes.dependencies import ensure_database_ready, get_db, to_http_exception
from backend.scheduling.blocks import BlockedInterval
from backend.scheduling.errors import SchedulingError
from backend.scheduling.resolver import ResolvedSlot
from backend.scheduling.templates import TimeSlotTemplate
from backend.services import schedule_store
from backend.services.schedule_store import RecordNotFoundError

router = APIRouter(tags=['schedule'])

MAX_BLOCK_REASON_LENGTH = 200
MAX_TEMPLATE_NOTES_LENGTH = 600


def _strip_time(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    return normalized or None


class CreateTemplateRequest(BaseModel):
    day_of_week: int
    start_time: str
    end_time: str
    slot_duration: int | None = None
    is_active: bool = True
    valid_from: date | None = None
    valid_until: date | None = None
    notes: str | None = None

    @field_validator('start_time', 'end_time')
    @classmethod
    def normalize_time(cls, value: str) -> str:
        normalized = _strip_time(value)
        if normalized is None:
            raise ValueError('Time is required.')
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_TEMPLATE_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_TEMPLATE_NOTES_LENGTH} characters or fewer.')

        return normalized


class UpdateTemplateRequest(BaseModel):
    day_of_week: int | None = None
    start_time: str | None = None
    end_time: str | None = None
    slot_duration: int | None = None
    is_active: bool | None = None
    valid_from: date | None = None
    valid_until: date | None = None
    notes: str | None = None

    @field_validator('start_time', 'end_time')
    @classmethod
    def normalize_time(cls, value: str | None) -> str | None:
        return _strip_time(value)


class CreateBlockRequest(BaseModel):
    date: date
    end_date: date | None = None
    start_time: str | None = None
    end_time: str | None = None
    reason: str = ''
    recurring_yearly: bool = False

    @field_validator('start_time', 'end_time')
    @classmethod
    def normalize_time(cls, value: str | None) -> str | None:
        return _strip_time(value)

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str) -> str:
        normalized = value.strip()
        if len(normalized) > MAX_BLOCK_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_BLOCK_REASON_LENGTH} characters or fewer.')
        return normalized


class ScheduleConfigResponse(BaseModel):
    professional_id: str
    templates: list[TimeSlotTemplate]
    blocks: list[BlockedInterval]
    default_slot_duration: int
    min_advance_booking_days: int
    max_advance_booking_days: int


@router.get('/{professional_id}/templates', response_model=list[TimeSlotTemplate])
def list_templates(professional_id: str, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return schedule_store.list_templates(db, professional_id)
    except SQLAlchemyError as exc:
        raise to_http_exception(exc) from exc


@router.post('/{professional_id}/templates', response_model=TimeSlotTemplate, status_code=status.HTTP_201_CREATED)
def create_template(professional_id: str, data: CreateTemplateRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return schedule_store.create_template(db, professional_id, data.model_dump())
    except (SchedulingError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc


@router.put('/{professional_id}/templates/{template_id}', response_model=TimeSlotTemplate)
def update_template(
    professional_id: str,
    template_id: int,
    data: UpdateTemplateRequest,
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    changes = data.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='No template fields to update.',
        )

    try:
        return schedule_store.update_template(db, professional_id, template_id, changes)
    except (SchedulingError, SQLAlchemyError, RecordNotFoundError) as exc:
        raise to_http_exception(exc) from exc


@router.delete('/{professional_id}/templates/{template_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_template(professional_id: str, template_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        schedule_store.delete_template(db, professional_id, template_id)
    except (SQLAlchemyError, RecordNotFoundError) as exc:
        raise to_http_exception(exc) from exc


@router.get('/{professional_id}/config', response_model=ScheduleConfigResponse)
def get_schedule_config(professional_id: str, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return ScheduleConfigResponse(**schedule_store.get_schedule_config(db, professional_id))
    except (SchedulingError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc


@router.get('/{professional_id}/blocks', response_model=list[BlockedInterval])
def list_blocks(
    professional_id: str,
    start_date: date = Query(...),
    end_date: date = Query(...),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return schedule_store.list_blocks(db, professional_id, start_date, end_date)
    except (SchedulingError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc


@router.post('/{professional_id}/blocks', response_model=list[BlockedInterval], status_code=status.HTTP_201_CREATED)
def create_blocks(professional_id: str, data: CreateBlockRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return schedule_store.create_blocks(
            db,
            professional_id,
            start_date=data.date,
            end_date=data.end_date,
            start_time=data.start_time,
            end_time=data.end_time,
            reason=data.reason,
            recurring_yearly=data.recurring_yearly,
        )
    except (SchedulingError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc


@router.delete('/{professional_id}/blocks/{block_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_block(professional_id: str, block_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        schedule_store.delete_block(db, professional_id, block_id)
    except (SQLAlchemyError, RecordNotFoundError) as exc:
        raise to_http_exception(exc) from exc


@router.get('/{professional_id}/available', response_model=list[ResolvedSlot])
def list_available_slots(
    professional_id: str,
    day: date = Query(..., alias='date'),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return schedule_store.get_availability(db, professional_id, day, end_date)
    except (SchedulingError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc
