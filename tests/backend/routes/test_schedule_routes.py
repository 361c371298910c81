import os
from datetime import date

import pytest
from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from backend.routes.schedule_routes import (  # noqa: E402
    CreateBlockRequest,
    CreateTemplateRequest,
    UpdateTemplateRequest,
    create_blocks,
    create_template,
    delete_block,
    delete_template,
    get_schedule_config,
    list_available_slots,
    list_blocks,
    list_templates,
    update_template,
)
from backend.database import Base  # noqa: E402
from backend.models.appointment import Appointment  # noqa: E402
from backend.models.schedule import Schedule  # noqa: E402
from backend.models.schedule_block import ScheduleBlock  # noqa: E402
from backend.scheduling.resolver import SlotStatus  # noqa: E402

MONDAY = date(2024, 1, 1)


def test_create_template_request_strips_times_and_notes() -> None:
    request = CreateTemplateRequest(
        day_of_week=1,
        start_time=' 09:00 ',
        end_time='13:00 ',
        slot_duration=30,
        notes='  Morning clinic  ',
    )

    assert request.start_time == '09:00'
    assert request.end_time == '13:00'
    assert request.notes == 'Morning clinic'


def test_create_template_request_rejects_blank_time() -> None:
    with pytest.raises(ValidationError):
        CreateTemplateRequest(day_of_week=1, start_time='   ', end_time='13:00', slot_duration=30)


def test_create_block_request_rejects_long_reason() -> None:
    with pytest.raises(ValidationError):
        CreateBlockRequest(date=MONDAY, reason='x' * 201)


def test_create_block_request_treats_blank_times_as_full_day() -> None:
    request = CreateBlockRequest(date=MONDAY, start_time=' ', end_time='', reason=' Vacation ')

    assert request.start_time is None
    assert request.end_time is None
    assert request.reason == 'Vacation'


@pytest.fixture
def schedule_db(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr('backend.routes.schedule_routes.ensure_database_ready', lambda: None)

    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    tables = [Schedule.__table__, ScheduleBlock.__table__, Appointment.__table__]
    Base.metadata.create_all(bind=engine, tables=tables)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine, tables=tables)


def create_morning_template(db):
    return create_template(
        professional_id='pro-1',
        data=CreateTemplateRequest(day_of_week=1, start_time='09:00', end_time='13:00', slot_duration=30),
        db=db,
    )


def test_create_template_returns_created_template(schedule_db) -> None:
    template = create_morning_template(schedule_db)

    assert template.id is not None
    assert template.professional_id == 'pro-1'
    assert [item.id for item in list_templates(professional_id='pro-1', db=schedule_db)] == [template.id]


def test_create_template_rejects_malformed_time(schedule_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_template(
            professional_id='pro-1',
            data=CreateTemplateRequest(day_of_week=1, start_time='25:00', end_time='26:00', slot_duration=30),
            db=schedule_db,
        )

    assert exception_info.value.status_code == 400


def test_create_template_rejects_overlap(schedule_db) -> None:
    create_morning_template(schedule_db)

    with pytest.raises(HTTPException) as exception_info:
        create_template(
            professional_id='pro-1',
            data=CreateTemplateRequest(day_of_week=1, start_time='12:00', end_time='14:00', slot_duration=30),
            db=schedule_db,
        )

    assert exception_info.value.status_code == 400


def test_update_template_rejects_empty_changes(schedule_db) -> None:
    template = create_morning_template(schedule_db)

    with pytest.raises(HTTPException) as exception_info:
        update_template(
            professional_id='pro-1',
            template_id=template.id,
            data=UpdateTemplateRequest(),
            db=schedule_db,
        )

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'No template fields to update.'


def test_update_template_applies_only_sent_fields(schedule_db) -> None:
    template = create_morning_template(schedule_db)

    updated = update_template(
        professional_id='pro-1',
        template_id=template.id,
        data=UpdateTemplateRequest(slot_duration=60),
        db=schedule_db,
    )

    assert (updated.start_time, updated.end_time, updated.slot_duration) == ('09:00', '13:00', 60)


@pytest.mark.parametrize(
    'request_fields',
    [
        {'start_time': '   '},
        {'end_time': None},
        {'slot_duration': None},
        {'day_of_week': None},
        {'is_active': None},
    ],
)
def test_update_template_rejects_clearing_required_fields(schedule_db, request_fields: dict) -> None:
    template = create_morning_template(schedule_db)

    with pytest.raises(HTTPException) as exception_info:
        update_template(
            professional_id='pro-1',
            template_id=template.id,
            data=UpdateTemplateRequest(**request_fields),
            db=schedule_db,
        )

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail.startswith('Template fields cannot be cleared')
    assert list_templates(professional_id='pro-1', db=schedule_db) == [template]


def test_get_schedule_config_returns_templates_and_defaults(schedule_db) -> None:
    template = create_morning_template(schedule_db)

    schedule_config = get_schedule_config(professional_id='pro-1', db=schedule_db)

    assert schedule_config.professional_id == 'pro-1'
    assert schedule_config.templates == [template]
    assert schedule_config.default_slot_duration >= 1
    assert schedule_config.min_advance_booking_days <= schedule_config.max_advance_booking_days


def test_create_template_without_slot_duration_uses_default(schedule_db) -> None:
    template = create_template(
        professional_id='pro-1',
        data=CreateTemplateRequest(day_of_week=1, start_time='09:00', end_time='13:00'),
        db=schedule_db,
    )

    assert template.slot_duration == get_schedule_config(professional_id='pro-1', db=schedule_db).default_slot_duration


def test_update_template_returns_not_found_when_missing(schedule_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        update_template(
            professional_id='pro-1',
            template_id=999,
            data=UpdateTemplateRequest(slot_duration=60),
            db=schedule_db,
        )

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Schedule template not found.'


def test_delete_template_returns_not_found_when_missing(schedule_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        delete_template(professional_id='pro-1', template_id=999, db=schedule_db)

    assert exception_info.value.status_code == 404


def test_list_available_slots_reflects_blocks(schedule_db) -> None:
    create_morning_template(schedule_db)
    [block] = create_blocks(
        professional_id='pro-1',
        data=CreateBlockRequest(date=MONDAY, start_time='11:00', end_time='11:30', reason='Meeting'),
        db=schedule_db,
    )

    slots = list_available_slots(professional_id='pro-1', day=MONDAY, end_date=None, db=schedule_db)
    blocked = [slot for slot in slots if slot.status == SlotStatus.BLOCKED]

    assert len(slots) == 8
    assert [(slot.time, slot.occupant_ref) for slot in blocked] == [('11:00', block.id)]


def test_list_available_slots_is_empty_on_non_working_day(schedule_db) -> None:
    create_morning_template(schedule_db)

    assert list_available_slots(professional_id='pro-1', day=date(2024, 1, 2), end_date=None, db=schedule_db) == []


def test_list_available_slots_rejects_inverted_range(schedule_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        list_available_slots(professional_id='pro-1', day=MONDAY, end_date=date(2023, 12, 31), db=schedule_db)

    assert exception_info.value.status_code == 400


def test_create_blocks_rejects_half_specified_times(schedule_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_blocks(
            professional_id='pro-1',
            data=CreateBlockRequest(date=MONDAY, start_time='11:00'),
            db=schedule_db,
        )

    assert exception_info.value.status_code == 400


def test_list_and_delete_blocks(schedule_db) -> None:
    blocks = create_blocks(
        professional_id='pro-1',
        data=CreateBlockRequest(date=MONDAY, end_date=date(2024, 1, 2), reason='Conference'),
        db=schedule_db,
    )

    delete_block(professional_id='pro-1', block_id=blocks[0].id, db=schedule_db)
    remaining = list_blocks(professional_id='pro-1', start_date=MONDAY, end_date=date(2024, 1, 7), db=schedule_db)

    assert [block.date for block in remaining] == [date(2024, 1, 2)]


def test_delete_block_returns_not_found_for_other_professional(schedule_db) -> None:
    [block] = create_blocks(professional_id='pro-1', data=CreateBlockRequest(date=MONDAY), db=schedule_db)

    with pytest.raises(HTTPException) as exception_info:
        delete_block(professional_id='pro-2', block_id=block.id, db=schedule_db)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Blocked time not found.'
