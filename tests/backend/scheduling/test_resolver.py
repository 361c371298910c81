from datetime import date, timedelta

from backend.scheduling import clock
from backend.scheduling.appointments import BookedAppointment
from backend.scheduling.blocks import BlockedInterval
from backend.scheduling.resolver import ScheduleSnapshot, SlotStatus, resolve_availability, resolve_day
from backend.scheduling.templates import TimeSlotTemplate

MONDAY = date(2024, 1, 1)
TUESDAY = date(2024, 1, 2)
PROFESSIONAL = 'pro-1'

MORNING_SLOTS = ['09:00', '09:30', '10:00', '10:30', '11:00', '11:30', '12:00', '12:30']


def monday_template(**overrides) -> TimeSlotTemplate:
    values = {
        'id': 10,
        'professional_id': PROFESSIONAL,
        'day_of_week': 1,
        'start_time': '09:00',
        'end_time': '13:00',
        'slot_duration': 30,
    }
    values.update(overrides)
    return TimeSlotTemplate(**values)


def appointment(**overrides) -> BookedAppointment:
    values = {
        'id': 100,
        'professional_id': PROFESSIONAL,
        'patient_id': 'patient-1',
        'date': MONDAY,
        'start_time': '10:00',
        'duration': 30,
        'status': 'confirmed',
    }
    values.update(overrides)
    return BookedAppointment(**values)


def block(**overrides) -> BlockedInterval:
    values = {'id': 200, 'professional_id': PROFESSIONAL, 'date': MONDAY, 'reason': 'Meeting'}
    values.update(overrides)
    return BlockedInterval(**values)


def test_template_only_day_is_fully_available() -> None:
    snapshot = ScheduleSnapshot.build(templates=[monday_template()])

    slots = resolve_day(snapshot, PROFESSIONAL, MONDAY)

    assert [slot.time for slot in slots] == MORNING_SLOTS
    assert all(slot.status == SlotStatus.AVAILABLE for slot in slots)
    assert all(slot.occupant_ref is None for slot in slots)
    assert all(slot.template_id == 10 for slot in slots)


def test_confirmed_appointment_marks_its_slot_busy() -> None:
    snapshot = ScheduleSnapshot.build(templates=[monday_template()], appointments=[appointment()])

    slots = {slot.time: slot for slot in resolve_day(snapshot, PROFESSIONAL, MONDAY)}

    assert slots['10:00'].status == SlotStatus.BUSY
    assert slots['10:00'].occupant_ref == 100
    assert [time for time, slot in slots.items() if slot.status != SlotStatus.AVAILABLE] == ['10:00']


def test_partial_block_marks_its_slot_blocked() -> None:
    snapshot = ScheduleSnapshot.build(
        templates=[monday_template()],
        blocks=[block(start_time='11:00', end_time='11:30')],
    )

    slots = {slot.time: slot for slot in resolve_day(snapshot, PROFESSIONAL, MONDAY)}

    assert slots['11:00'].status == SlotStatus.BLOCKED
    assert slots['11:00'].occupant_ref == 200
    assert slots['10:30'].status == SlotStatus.AVAILABLE
    assert slots['11:30'].status == SlotStatus.AVAILABLE


def test_busy_takes_precedence_over_partial_block() -> None:
    snapshot = ScheduleSnapshot.build(
        templates=[monday_template()],
        blocks=[block(start_time='10:00', end_time='10:30')],
        appointments=[appointment()],
    )

    slots = {slot.time: slot for slot in resolve_day(snapshot, PROFESSIONAL, MONDAY)}

    assert slots['10:00'].status == SlotStatus.BUSY


def test_full_day_block_dominates_appointments() -> None:
    snapshot = ScheduleSnapshot.build(
        templates=[monday_template(), monday_template(id=11, start_time='14:00', end_time='16:00')],
        blocks=[block(reason='Vacation')],
        appointments=[appointment()],
    )

    slots = resolve_day(snapshot, PROFESSIONAL, MONDAY)

    assert len(slots) == 12
    assert all(slot.status == SlotStatus.BLOCKED for slot in slots)
    assert all(slot.occupant_ref == 200 for slot in slots)


def test_day_without_templates_is_empty_even_when_blocked() -> None:
    snapshot = ScheduleSnapshot.build(
        templates=[monday_template()],
        blocks=[block(date=TUESDAY)],
    )

    assert resolve_day(snapshot, PROFESSIONAL, TUESDAY) == []


def test_cancelled_appointment_reopens_slot() -> None:
    snapshot = ScheduleSnapshot.build(templates=[monday_template()], appointments=[appointment(status='cancelled')])

    slots = {slot.time: slot for slot in resolve_day(snapshot, PROFESSIONAL, MONDAY)}

    assert slots['10:00'].status == SlotStatus.AVAILABLE


def test_appointment_spanning_several_slots_marks_each_busy() -> None:
    snapshot = ScheduleSnapshot.build(
        templates=[monday_template()],
        appointments=[appointment(start_time='10:00', duration=60)],
    )

    busy = [slot.time for slot in resolve_day(snapshot, PROFESSIONAL, MONDAY) if slot.status == SlotStatus.BUSY]

    assert busy == ['10:00', '10:30']


def test_exclude_appointment_id_ignores_own_occupancy() -> None:
    snapshot = ScheduleSnapshot.build(templates=[monday_template()], appointments=[appointment()])

    slots = resolve_day(snapshot, PROFESSIONAL, MONDAY, exclude_appointment_id=100)

    assert all(slot.status == SlotStatus.AVAILABLE for slot in slots)


def test_templates_are_walked_in_clock_order() -> None:
    snapshot = ScheduleSnapshot.build(templates=[
        monday_template(id=11, start_time='14:00', end_time='15:00'),
        monday_template(id=10, start_time='09:00', end_time='10:00'),
    ])

    slots = resolve_day(snapshot, PROFESSIONAL, MONDAY)

    assert [(slot.template_id, slot.time) for slot in slots] == [
        (10, '09:00'),
        (10, '09:30'),
        (11, '14:00'),
        (11, '14:30'),
    ]


def test_overlapping_legacy_templates_are_walked_independently() -> None:
    snapshot = ScheduleSnapshot.build(templates=[
        monday_template(id=10, start_time='09:00', end_time='10:00', slot_duration=30),
        monday_template(id=11, start_time='09:00', end_time='10:00', slot_duration=20),
    ])

    slots = resolve_day(snapshot, PROFESSIONAL, MONDAY)

    assert [slot.time for slot in slots if slot.template_id == 10] == ['09:00', '09:30']
    assert [slot.time for slot in slots if slot.template_id == 11] == ['09:00', '09:20', '09:40']


def test_resolve_is_idempotent() -> None:
    snapshot = ScheduleSnapshot.build(
        templates=[monday_template()],
        blocks=[block(start_time='11:00', end_time='11:30')],
        appointments=[appointment()],
    )

    first = resolve_availability(snapshot, PROFESSIONAL, MONDAY, MONDAY + timedelta(days=13))
    second = resolve_availability(snapshot, PROFESSIONAL, MONDAY, MONDAY + timedelta(days=13))

    assert first == second


def test_slots_stay_inside_template_and_are_evenly_spaced() -> None:
    template = monday_template(start_time='08:15', end_time='17:40', slot_duration=25)
    snapshot = ScheduleSnapshot.build(templates=[template])

    slots = resolve_day(snapshot, PROFESSIONAL, MONDAY)
    starts = [clock.to_minutes(slot.time) for slot in slots]

    assert starts[0] == clock.to_minutes('08:15')
    assert all(start + 25 <= clock.to_minutes('17:40') for start in starts)
    assert all(later - earlier == 25 for earlier, later in zip(starts, starts[1:]))


def test_resolve_availability_walks_range_in_date_order() -> None:
    snapshot = ScheduleSnapshot.build(templates=[
        monday_template(),
        monday_template(id=11, day_of_week=3, start_time='15:00', end_time='16:00'),
    ])

    slots = resolve_availability(snapshot, PROFESSIONAL, MONDAY, MONDAY + timedelta(days=7))

    assert sorted({slot.date for slot in slots}) == [MONDAY, date(2024, 1, 3), date(2024, 1, 8)]
    assert [slot.date for slot in slots] == sorted(slot.date for slot in slots)


def test_resolve_ignores_other_professionals() -> None:
    snapshot = ScheduleSnapshot.build(
        templates=[monday_template()],
        appointments=[appointment(professional_id='pro-2')],
        blocks=[block(professional_id='pro-2')],
    )

    assert all(slot.is_available for slot in resolve_day(snapshot, PROFESSIONAL, MONDAY))


def test_template_validity_window_limits_resolution() -> None:
    snapshot = ScheduleSnapshot.build(templates=[monday_template(valid_from=date(2024, 1, 8))])

    assert resolve_day(snapshot, PROFESSIONAL, MONDAY) == []
    assert len(resolve_day(snapshot, PROFESSIONAL, date(2024, 1, 8))) == 8
