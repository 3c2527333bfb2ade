"""Tests for moving appointments and for status actions."""

import uuid
import pytest
from datetime import date

from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.modules.appointments.repository import AppointmentRepository
from app.modules.appointments.schemas import AppointmentAction, AppointmentCreate
from app.modules.appointments.service import AppointmentService
from app.modules.schedules.service import ScheduleService

from builders import MONDAY, NEXT_MONDAY, ORG_ID, weekday_week


async def _book(service, doctor_id, at="10:10", on=NEXT_MONDAY):
    result = await service.book(ORG_ID, AppointmentCreate(doctor_id=doctor_id, patient_id=uuid.uuid4(), appointment_date=on, time=at))
    return result.appointment


class TestReschedule:
    async def test_moves_and_confirms(self, session, scheduled_doctor, clock):
        service = AppointmentService(session, clock=clock)
        appt = await _book(service, scheduled_doctor.id)
        moved = (await service.reschedule(ORG_ID, appt.id, date(2030, 1, 15), "14:15")).appointment
        assert (moved.appointment_date, moved.time) == (date(2030, 1, 15), "14:15")
        assert moved.status == "SCHEDULED"
        assert moved.reschedule_count == 1
        assert moved.version == appt.version + 1

    async def test_old_slot_is_released(self, session, scheduled_doctor, clock):
        service = AppointmentService(session, clock=clock)
        appt = await _book(service, scheduled_doctor.id)
        await service.reschedule(ORG_ID, appt.id, None, "10:45")
        other = await _book(service, scheduled_doctor.id, "10:10")
        assert other.time == "10:10"

    async def test_past_target_today_is_rejected_and_nothing_changes(self, session, scheduled_doctor, clock):
        """At 10:30 on Monday, 09:35 that day is in the past."""
        service = AppointmentService(session, clock=clock)
        appt = await _book(service, scheduled_doctor.id)
        with pytest.raises(ValidationError) as exc:
            await service.reschedule(ORG_ID, appt.id, MONDAY, "09:35")
        assert exc.value.details["reason"] == "past"
        after = await service.get(ORG_ID, appt.id)
        assert (after.appointment_date, after.time, after.status) == (NEXT_MONDAY, "10:10", "PENDING")
        assert after.reschedule_count == 0

    async def test_past_is_reported_before_the_slot_being_taken(self, session, scheduled_doctor, clock):
        service = AppointmentService(session, clock=clock)
        appt = await _book(service, scheduled_doctor.id)
        await AppointmentRepository(session).create(
            ORG_ID, doctor_id=scheduled_doctor.id, patient_id=uuid.uuid4(),
            appointment_date=MONDAY, time="09:00", duration=30, status="SCHEDULED", type="CONSULTATION",
        )
        await session.commit()
        with pytest.raises(ValidationError):
            await service.reschedule(ORG_ID, appt.id, MONDAY, "09:00")

    async def test_slot_held_by_another_appointment(self, session, scheduled_doctor, clock):
        service = AppointmentService(session, clock=clock)
        mine = await _book(service, scheduled_doctor.id, "10:10")
        await _book(service, scheduled_doctor.id, "10:45")
        with pytest.raises(ConflictError):
            await service.reschedule(ORG_ID, mine.id, None, "10:45")
        after = await service.get(ORG_ID, mine.id)
        assert after.time == "10:10"

    async def test_break_target(self, session, scheduled_doctor, clock):
        service = AppointmentService(session, clock=clock)
        appt = await _book(service, scheduled_doctor.id)
        with pytest.raises(ValidationError):
            await service.reschedule(ORG_ID, appt.id, None, "12:30")

    async def test_same_slot_counts_as_free_for_itself(self, session, scheduled_doctor, clock):
        """Re-confirming in place is allowed and still goes through the guarded update."""
        service = AppointmentService(session, clock=clock)
        appt = await _book(service, scheduled_doctor.id)
        moved = (await service.reschedule(ORG_ID, appt.id, NEXT_MONDAY, "10:10")).appointment
        assert moved.status == "SCHEDULED"

    async def test_same_day_move_at_full_capacity(self, session, doctor, clock):
        await ScheduleService(session).replace_schedule(ORG_ID, doctor.id, weekday_week(max_appointments=2))
        service = AppointmentService(session, clock=clock)
        appt = await _book(service, doctor.id, "09:00")
        await _book(service, doctor.id, "09:35")
        moved = (await service.reschedule(ORG_ID, appt.id, None, "15:25")).appointment
        assert moved.time == "15:25"

    async def test_move_into_a_full_day_is_refused(self, session, doctor, clock):
        await ScheduleService(session).replace_schedule(ORG_ID, doctor.id, weekday_week(max_appointments=2))
        service = AppointmentService(session, clock=clock)
        await _book(service, doctor.id, "09:00")
        await _book(service, doctor.id, "09:35")
        tuesday = await _book(service, doctor.id, "09:00", on=date(2030, 1, 15))
        with pytest.raises(ValidationError) as exc:
            await service.reschedule(ORG_ID, tuesday.id, NEXT_MONDAY, "10:10")
        assert exc.value.details["reason"] == "capacity"

    async def test_inactive_appointment_cannot_move(self, session, scheduled_doctor, clock):
        service = AppointmentService(session, clock=clock)
        appt = await _book(service, scheduled_doctor.id)
        await service.transition(ORG_ID, appt.id, "CANCEL")
        with pytest.raises(ValidationError):
            await service.reschedule(ORG_ID, appt.id, None, "10:45")

    async def test_unknown_appointment(self, session, clock):
        with pytest.raises(NotFoundError):
            await AppointmentService(session, clock=clock).reschedule(ORG_ID, uuid.uuid4(), None, "10:45")

    async def test_stale_version_does_not_move(self, session, scheduled_doctor, clock):
        service = AppointmentService(session, clock=clock)
        appt = await _book(service, scheduled_doctor.id)
        moved = await AppointmentRepository(session).move(
            ORG_ID, appt.id, appt.version + 5, new_date=NEXT_MONDAY, new_time="10:45", duration=30, status="SCHEDULED",
        )
        assert moved is False
        await session.rollback()
        assert (await service.get(ORG_ID, appt.id)).time == "10:10"


class TestActions:
    async def test_accept_then_complete(self, session, scheduled_doctor, clock):
        service = AppointmentService(session, clock=clock)
        appt = await _book(service, scheduled_doctor.id)
        accepted = (await service.apply_action(ORG_ID, AppointmentAction(appointment_id=appt.id, action="ACCEPT"))).appointment
        assert accepted.status == "SCHEDULED"
        done = (await service.apply_action(ORG_ID, AppointmentAction(appointment_id=appt.id, action="COMPLETE"))).appointment
        assert done.status == "COMPLETED"

    async def test_illegal_transition(self, session, scheduled_doctor, clock):
        service = AppointmentService(session, clock=clock)
        appt = await _book(service, scheduled_doctor.id)
        with pytest.raises(ValidationError):
            await service.apply_action(ORG_ID, AppointmentAction(appointment_id=appt.id, action="NO_SHOW"))

    async def test_reschedule_action_delegates(self, session, scheduled_doctor, clock):
        service = AppointmentService(session, clock=clock)
        appt = await _book(service, scheduled_doctor.id)
        result = await service.apply_action(ORG_ID, AppointmentAction(appointment_id=appt.id, action="RESCHEDULE", time="16:00"))
        assert result.appointment.time == "16:00"
        assert result.appointment.status == "SCHEDULED"

    async def test_reschedule_action_needs_a_target(self, session, scheduled_doctor, clock):
        service = AppointmentService(session, clock=clock)
        appt = await _book(service, scheduled_doctor.id)
        with pytest.raises(ValidationError):
            await service.apply_action(ORG_ID, AppointmentAction(appointment_id=appt.id, action="RESCHEDULE"))
