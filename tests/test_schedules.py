"""
Tests for the live schedule store and the template manager.

Covers whole-week replacement with optimistic versioning, template CRUD and
the atomicity of applying a template.
"""

import uuid
import pytest
from datetime import date, time
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select

from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.modules.audit.models import AuditEvent
from app.modules.events.outbox import EventOutbox, SCHEDULE_REPLACED, TEMPLATE_APPLIED
from app.modules.schedules.schemas import ExceptionCreate, RecurrenceRule, TemplateCreate, WorkingDay
from app.modules.schedules.service import ScheduleService, TemplateService

from builders import ORG_ID, clinic_day, weekday_week


def _evening_week():
    return [clinic_day(d, start_time=time(14, 0), end_time=time(20, 0), break_start=None, break_end=None) for d in range(7)]


async def _count(session, model, *cond):
    res = await session.execute(select(func.count()).select_from(model).where(*cond))
    return res.scalar_one()


class TestScheduleStore:
    async def test_unconfigured_doctor_gets_an_empty_week(self, session, doctor):
        """No stored row reads as seven non-working days at version 0."""
        schedule = await ScheduleService(session).get_schedule(ORG_ID, doctor.id)
        assert schedule.version == 0
        assert len(schedule.working_days) == 7
        assert not any(d.is_working for d in schedule.working_days)
        assert schedule.rule() is None

    async def test_unknown_doctor(self, session):
        with pytest.raises(NotFoundError):
            await ScheduleService(session).get_schedule(ORG_ID, uuid.uuid4())

    async def test_replace_then_read(self, session, doctor):
        service = ScheduleService(session)
        rule = RecurrenceRule(type="BIWEEKLY", effective_from=date(2030, 1, 7))
        out = await service.replace_schedule(ORG_ID, doctor.id, weekday_week(), rule)
        assert out.version == 1
        assert out.recurrence_type.value == "BIWEEKLY"
        assert out.effective_from == date(2030, 1, 7)
        assert [d.is_working for d in out.working_days] == [True] * 5 + [False] * 2

        again = await service.replace_schedule(ORG_ID, doctor.id, _evening_week())
        assert again.version == 2
        assert again.rule() is None
        assert all(d.start_time == time(14, 0) for d in again.working_days)

    async def test_replace_writes_audit_and_outbox_rows(self, session, doctor):
        await ScheduleService(session).replace_schedule(ORG_ID, doctor.id, weekday_week())
        assert await _count(session, AuditEvent, AuditEvent.action == "schedule.replaced") == 1
        assert await _count(session, EventOutbox, EventOutbox.event_type == SCHEDULE_REPLACED) == 1

    async def test_invalid_week_persists_nothing(self, session, doctor):
        """Validation happens before the first write."""
        week = [d.model_dump() for d in weekday_week()]
        week[0]["buffer_minutes"] = 90
        with pytest.raises(ValidationError):
            await ScheduleService(session).replace_schedule(ORG_ID, doctor.id, week)
        schedule = await ScheduleService(session).get_schedule(ORG_ID, doctor.id)
        assert schedule.version == 0
        assert await _count(session, EventOutbox) == 0

    async def test_stale_version_is_rejected(self, session, scheduled_doctor):
        service = ScheduleService(session)
        with pytest.raises(ConflictError):
            await service.replace_schedule(ORG_ID, scheduled_doctor.id, _evening_week(), expected_version=7)
        schedule = await service.get_schedule(ORG_ID, scheduled_doctor.id)
        assert schedule.version == 1
        assert schedule.working_days[0].start_time == time(9, 0)

    async def test_second_writer_from_the_same_read_loses(self, session_factory, scheduled_doctor):
        """Two editors read version 1; only the first write lands."""
        async with session_factory() as a, session_factory() as b:
            seen_a = (await ScheduleService(a).get_schedule(ORG_ID, scheduled_doctor.id)).version
            seen_b = (await ScheduleService(b).get_schedule(ORG_ID, scheduled_doctor.id)).version
            await ScheduleService(a).replace_schedule(ORG_ID, scheduled_doctor.id, _evening_week(), expected_version=seen_a)
            with pytest.raises(ConflictError):
                await ScheduleService(b).replace_schedule(ORG_ID, scheduled_doctor.id, weekday_week(), expected_version=seen_b)
        async with session_factory() as c:
            schedule = await ScheduleService(c).get_schedule(ORG_ID, scheduled_doctor.id)
        assert schedule.version == 2
        assert all(d.start_time == time(14, 0) for d in schedule.working_days)

    async def test_first_write_with_a_nonzero_version_conflicts(self, session, doctor):
        with pytest.raises(ConflictError):
            await ScheduleService(session).replace_schedule(ORG_ID, doctor.id, weekday_week(), expected_version=3)


class TestTemplates:
    async def test_create_and_list(self, session):
        service = TemplateService(session)
        await service.create_template(ORG_ID, TemplateCreate(name="Weekdays", working_days=weekday_week()))
        await service.create_template(ORG_ID, TemplateCreate(name="Evenings", working_days=_evening_week(), template_type="DAILY"))
        names = [t.name for t in await service.list_templates(ORG_ID)]
        assert sorted(names) == ["Evenings", "Weekdays"]

    async def test_duplicate_name_conflicts(self, session):
        service = TemplateService(session)
        await service.create_template(ORG_ID, TemplateCreate(name="Weekdays", working_days=weekday_week()))
        with pytest.raises(ConflictError):
            await service.create_template(ORG_ID, TemplateCreate(name="Weekdays", working_days=_evening_week()))

    async def test_only_one_default(self, session):
        service = TemplateService(session)
        first = await service.create_template(ORG_ID, TemplateCreate(name="A", working_days=weekday_week(), is_default=True))
        second = await service.create_template(ORG_ID, TemplateCreate(name="B", working_days=weekday_week(), is_default=True))
        defaults = [t.id for t in await service.list_templates(ORG_ID) if t.is_default]
        assert defaults == [second.id]
        assert first.id != second.id

    async def test_template_week_is_validated(self, session):
        with pytest.raises(ValidationError):
            await TemplateService(session).create_template(ORG_ID, TemplateCreate(name="Short", working_days=weekday_week()[:5]))

    async def test_delete(self, session):
        service = TemplateService(session)
        t = await service.create_template(ORG_ID, TemplateCreate(name="Weekdays", working_days=weekday_week()))
        await service.delete_template(ORG_ID, t.id)
        assert list(await service.list_templates(ORG_ID)) == []
        with pytest.raises(NotFoundError):
            await service.delete_template(ORG_ID, t.id)


class TestApplyTemplate:
    async def test_apply_copies_days_and_keeps_the_rule(self, session, doctor):
        schedules = ScheduleService(session)
        templates = TemplateService(session)
        rule = RecurrenceRule(type="CUSTOM", custom_pattern="TUE_THU")
        await schedules.replace_schedule(ORG_ID, doctor.id, weekday_week(), rule)
        t = await templates.create_template(ORG_ID, TemplateCreate(name="Evenings", working_days=_evening_week()))

        out = await templates.apply_template(ORG_ID, doctor.id, t.id)
        assert out.version == 2
        assert out.applied_template_id == t.id
        assert out.custom_pattern.value == "TUE_THU"
        assert [d.start_time for d in out.working_days] == [time(14, 0)] * 7
        assert await session.scalar(select(func.count()).select_from(EventOutbox).where(EventOutbox.event_type == TEMPLATE_APPLIED)) == 1

    async def test_explicit_rule_replaces_the_current_one(self, session, scheduled_doctor):
        templates = TemplateService(session)
        t = await templates.create_template(ORG_ID, TemplateCreate(name="Weekdays", working_days=weekday_week()))
        out = await templates.apply_template(ORG_ID, scheduled_doctor.id, t.id, RecurrenceRule(type="DAILY"))
        assert out.recurrence_type.value == "DAILY"

    async def test_applied_schedule_is_a_copy(self, session, doctor):
        """Deleting the template later leaves the doctor's week intact."""
        templates = TemplateService(session)
        t = await templates.create_template(ORG_ID, TemplateCreate(name="Evenings", working_days=_evening_week()))
        await templates.apply_template(ORG_ID, doctor.id, t.id)
        await templates.delete_template(ORG_ID, t.id)
        schedule = await ScheduleService(session).get_schedule(ORG_ID, doctor.id)
        assert [d.start_time for d in schedule.working_days] == [time(14, 0)] * 7

    async def test_stale_apply_leaves_the_old_week_whole(self, session_factory, scheduled_doctor):
        """A lost race never leaves a mix of old and new days."""
        async with session_factory() as a, session_factory() as b:
            t = await TemplateService(a).create_template(ORG_ID, TemplateCreate(name="Evenings", working_days=_evening_week()))
            await ScheduleService(b).replace_schedule(ORG_ID, scheduled_doctor.id, weekday_week(max_appointments=5))
            with pytest.raises(ConflictError):
                await TemplateService(a).apply_template(ORG_ID, scheduled_doctor.id, t.id, expected_version=1)
        async with session_factory() as c:
            schedule = await ScheduleService(c).get_schedule(ORG_ID, scheduled_doctor.id)
        starts = {d.start_time for d in schedule.working_days}
        assert starts == {time(9, 0)}
        assert {d.max_appointments for d in schedule.working_days if d.is_working} == {5}

    async def test_unknown_template_or_doctor(self, session, doctor):
        templates = TemplateService(session)
        with pytest.raises(NotFoundError):
            await templates.apply_template(ORG_ID, doctor.id, uuid.uuid4())
        t = await templates.create_template(ORG_ID, TemplateCreate(name="Weekdays", working_days=weekday_week()))
        with pytest.raises(NotFoundError):
            await templates.apply_template(ORG_ID, uuid.uuid4(), t.id)


class TestExceptions:
    async def test_create_list_delete(self, session, doctor):
        service = ScheduleService(session)
        ex = await service.create_exception(ORG_ID, doctor.id, ExceptionCreate(
            exception_type="VACATION", title="Annual leave", start_date=date(2030, 1, 14), end_date=date(2030, 1, 18),
        ))
        assert [e.id for e in await service.list_exceptions(ORG_ID, doctor.id)] == [ex.id]
        await service.delete_exception(ORG_ID, doctor.id, ex.id)
        assert list(await service.list_exceptions(ORG_ID, doctor.id)) == []
        with pytest.raises(NotFoundError):
            await service.delete_exception(ORG_ID, doctor.id, ex.id)

    def test_partial_day_needs_ordered_times(self):
        with pytest.raises(PydanticValidationError):
            ExceptionCreate(title="Clinic meeting", start_date=date(2030, 1, 14), end_date=date(2030, 1, 14), is_all_day=False)
        with pytest.raises(PydanticValidationError):
            ExceptionCreate(title="Clinic meeting", start_date=date(2030, 1, 14), end_date=date(2030, 1, 14),
                            is_all_day=False, start_time=time(15, 0), end_time=time(14, 0))

    def test_dates_must_be_ordered(self):
        with pytest.raises(PydanticValidationError):
            ExceptionCreate(title="Leave", start_date=date(2030, 1, 14), end_date=date(2030, 1, 10))
