import uuid
import logging
from typing import Sequence
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ConflictError, NotFoundError
from app.modules.audit.service import AuditService
from app.modules.directory.service import DoctorService
from app.modules.events.outbox import OutboxService, SCHEDULE_REPLACED, TEMPLATE_APPLIED
from app.modules.schedules.models import ScheduleTemplate, ScheduleException
from app.modules.schedules.repository import ScheduleRepository, TemplateRepository, ExceptionRepository
from app.modules.schedules.schemas import (
    DoctorScheduleOut, ExceptionCreate, RecurrenceRule, TemplateCreate, WorkingDay,
    default_week, validate_rule, validate_week,
)

logger = logging.getLogger(__name__)

class ScheduleService:
    """Live weekly schedule per doctor, replaced as a whole."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.schedules = ScheduleRepository(session)
        self.exceptions = ExceptionRepository(session)
        self.doctors = DoctorService(session)

    async def get_schedule(self, org_id: uuid.UUID, doctor_id: uuid.UUID) -> DoctorScheduleOut:
        await self.doctors.get(org_id, doctor_id)
        row = await self.schedules.get(org_id, doctor_id)
        if row is None:
            return DoctorScheduleOut(doctor_id=doctor_id, working_days=default_week(), version=0)
        return DoctorScheduleOut.model_validate(row)

    async def replace_schedule(self,
                               org_id: uuid.UUID,
                               doctor_id: uuid.UUID,
                               working_days: Sequence[WorkingDay | dict],
                               rule: RecurrenceRule | None = None,
                               *,
                               expected_version: int | None = None,
                               actor_id: uuid.UUID | None = None,
                               template: ScheduleTemplate | None = None) -> DoctorScheduleOut:
        # Everything is validated before the first write
        week = validate_week(working_days)
        rule = validate_rule(rule)
        await self.doctors.get(org_id, doctor_id)

        fields = {
            "working_days": [d.model_dump(mode="json") for d in week],
            "recurrence_type": rule.type.value if rule else None,
            "custom_pattern": rule.custom_pattern.value if rule and rule.custom_pattern else None,
            "effective_from": rule.effective_from if rule else None,
            "effective_until": rule.effective_until if rule else None,
            "applied_template_id": template.id if template else None,
        }

        current = await self.schedules.get(org_id, doctor_id)
        if current is None:
            if expected_version:
                raise ConflictError("Schedule changed since it was read", details={"expected_version": expected_version, "current_version": 0})
            try:
                await self.schedules.insert(org_id, doctor_id, **fields)
            except IntegrityError:
                await self.session.rollback()
                logger.warning(f"Concurrent first write of schedule for doctor {doctor_id}")
                raise ConflictError("Schedule changed since it was read")
            new_version = 1
        else:
            seen = current.version if expected_version is None else expected_version
            if not await self.schedules.replace(org_id, doctor_id, seen, **fields):
                await self.session.rollback()
                logger.warning(f"Stale schedule write for doctor {doctor_id}: expected version {seen}")
                raise ConflictError("Schedule changed since it was read", details={"expected_version": seen})
            new_version = seen + 1

        action = "schedule.template_applied" if template else "schedule.replaced"
        meta = {"version": new_version, "recurrence_type": fields["recurrence_type"]}
        if template:
            meta["template_id"] = str(template.id)
        await AuditService(self.session).log(org_id, actor_id, action, "doctor_schedule", doctor_id, meta=meta)
        await OutboxService(self.session).enqueue(
            org_id,
            TEMPLATE_APPLIED if template else SCHEDULE_REPLACED,
            "doctor",
            doctor_id,
            {"version": new_version, "template_id": str(template.id) if template else None},
        )
        await self.session.commit()
        logger.info(f"Schedule for doctor {doctor_id} replaced (version {new_version})")
        return await self.get_schedule(org_id, doctor_id)

    # ---- Exceptions ----

    async def list_exceptions(self, org_id: uuid.UUID, doctor_id: uuid.UUID) -> Sequence[ScheduleException]:
        await self.doctors.get(org_id, doctor_id)
        return await self.exceptions.list_overlapping(org_id, doctor_id)

    async def create_exception(self, org_id: uuid.UUID, doctor_id: uuid.UUID, payload: ExceptionCreate, actor_id: uuid.UUID | None = None) -> ScheduleException:
        await self.doctors.get(org_id, doctor_id)
        data = payload.model_dump()
        if payload.is_all_day:
            data["start_time"] = data["end_time"] = None
        obj = await self.exceptions.create(org_id, doctor_id, **data)
        await AuditService(self.session).log(org_id, actor_id, "schedule.exception_created", "schedule_exception", obj.id,
                                             meta={"doctor_id": str(doctor_id), "type": obj.exception_type})
        await self.session.commit()
        logger.info(f"Exception {obj.exception_type} {obj.start_date}..{obj.end_date} added for doctor {doctor_id}")
        return obj

    async def delete_exception(self, org_id: uuid.UUID, doctor_id: uuid.UUID, exception_id: uuid.UUID, actor_id: uuid.UUID | None = None) -> None:
        if not await self.exceptions.delete(org_id, doctor_id, exception_id):
            raise NotFoundError(f"Schedule exception {exception_id} not found")
        await AuditService(self.session).log(org_id, actor_id, "schedule.exception_deleted", "schedule_exception", exception_id)
        await self.session.commit()


class TemplateService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.templates = TemplateRepository(session)
        self.schedules = ScheduleService(session)

    async def create_template(self, org_id: uuid.UUID, payload: TemplateCreate, actor_id: uuid.UUID | None = None) -> ScheduleTemplate:
        week = validate_week(payload.working_days)
        if payload.is_default:
            await self.templates.clear_default(org_id)
        try:
            obj = await self.templates.create(
                org_id,
                name=payload.name,
                description=payload.description,
                template_type=payload.template_type.value,
                working_days=[d.model_dump(mode="json") for d in week],
                is_default=payload.is_default,
            )
        except IntegrityError:
            await self.session.rollback()
            raise ConflictError(f"A template named {payload.name!r} already exists")
        await AuditService(self.session).log(org_id, actor_id, "schedule.template_created", "schedule_template", obj.id, meta={"name": obj.name})
        await self.session.commit()
        logger.info(f"Template {obj.name!r} created")
        return obj

    async def list_templates(self, org_id: uuid.UUID) -> Sequence[ScheduleTemplate]:
        return await self.templates.list(org_id)

    async def get_template(self, org_id: uuid.UUID, template_id: uuid.UUID) -> ScheduleTemplate:
        obj = await self.templates.get(org_id, template_id)
        if not obj:
            raise NotFoundError(f"Template {template_id} not found")
        return obj

    async def delete_template(self, org_id: uuid.UUID, template_id: uuid.UUID, actor_id: uuid.UUID | None = None) -> None:
        obj = await self.get_template(org_id, template_id)
        await self.templates.delete(obj)
        await AuditService(self.session).log(org_id, actor_id, "schedule.template_deleted", "schedule_template", template_id, meta={"name": obj.name})
        await self.session.commit()
        logger.info(f"Template {obj.name!r} deleted")

    async def apply_template(self,
                             org_id: uuid.UUID,
                             doctor_id: uuid.UUID,
                             template_id: uuid.UUID,
                             rule: RecurrenceRule | None = None,
                             *,
                             expected_version: int | None = None,
                             actor_id: uuid.UUID | None = None) -> DoctorScheduleOut:
        """Copy a template's week onto a doctor, keeping the current rule unless one is passed."""
        template = await self.get_template(org_id, template_id)
        current = await self.schedules.get_schedule(org_id, doctor_id)
        if rule is None:
            rule = current.rule()
        if expected_version is None:
            expected_version = current.version
        return await self.schedules.replace_schedule(
            org_id, doctor_id, list(template.working_days), rule,
            expected_version=expected_version, actor_id=actor_id, template=template,
        )
