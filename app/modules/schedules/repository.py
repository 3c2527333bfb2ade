import uuid
from datetime import date, datetime, timezone
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, and_
from app.modules.schedules.models import DoctorSchedule, ScheduleTemplate, ScheduleException

class ScheduleRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, org_id: uuid.UUID, doctor_id: uuid.UUID) -> DoctorSchedule | None:
        q = (
            select(DoctorSchedule)
            .where(and_(DoctorSchedule.doctor_id == doctor_id,
                        DoctorSchedule.org_id == org_id,
                        DoctorSchedule.deleted_at.is_(None)))
            .execution_options(populate_existing=True)
        )
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def insert(self, org_id: uuid.UUID, doctor_id: uuid.UUID, **fields) -> DoctorSchedule:
        # First write for a doctor; the unique doctor_id turns a racing insert into IntegrityError
        obj = DoctorSchedule(org_id=org_id, doctor_id=doctor_id, version=1, **fields)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def replace(self, org_id: uuid.UUID, doctor_id: uuid.UUID, expected_version: int, **fields) -> bool:
        """Compare-and-swap the whole packed week; False when the version moved."""
        stmt = (
            update(DoctorSchedule)
            .where(and_(DoctorSchedule.doctor_id == doctor_id,
                        DoctorSchedule.org_id == org_id,
                        DoctorSchedule.version == expected_version))
            .values(**fields, version=DoctorSchedule.version + 1, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        res = await self.session.execute(stmt)
        return res.rowcount == 1


class TemplateRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, org_id: uuid.UUID, **data) -> ScheduleTemplate:
        obj = ScheduleTemplate(org_id=org_id, **data)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def get(self, org_id: uuid.UUID, template_id: uuid.UUID) -> ScheduleTemplate | None:
        q = select(ScheduleTemplate).where(and_(ScheduleTemplate.id == template_id,
                                                ScheduleTemplate.org_id == org_id))
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def list(self, org_id: uuid.UUID) -> Sequence[ScheduleTemplate]:
        q = (
            select(ScheduleTemplate)
            .where(ScheduleTemplate.org_id == org_id)
            .order_by(ScheduleTemplate.is_default.desc(), ScheduleTemplate.name.asc())
            .execution_options(populate_existing=True)
        )
        res = await self.session.execute(q)
        return res.scalars().all()

    async def clear_default(self, org_id: uuid.UUID) -> None:
        stmt = (
            update(ScheduleTemplate)
            .where(and_(ScheduleTemplate.org_id == org_id, ScheduleTemplate.is_default.is_(True)))
            .values(is_default=False)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def delete(self, obj: ScheduleTemplate) -> None:
        await self.session.delete(obj)
        await self.session.flush()


class ExceptionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, org_id: uuid.UUID, doctor_id: uuid.UUID, **data) -> ScheduleException:
        obj = ScheduleException(org_id=org_id, doctor_id=doctor_id, **data)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def list_overlapping(self, org_id: uuid.UUID, doctor_id: uuid.UUID, start: date | None = None, end: date | None = None) -> Sequence[ScheduleException]:
        cond = [ScheduleException.org_id == org_id, ScheduleException.doctor_id == doctor_id]
        if start:
            cond.append(ScheduleException.end_date >= start)
        if end:
            cond.append(ScheduleException.start_date <= end)
        q = select(ScheduleException).where(and_(*cond)).order_by(ScheduleException.start_date.asc())
        res = await self.session.execute(q)
        return res.scalars().all()

    async def delete(self, org_id: uuid.UUID, doctor_id: uuid.UUID, exception_id: uuid.UUID) -> bool:
        stmt = delete(ScheduleException).where(and_(ScheduleException.id == exception_id,
                                                    ScheduleException.doctor_id == doctor_id,
                                                    ScheduleException.org_id == org_id))
        res = await self.session.execute(stmt)
        return res.rowcount == 1
