import uuid
from datetime import date, datetime, timezone
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_
from app.modules.appointments.models import Appointment, ACTIVE_STATUSES

class AppointmentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, org_id: uuid.UUID, **data) -> Appointment:
        # Flushes immediately so a taken slot surfaces as IntegrityError here
        obj = Appointment(org_id=org_id, **data)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def get(self, org_id: uuid.UUID, appt_id: uuid.UUID) -> Appointment | None:
        q = (
            select(Appointment)
            .where(and_(Appointment.id == appt_id,
                        Appointment.org_id == org_id,
                        Appointment.deleted_at.is_(None)))
            .execution_options(populate_existing=True)
        )
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def list(self, org_id: uuid.UUID, *, doctor_id: uuid.UUID | None = None, on_date: date | None = None, status: str | None = None, limit: int = 50, offset: int = 0) -> Sequence[Appointment]:
        cond = [Appointment.org_id == org_id, Appointment.deleted_at.is_(None)]
        if doctor_id:
            cond.append(Appointment.doctor_id == doctor_id)
        if on_date:
            cond.append(Appointment.appointment_date == on_date)
        if status:
            cond.append(Appointment.status == status)
        q = (
            select(Appointment)
            .where(and_(*cond))
            .order_by(Appointment.appointment_date.asc(), Appointment.time.asc())
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )
        res = await self.session.execute(q)
        return res.scalars().all()

    async def list_active_between(self, org_id: uuid.UUID, doctor_id: uuid.UUID, start: date, end: date) -> Sequence[Appointment]:
        q = select(Appointment).where(and_(
            Appointment.org_id == org_id,
            Appointment.doctor_id == doctor_id,
            Appointment.deleted_at.is_(None),
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.appointment_date >= start,
            Appointment.appointment_date <= end,
        )).execution_options(populate_existing=True)
        res = await self.session.execute(q)
        return res.scalars().all()

    async def _guarded_update(self, org_id: uuid.UUID, appt_id: uuid.UUID, expected_version: int, from_statuses: tuple[str, ...], **values) -> bool:
        stmt = (
            update(Appointment)
            .where(and_(Appointment.id == appt_id,
                        Appointment.org_id == org_id,
                        Appointment.version == expected_version,
                        Appointment.status.in_(from_statuses)))
            .values(**values, version=Appointment.version + 1, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        res = await self.session.execute(stmt)
        return res.rowcount == 1

    async def move(self, org_id: uuid.UUID, appt_id: uuid.UUID, expected_version: int, *, new_date: date, new_time: str, duration: int, status: str) -> bool:
        """Free the old slot and claim the new one in one statement."""
        return await self._guarded_update(
            org_id, appt_id, expected_version, ACTIVE_STATUSES,
            appointment_date=new_date,
            time=new_time,
            duration=duration,
            status=status,
            reschedule_count=Appointment.reschedule_count + 1,
        )

    async def set_status(self, org_id: uuid.UUID, appt_id: uuid.UUID, expected_version: int, from_status: str, to_status: str) -> bool:
        return await self._guarded_update(org_id, appt_id, expected_version, (from_status,), status=to_status)
