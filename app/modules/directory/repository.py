import uuid
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from app.modules.directory.models import Doctor

class DoctorRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, org_id: uuid.UUID, **data) -> Doctor:
        obj = Doctor(org_id=org_id, **data)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def get(self, org_id: uuid.UUID, doctor_id: uuid.UUID) -> Doctor | None:
        q = select(Doctor).where(
            Doctor.id == doctor_id,
            Doctor.org_id == org_id,
            Doctor.deleted_at.is_(None),
        )
        res = await self.session.execute(q)
        return res.scalar_one_or_none()
