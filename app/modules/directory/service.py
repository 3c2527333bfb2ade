import uuid
import logging
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError, ValidationError
from app.modules.directory.models import Doctor, DOCTOR_STATUSES
from app.modules.directory.repository import DoctorRepository
from app.modules.directory.schemas import DoctorCreate

logger = logging.getLogger(__name__)

class DoctorService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.doctors = DoctorRepository(session)

    async def create(self, org_id: uuid.UUID, payload: DoctorCreate) -> Doctor:
        obj = await self.doctors.create(org_id, **payload.model_dump())
        await self.session.commit()
        return obj

    async def get(self, org_id: uuid.UUID, doctor_id: uuid.UUID) -> Doctor:
        obj = await self.doctors.get(org_id, doctor_id)
        if not obj:
            raise NotFoundError(f"Doctor {doctor_id} not found")
        return obj

    async def transition_status(self, org_id: uuid.UUID, doctor_id: uuid.UUID, status: str) -> Doctor:
        """The only place a doctor's availability_status changes."""
        if status not in DOCTOR_STATUSES:
            raise ValidationError(f"Unknown doctor status {status!r}")
        obj = await self.get(org_id, doctor_id)
        prev = obj.availability_status
        if prev == status:
            return obj
        obj.availability_status = status
        await self.session.commit()
        logger.info(f"Doctor {doctor_id} status {prev} -> {status}")
        return obj
