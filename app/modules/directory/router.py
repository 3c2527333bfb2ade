import uuid
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_session
from app.core.security import get_principal, require_scopes, Principal
from app.modules.directory.schemas import DoctorCreate, DoctorOut, DoctorStatusChange
from app.modules.directory.service import DoctorService

router = APIRouter()

def svc(session: AsyncSession = Depends(get_session)) -> DoctorService:
    return DoctorService(session)

@router.post("/doctors", response_model=DoctorOut, status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_scopes("doctors:write"))])
async def create_doctor(payload: DoctorCreate, principal: Principal = Depends(get_principal), service: DoctorService = Depends(svc)):
    return await service.create(principal.org_id, payload)

@router.get("/doctors/{doctor_id}", response_model=DoctorOut, dependencies=[Depends(require_scopes("doctors:read"))])
async def get_doctor(doctor_id: uuid.UUID, principal: Principal = Depends(get_principal), service: DoctorService = Depends(svc)):
    return await service.get(principal.org_id, doctor_id)

@router.post("/doctors/{doctor_id}/status", response_model=DoctorOut, dependencies=[Depends(require_scopes("doctors:write"))])
async def change_doctor_status(doctor_id: uuid.UUID, payload: DoctorStatusChange, principal: Principal = Depends(get_principal), service: DoctorService = Depends(svc)):
    return await service.transition_status(principal.org_id, doctor_id, payload.status)
