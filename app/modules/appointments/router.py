import uuid
from datetime import date
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, get_clock
from app.core.db import get_session
from app.core.security import get_principal, Principal, require_scopes
from app.modules.appointments.schemas import (
    AppointmentAction, AppointmentCreate, AppointmentOut, AppointmentReschedule, BookingResult,
)
from app.modules.appointments.service import AppointmentService

router = APIRouter()

def svc(session: AsyncSession = Depends(get_session), clock: Clock = Depends(get_clock)) -> AppointmentService:
    return AppointmentService(session, clock=clock)

@router.post("/appointments", response_model=BookingResult, status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_scopes("appointments:write"))])
async def book_appointment(payload: AppointmentCreate, principal: Principal = Depends(get_principal), service: AppointmentService = Depends(svc)):
    return await service.book(principal.org_id, payload, actor_id=principal.user_id)

@router.post("/appointments/action", response_model=BookingResult, dependencies=[Depends(require_scopes("appointments:write"))])
async def appointment_action(payload: AppointmentAction, principal: Principal = Depends(get_principal), service: AppointmentService = Depends(svc)):
    return await service.apply_action(principal.org_id, payload, actor_id=principal.user_id)

@router.patch("/appointments/{appt_id}", response_model=BookingResult, dependencies=[Depends(require_scopes("appointments:write"))])
async def reschedule_appointment(appt_id: uuid.UUID, payload: AppointmentReschedule, principal: Principal = Depends(get_principal), service: AppointmentService = Depends(svc)):
    return await service.reschedule(principal.org_id, appt_id, payload.appointment_date, payload.time,
                                    actor_id=principal.user_id, contact=payload.contact)

@router.get("/appointments/{appt_id}", response_model=AppointmentOut, dependencies=[Depends(require_scopes("appointments:read"))])
async def get_appointment(appt_id: uuid.UUID, principal: Principal = Depends(get_principal), service: AppointmentService = Depends(svc)):
    return await service.get(principal.org_id, appt_id)

@router.get("/appointments", response_model=list[AppointmentOut], dependencies=[Depends(require_scopes("appointments:read"))])
async def list_appointments(
    doctor_id: uuid.UUID | None = Query(None, alias="doctorId"),
    on_date: date | None = Query(None, alias="date"),
    status_filter: str | None = Query(None, alias="status", pattern="^(PENDING|SCHEDULED|CANCELLED|COMPLETED|NO_SHOW)$"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    principal: Principal = Depends(get_principal),
    service: AppointmentService = Depends(svc),
):
    return await service.list_appointments(principal.org_id, doctor_id=doctor_id, on_date=on_date, status=status_filter, limit=limit, offset=offset)
