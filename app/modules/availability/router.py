import uuid
from datetime import date
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, get_clock
from app.core.db import get_session
from app.core.security import get_principal, require_scopes, Principal
from app.modules.availability.schemas import DayAvailability, Suggestion
from app.modules.availability.service import AvailabilityService
from app.modules.availability.suggestions import SuggestionService

router = APIRouter()

def svc(s: AsyncSession = Depends(get_session), clock: Clock = Depends(get_clock)) -> AvailabilityService:
    return AvailabilityService(s, clock=clock)

def suggestions_svc(s: AsyncSession = Depends(get_session), clock: Clock = Depends(get_clock)) -> SuggestionService:
    return SuggestionService(s, clock=clock)

@router.get("/scheduling/availability/slots", response_model=DayAvailability, dependencies=[Depends(require_scopes("availability:read"))])
async def availability_slots(
    doctor_id: uuid.UUID = Query(..., alias="doctorId"),
    on_date: date = Query(..., alias="date"),
    principal: Principal = Depends(get_principal),
    service: AvailabilityService = Depends(svc),
):
    return await service.availability(principal.org_id, doctor_id, on_date)

@router.get("/scheduling/suggestions", response_model=list[Suggestion], dependencies=[Depends(require_scopes("availability:read"))])
async def suggestions(
    doctor_id: uuid.UUID = Query(..., alias="doctorId"),
    on_date: date = Query(..., alias="date"),
    time: str = Query(..., pattern=r"^\d{2}:\d{2}$"),
    days: int | None = Query(None, ge=0),
    limit: int | None = Query(None, ge=1, le=50),
    principal: Principal = Depends(get_principal),
    service: SuggestionService = Depends(suggestions_svc),
):
    return await service.suggest(principal.org_id, doctor_id, on_date, time, horizon_days=days, limit=limit)
