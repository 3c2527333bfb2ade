import uuid
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.db import get_session
from app.core.security import get_principal, require_scopes, Principal
from app.modules.notifications.schemas import TemplateCreate, TemplateOut, OutboundOut
from app.modules.notifications.service import NotificationsService

router = APIRouter()

def svc(s: AsyncSession = Depends(get_session)) -> NotificationsService: return NotificationsService(s)

@router.post("/notifications/templates", response_model=TemplateOut, status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_scopes("notify:write"))])
async def create_template(payload: TemplateCreate, principal: Principal = Depends(get_principal), service: NotificationsService = Depends(svc)):
    return await service.create_template(principal.org_id, **payload.model_dump())

@router.get("/notifications/outbound", response_model=list[OutboundOut], dependencies=[Depends(require_scopes("notify:read"))])
async def list_outbound(appointment_id: uuid.UUID = Query(..., alias="appointmentId"), principal: Principal = Depends(get_principal), service: NotificationsService = Depends(svc)):
    return await service.list_for_appointment(principal.org_id, appointment_id)
