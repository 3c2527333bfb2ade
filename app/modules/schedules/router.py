import uuid
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_session
from app.core.security import get_principal, require_scopes, ensure_can_manage_doctor, Principal
from app.modules.schedules.schemas import (
    ApplyTemplate, DoctorScheduleOut, ExceptionCreate, ExceptionOut, ScheduleIn, TemplateCreate, TemplateOut,
)
from app.modules.schedules.service import ScheduleService, TemplateService

router = APIRouter()

def svc(session: AsyncSession = Depends(get_session)) -> ScheduleService:
    return ScheduleService(session)

def templates_svc(session: AsyncSession = Depends(get_session)) -> TemplateService:
    return TemplateService(session)

# ---- Live schedule ----

@router.get("/doctors/{doctor_id}/schedule", response_model=DoctorScheduleOut, dependencies=[Depends(require_scopes("schedules:read"))])
async def get_schedule(doctor_id: uuid.UUID, principal: Principal = Depends(get_principal), service: ScheduleService = Depends(svc)):
    return await service.get_schedule(principal.org_id, doctor_id)

@router.put("/doctors/{doctor_id}/schedule", response_model=DoctorScheduleOut, dependencies=[Depends(require_scopes("schedules:write"))])
async def replace_schedule(doctor_id: uuid.UUID, payload: ScheduleIn, principal: Principal = Depends(get_principal), service: ScheduleService = Depends(svc)):
    ensure_can_manage_doctor(principal, doctor_id)
    return await service.replace_schedule(
        principal.org_id, doctor_id, payload.working_days, payload.rule(),
        expected_version=payload.version, actor_id=principal.user_id,
    )

# ---- Templates ----

@router.get("/doctors/{doctor_id}/schedule/templates", response_model=list[TemplateOut], dependencies=[Depends(require_scopes("schedules:read"))])
async def list_templates(doctor_id: uuid.UUID, principal: Principal = Depends(get_principal), service: TemplateService = Depends(templates_svc)):
    # Templates are shared across the organisation; the doctor in the path only scopes the URL
    return await service.list_templates(principal.org_id)

@router.post("/doctors/{doctor_id}/schedule/templates", response_model=TemplateOut, status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_scopes("schedules:write"))])
async def create_template(doctor_id: uuid.UUID, payload: TemplateCreate, principal: Principal = Depends(get_principal), service: TemplateService = Depends(templates_svc)):
    ensure_can_manage_doctor(principal, doctor_id)
    return await service.create_template(principal.org_id, payload, actor_id=principal.user_id)

@router.delete("/doctors/{doctor_id}/schedule/templates/{template_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(require_scopes("schedules:write"))])
async def delete_template(doctor_id: uuid.UUID, template_id: uuid.UUID, principal: Principal = Depends(get_principal), service: TemplateService = Depends(templates_svc)):
    ensure_can_manage_doctor(principal, doctor_id)
    await service.delete_template(principal.org_id, template_id, actor_id=principal.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.post("/doctors/{doctor_id}/schedule/apply-template", response_model=DoctorScheduleOut, dependencies=[Depends(require_scopes("schedules:write"))])
async def apply_template(doctor_id: uuid.UUID, payload: ApplyTemplate, principal: Principal = Depends(get_principal), service: TemplateService = Depends(templates_svc)):
    ensure_can_manage_doctor(principal, doctor_id)
    return await service.apply_template(
        principal.org_id, doctor_id, payload.template_id, payload.recurrence,
        expected_version=payload.version, actor_id=principal.user_id,
    )

# ---- Exceptions ----

@router.get("/doctors/{doctor_id}/schedule/exceptions", response_model=list[ExceptionOut], dependencies=[Depends(require_scopes("schedules:read"))])
async def list_exceptions(doctor_id: uuid.UUID, principal: Principal = Depends(get_principal), service: ScheduleService = Depends(svc)):
    return await service.list_exceptions(principal.org_id, doctor_id)

@router.post("/doctors/{doctor_id}/schedule/exceptions", response_model=ExceptionOut, status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_scopes("schedules:write"))])
async def create_exception(doctor_id: uuid.UUID, payload: ExceptionCreate, principal: Principal = Depends(get_principal), service: ScheduleService = Depends(svc)):
    ensure_can_manage_doctor(principal, doctor_id)
    return await service.create_exception(principal.org_id, doctor_id, payload, actor_id=principal.user_id)

@router.delete("/doctors/{doctor_id}/schedule/exceptions/{exception_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(require_scopes("schedules:write"))])
async def delete_exception(doctor_id: uuid.UUID, exception_id: uuid.UUID, principal: Principal = Depends(get_principal), service: ScheduleService = Depends(svc)):
    ensure_can_manage_doctor(principal, doctor_id)
    await service.delete_exception(principal.org_id, doctor_id, exception_id, actor_id=principal.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
