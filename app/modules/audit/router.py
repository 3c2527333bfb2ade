from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.db import get_session
from app.core.security import get_principal, Principal, require_scopes
from app.modules.audit.schemas import AuditOut
from app.modules.audit.service import AuditService

router = APIRouter()

@router.get("/audit", response_model=list[AuditOut], dependencies=[Depends(require_scopes("audit:read"))])
async def list_audit(
    resource_type: str | None = Query(None, alias="resourceType"),
    resource_id: str | None = Query(None, alias="resourceId"),
    limit: int = Query(50, ge=1, le=200),
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_session),
):
    return await AuditService(session).list_events(principal.org_id, resource_type=resource_type, resource_id=resource_id, limit=limit)
