import uuid
from typing import Sequence
from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.security import LOCAL_USER_ID
from app.modules.audit.models import AuditEvent

class AuditService:
    """Writes audit rows inside the caller's transaction; the caller commits."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def log(self,
                  org_id: uuid.UUID,
                  actor_user_id: uuid.UUID | None,
                  action: str,
                  resource_type: str,
                  resource_id: str | uuid.UUID,
                  reason: str | None = None,
                  meta: dict | None = None,
                  success: bool = True) -> AuditEvent:
        ev = AuditEvent(
            org_id=org_id,
            actor_user_id=actor_user_id or LOCAL_USER_ID,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id),
            reason=reason,
            meta=meta,
            success=success,
        )
        self.session.add(ev)
        await self.session.flush()
        return ev

    async def list_events(self, org_id: uuid.UUID, *, resource_type: str | None = None, resource_id: str | None = None, limit: int = 50) -> Sequence[AuditEvent]:
        cond = [AuditEvent.org_id == org_id, AuditEvent.deleted_at.is_(None)]
        if resource_type:
            cond.append(AuditEvent.resource_type == resource_type)
        if resource_id:
            cond.append(AuditEvent.resource_id == resource_id)
        q = select(AuditEvent).where(*cond).order_by(desc(AuditEvent.occurred_at), desc(AuditEvent.created_at)).limit(limit)
        res = await self.session.execute(q)
        return res.scalars().all()
