import uuid
from datetime import datetime
from app.core.schemas import CamelModel

class AuditOut(CamelModel):
    id: uuid.UUID
    actor_user_id: uuid.UUID
    action: str
    resource_type: str
    resource_id: str
    reason: str | None = None
    success: bool
    meta: dict | None = None
    occurred_at: datetime | None = None
