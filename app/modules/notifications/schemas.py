import uuid
from datetime import datetime
from pydantic import BaseModel, Field

class TemplateCreate(BaseModel):
    channel: str = Field(..., pattern="^(sms|email|whatsapp)$")
    name: str = Field(..., pattern="^appointment_(booked|rescheduled|status_changed)$")
    subject: str | None = None
    body: str = Field(..., min_length=1)

class TemplateOut(TemplateCreate):
    id: uuid.UUID
    org_id: uuid.UUID
    class Config: from_attributes = True

class OutboundOut(BaseModel):
    id: uuid.UUID
    appointment_id: uuid.UUID | None
    event: str | None
    channel: str
    to: str
    subject: str | None
    body: str
    status: str
    created_at: datetime | None = None
    class Config: from_attributes = True
