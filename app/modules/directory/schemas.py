import uuid
from pydantic import BaseModel, Field

class DoctorCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=160)
    specialty: str | None = None

class DoctorStatusChange(BaseModel):
    status: str = Field(..., pattern="^(AVAILABLE|BUSY|UNAVAILABLE)$")

class DoctorOut(BaseModel):
    id: uuid.UUID
    org_id: uuid.UUID
    name: str
    specialty: str | None = None
    availability_status: str
    class Config: from_attributes = True
