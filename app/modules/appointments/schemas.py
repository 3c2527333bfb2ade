import uuid
from datetime import date, datetime
from pydantic import AliasChoices, Field, model_validator
from app.core.schemas import CamelModel

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"

class ContactIn(CamelModel):
    channel: str = Field(..., pattern="^(sms|whatsapp|email)$")
    to: str = Field(..., min_length=3, max_length=160)

class AppointmentCreate(CamelModel):
    doctor_id: uuid.UUID
    patient_id: uuid.UUID
    appointment_date: date = Field(..., validation_alias=AliasChoices("date", "appointmentDate", "appointment_date"))
    time: str = Field(..., pattern=TIME_PATTERN)
    type: str = Field(default="CONSULTATION", min_length=1, max_length=48)
    booking_source: str | None = Field(default="web", max_length=24)
    note: str | None = None
    reason: str | None = Field(default=None, max_length=255)
    contact: ContactIn | None = None

class AppointmentReschedule(CamelModel):
    appointment_date: date | None = Field(default=None, validation_alias=AliasChoices("date", "appointmentDate", "appointment_date"))
    time: str | None = Field(default=None, pattern=TIME_PATTERN)
    contact: ContactIn | None = None

    @model_validator(mode="after")
    def _something_to_move(self):
        if self.appointment_date is None and self.time is None:
            raise ValueError("give a new date, a new time, or both")
        return self

class AppointmentAction(CamelModel):
    appointment_id: uuid.UUID
    action: str = Field(..., pattern="^(ACCEPT|REJECT|CANCEL|COMPLETE|NO_SHOW|RESCHEDULE)$")
    appointment_date: date | None = Field(default=None, validation_alias=AliasChoices("date", "appointmentDate", "appointment_date"))
    time: str | None = Field(default=None, pattern=TIME_PATTERN)
    reason: str | None = Field(default=None, max_length=255)
    contact: ContactIn | None = None

class AppointmentOut(CamelModel):
    id: uuid.UUID
    org_id: uuid.UUID
    doctor_id: uuid.UUID
    patient_id: uuid.UUID
    appointment_date: date
    time: str
    duration: int
    status: str
    type: str
    booking_source: str | None = None
    note: str | None = None
    reason: str | None = None
    reschedule_count: int
    version: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

class BookingResult(CamelModel):
    appointment: AppointmentOut
    warnings: list[str] = Field(default_factory=list)
