import uuid
from datetime import date, time
from pydantic import Field, field_serializer
from app.core.schemas import CamelModel

REASON_BREAK = "break"
REASON_PAST = "past"
REASON_BOOKED = "booked"
REASON_EXCEPTION = "exception"
REASON_CAPACITY = "capacity"

class AppointmentSummary(CamelModel):
    id: uuid.UUID
    patient_id: uuid.UUID
    status: str
    type: str

class TimeSlot(CamelModel):
    start: time
    end: time
    is_available: bool = True
    reason: str | None = None  # break | past | booked | exception | capacity
    appointment: AppointmentSummary | None = None

    @field_serializer("start", "end")
    def _hhmm(self, v: time):
        return v.strftime("%H:%M")

    @property
    def key(self) -> str:
        """The "HH:MM" an appointment's time field is matched against."""
        return self.start.strftime("%H:%M")

class DayAvailability(CamelModel):
    doctor_id: uuid.UUID
    date: date
    is_working: bool
    timezone: str | None = None
    message: str | None = None
    slots: list[TimeSlot] = Field(default_factory=list)
    available_count: int = 0
    booked_count: int = 0
    active_count: int = 0  # every active appointment on the date, on the slot grid or not
    max_appointments: int | None = None

class Suggestion(CamelModel):
    date: date
    time: str
    priority: str  # high | medium | low
    reason: str
    distance_minutes: int
