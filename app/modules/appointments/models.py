import uuid
from datetime import date
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, Date, ForeignKey, Index, text
from app.core.base import Base, TimestampedTenantMixin

ACTIVE_STATUSES = ("PENDING", "SCHEDULED")
APPOINTMENT_STATUSES = ("PENDING", "SCHEDULED", "CANCELLED", "COMPLETED", "NO_SHOW")

_ACTIVE = text("status IN ('PENDING', 'SCHEDULED')")

class Appointment(Base, TimestampedTenantMixin):
    __table_args__ = (
        # At most one active appointment per (doctor, date, time); this index is the booking guard
        Index(
            "uq_appointment_active_slot",
            "doctor_id", "appointment_date", "time",
            unique=True,
            postgresql_where=_ACTIVE,
            sqlite_where=_ACTIVE,
        ),
    )

    doctor_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("doctor.id"), index=True)
    patient_id: Mapped[uuid.UUID] = mapped_column(index=True)  # patient records live outside this service

    appointment_date: Mapped[date] = mapped_column(Date, index=True)
    time: Mapped[str] = mapped_column(String(5))  # "HH:MM", matches TimeSlot.start
    duration: Mapped[int] = mapped_column(default=30)  # minutes

    status: Mapped[str] = mapped_column(String(16), default="PENDING")  # PENDING, SCHEDULED, CANCELLED, COMPLETED, NO_SHOW
    type: Mapped[str] = mapped_column(String(48), default="CONSULTATION")
    booking_source: Mapped[str | None] = mapped_column(String(24), nullable=True)  # web, phone, walk_in, ...
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    reschedule_count: Mapped[int] = mapped_column(default=0)
