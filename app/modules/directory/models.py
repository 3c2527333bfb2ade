from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String
from app.core.base import Base, TimestampedTenantMixin

DOCTOR_STATUSES = ("AVAILABLE", "BUSY", "UNAVAILABLE")

class Doctor(Base, TimestampedTenantMixin):
    __tablename__ = "doctor"
    name: Mapped[str] = mapped_column(String(160), index=True)
    specialty: Mapped[str | None] = mapped_column(String(120), nullable=True)
    # Display flag only; slot generation never reads it
    availability_status: Mapped[str] = mapped_column(String(16), default="AVAILABLE")
    active: Mapped[bool] = mapped_column(default=True)
