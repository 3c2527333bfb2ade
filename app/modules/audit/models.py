import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, TIMESTAMP, text, JSON
from app.core.base import Base, TimestampedTenantMixin

class AuditEvent(Base, TimestampedTenantMixin):
    actor_user_id: Mapped[uuid.UUID] = mapped_column()
    action: Mapped[str] = mapped_column(String(48))  # schedule.replaced, appointment.booked, appointment.cancel, ...
    resource_type: Mapped[str] = mapped_column(String(48))  # doctor_schedule | schedule_template | schedule_exception | appointment
    resource_id: Mapped[str] = mapped_column(String(64))
    reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    success: Mapped[bool] = mapped_column(default=True)
    meta: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), server_default=text("CURRENT_TIMESTAMP"))
