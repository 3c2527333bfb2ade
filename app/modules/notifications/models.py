import uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, JSON, UniqueConstraint
from app.core.base import Base, TimestampedTenantMixin

class MessageTemplate(Base, TimestampedTenantMixin):
    # name is the appointment event it renders for, e.g. appointment_booked
    __table_args__ = (UniqueConstraint("org_id", "channel", "name", name="uq_messagetemplate_org_channel_name"),)
    channel: Mapped[str] = mapped_column(String(16))  # sms | email | whatsapp
    name: Mapped[str] = mapped_column(String(64))
    subject: Mapped[str | None] = mapped_column(String(120), nullable=True)
    body: Mapped[str] = mapped_column(Text)

class OutboundMessage(Base, TimestampedTenantMixin):
    appointment_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True, index=True)
    event: Mapped[str | None] = mapped_column(String(32), nullable=True)  # booked | rescheduled | status_changed
    channel: Mapped[str] = mapped_column(String(16))
    to: Mapped[str] = mapped_column(String(128))
    subject: Mapped[str | None] = mapped_column(String(120), nullable=True)
    body: Mapped[str] = mapped_column(Text)
    meta: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="sent")  # recorded only; delivery is out of scope
