import uuid
import logging
from string import Template
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy import select

from app.core.errors import ConflictError, ExternalServiceError
from app.modules.notifications.models import MessageTemplate, OutboundMessage

logger = logging.getLogger(__name__)

DEFAULT_BODIES = {
    "booked": ("Appointment requested", "Your appointment on $date at $time has been requested (status: $status)."),
    "rescheduled": ("Appointment moved", "Your appointment has moved to $date at $time (status: $status)."),
    "status_changed": ("Appointment update", "Your appointment on $date at $time is now $status."),
}

class NotificationsService:
    def __init__(self, s: AsyncSession): self.s = s

    async def create_template(self, org: uuid.UUID, *, channel: str, name: str, subject: str | None, body: str) -> MessageTemplate:
        t = MessageTemplate(org_id=org, channel=channel, name=name, subject=subject, body=body)
        self.s.add(t)
        try:
            await self.s.flush()
        except IntegrityError:
            await self.s.rollback()
            raise ConflictError(f"Template {name!r} already exists for {channel}")
        await self.s.commit()
        return t

    async def find_template(self, org: uuid.UUID, channel: str, name: str) -> MessageTemplate | None:
        res = await self.s.execute(select(MessageTemplate).where(
            MessageTemplate.org_id == org,
            MessageTemplate.channel == channel,
            MessageTemplate.name == name,
            MessageTemplate.deleted_at.is_(None),
        ))
        return res.scalar_one_or_none()

    async def send(self, org: uuid.UUID, *, channel: str, to: str, subject: str | None, body: str, variables: dict | None,
                   appointment_id: uuid.UUID | None = None, event: str | None = None) -> OutboundMessage:
        rendered_subject = Template(subject or "").safe_substitute(variables or {})
        rendered_body = Template(body or "").safe_substitute(variables or {})
        m = OutboundMessage(org_id=org, appointment_id=appointment_id, event=event, channel=channel, to=to,
                            subject=rendered_subject or None, body=rendered_body, meta=variables or {}, status="sent")
        self.s.add(m); await self.s.flush(); await self.s.commit()
        # Recorded as sent; a delivery transport would hook in here
        return m

    async def list_for_appointment(self, org: uuid.UUID, appointment_id: uuid.UUID) -> list[OutboundMessage]:
        res = await self.s.execute(select(OutboundMessage).where(
            OutboundMessage.org_id == org,
            OutboundMessage.appointment_id == appointment_id,
        ).order_by(OutboundMessage.created_at.asc()))
        return list(res.scalars().all())


class AppointmentNotifier:
    """Tells the patient about a committed appointment change.

    Runs after the booking transaction has committed; every failure comes out
    as ExternalServiceError so callers can report it without undoing the booking.
    """

    def __init__(self, s: AsyncSession):
        self.s = s
        self.notifications = NotificationsService(s)

    async def appointment_event(self, org: uuid.UUID, appt, *, channel: str, to: str, event: str) -> OutboundMessage:
        variables = {
            "date": appt.appointment_date.isoformat(),
            "time": appt.time,
            "status": appt.status,
            "type": appt.type,
            "appointment_id": str(appt.id),
        }
        try:
            template = await self.notifications.find_template(org, channel, f"appointment_{event}")
            subject, body = (template.subject, template.body) if template else DEFAULT_BODIES[event]
            return await self.notifications.send(org, channel=channel, to=to, subject=subject, body=body,
                                                 variables=variables, appointment_id=appt.id, event=event)
        except SQLAlchemyError as e:
            await self.s.rollback()
            raise ExternalServiceError(f"Could not notify {channel} recipient about appointment {appt.id}") from e
