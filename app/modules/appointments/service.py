import uuid
import logging
from datetime import date, datetime
from typing import Sequence
from zoneinfo import ZoneInfo
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, utcnow
from app.core.config import settings
from app.core.errors import ConflictError, ExternalServiceError, NotFoundError, NotWorkingDayError, ValidationError
from app.modules.appointments.models import Appointment, ACTIVE_STATUSES
from app.modules.appointments.repository import AppointmentRepository
from app.modules.appointments.schemas import (
    AppointmentAction, AppointmentCreate, AppointmentOut, BookingResult, ContactIn,
)
from app.modules.audit.service import AuditService
from app.modules.availability.schemas import DayAvailability, TimeSlot, REASON_BOOKED, REASON_CAPACITY
from app.modules.availability.service import AvailabilityService
from app.modules.availability.slots import parse_hhmm, to_minutes
from app.modules.events.outbox import OutboxService, APPT_BOOKED, APPT_RESCHEDULED, APPT_STATUS_CHANGED
from app.modules.notifications.service import AppointmentNotifier

logger = logging.getLogger(__name__)

VALID_NEXT = {
    "PENDING": {"SCHEDULED", "CANCELLED"},
    "SCHEDULED": {"COMPLETED", "CANCELLED", "NO_SHOW"},
    "COMPLETED": set(),
    "CANCELLED": set(),
    "NO_SHOW": set(),
}

ACTION_TARGET = {
    "ACCEPT": "SCHEDULED",
    "REJECT": "CANCELLED",
    "CANCEL": "CANCELLED",
    "COMPLETE": "COMPLETED",
    "NO_SHOW": "NO_SHOW",
}

def _summary(appt: Appointment) -> dict:
    return {
        "doctor_id": str(appt.doctor_id),
        "patient_id": str(appt.patient_id),
        "date": appt.appointment_date.isoformat(),
        "time": appt.time,
        "status": appt.status,
    }

class AppointmentService:
    def __init__(self, session: AsyncSession, clock: Clock = utcnow, notifier: AppointmentNotifier | None = None):
        self.session = session
        self.clock = clock
        self.appts = AppointmentRepository(session)
        self.availability = AvailabilityService(session, clock=clock)
        self.notifier = notifier or AppointmentNotifier(session)

    # ---- Reads ----

    async def get(self, org_id: uuid.UUID, appt_id: uuid.UUID) -> Appointment:
        obj = await self.appts.get(org_id, appt_id)
        if not obj:
            raise NotFoundError(f"Appointment {appt_id} not found")
        return obj

    async def list_appointments(self, org_id: uuid.UUID, *, doctor_id: uuid.UUID | None = None, on_date: date | None = None, status: str | None = None, limit: int = 50, offset: int = 0) -> Sequence[Appointment]:
        return await self.appts.list(org_id, doctor_id=doctor_id, on_date=on_date, status=status, limit=limit, offset=offset)

    # ---- Slot checks ----

    def _reject_past(self, day: DayAvailability, on_date: date, time_str: str) -> None:
        tz = ZoneInfo(day.timezone or settings.DEFAULT_TIMEZONE)
        starts_at = datetime.combine(on_date, parse_hhmm(time_str), tzinfo=tz)
        if starts_at <= self.clock().astimezone(tz):
            raise ValidationError(f"{on_date.isoformat()} {time_str} is in the past", details={"reason": "past"})

    def _claimable_slot(self, day: DayAvailability, time_str: str, moving: Appointment | None = None) -> TimeSlot:
        """The slot at ``time_str`` if it can be claimed; raises otherwise.

        When ``moving`` is given, that appointment's own slot and its share of
        the day's capacity count as free.
        """
        if not day.is_working:
            raise NotWorkingDayError(day.message or f"Doctor is not working on {day.date.isoformat()}")
        slot = next((s for s in day.slots if s.key == time_str), None)
        if slot is None:
            raise ValidationError(f"{time_str} is not a slot start on {day.date.isoformat()}", details={"time": time_str})
        if slot.is_available:
            return slot
        if slot.reason == REASON_BOOKED:
            if moving is not None and slot.appointment and slot.appointment.id == moving.id:
                return slot
            raise ConflictError(f"Slot {day.date.isoformat()} {time_str} is already booked", details={"date": day.date.isoformat(), "time": time_str})
        if slot.reason == REASON_CAPACITY and moving is not None and moving.appointment_date == day.date:
            return slot
        raise ValidationError(f"Slot {day.date.isoformat()} {time_str} is unavailable ({slot.reason})", details={"reason": slot.reason})

    async def _notify(self, org_id: uuid.UUID, appt: AppointmentOut, contact: ContactIn | None, event: str) -> list[str]:
        """Runs after commit on a detached snapshot; a notifier rollback cannot reach the caller."""
        if contact is None or not settings.NOTIFICATIONS_ENABLED:
            return []
        try:
            await self.notifier.appointment_event(org_id, appt, channel=contact.channel, to=contact.to, event=event)
        except ExternalServiceError as e:
            logger.warning(f"Notification for appointment {appt.id} failed: {e.message}", exc_info=True)
            return [e.message]
        return []

    # ---- Writes ----

    async def book(self, org_id: uuid.UUID, payload: AppointmentCreate, actor_id: uuid.UUID | None = None) -> BookingResult:
        """Claim a slot; the partial unique index decides who wins a race."""
        day = await self.availability.availability(org_id, payload.doctor_id, payload.appointment_date)
        self._reject_past(day, payload.appointment_date, payload.time)
        slot = self._claimable_slot(day, payload.time)

        try:
            appt = await self.appts.create(
                org_id,
                doctor_id=payload.doctor_id,
                patient_id=payload.patient_id,
                appointment_date=payload.appointment_date,
                time=payload.time,
                duration=to_minutes(slot.end) - to_minutes(slot.start),
                status="PENDING",
                type=payload.type,
                booking_source=payload.booking_source,
                note=payload.note,
                reason=payload.reason,
            )
        except IntegrityError:
            await self.session.rollback()
            logger.warning(f"Booking race lost for doctor {payload.doctor_id} at {payload.appointment_date} {payload.time}")
            raise ConflictError(
                f"Slot {payload.appointment_date.isoformat()} {payload.time} was just booked",
                details={"date": payload.appointment_date.isoformat(), "time": payload.time},
            )

        await AuditService(self.session).log(org_id, actor_id, "appointment.booked", "appointment", appt.id, meta=_summary(appt))
        await OutboxService(self.session).enqueue(org_id, APPT_BOOKED, "appointment", appt.id, _summary(appt))
        await self.session.commit()
        logger.info(f"Appointment {appt.id} booked for doctor {appt.doctor_id} at {appt.appointment_date} {appt.time}")

        out = AppointmentOut.model_validate(appt)
        warnings = await self._notify(org_id, out, payload.contact, "booked")
        return BookingResult(appointment=out, warnings=warnings)

    async def reschedule(self,
                         org_id: uuid.UUID,
                         appt_id: uuid.UUID,
                         new_date: date | None = None,
                         new_time: str | None = None,
                         *,
                         actor_id: uuid.UUID | None = None,
                         contact: ContactIn | None = None) -> BookingResult:
        appt = await self.get(org_id, appt_id)
        target_date = new_date or appt.appointment_date
        target_time = new_time or appt.time

        day = await self.availability.availability(org_id, appt.doctor_id, target_date)
        # Past targets are refused before anything else is looked at
        self._reject_past(day, target_date, target_time)
        if appt.status not in ACTIVE_STATUSES:
            raise ValidationError(f"Appointment {appt_id} is {appt.status} and cannot be rescheduled")
        slot = self._claimable_slot(day, target_time, moving=appt)

        previous = {"date": appt.appointment_date.isoformat(), "time": appt.time, "status": appt.status}
        try:
            moved = await self.appts.move(
                org_id, appt.id, appt.version,
                new_date=target_date,
                new_time=target_time,
                duration=to_minutes(slot.end) - to_minutes(slot.start),
                status="SCHEDULED",
            )
        except IntegrityError:
            await self.session.rollback()
            logger.warning(f"Reschedule race lost for appointment {appt_id} -> {target_date} {target_time}")
            raise ConflictError(f"Slot {target_date.isoformat()} {target_time} was just booked",
                                details={"date": target_date.isoformat(), "time": target_time})
        if not moved:
            await self.session.rollback()
            logger.warning(f"Appointment {appt_id} changed while being rescheduled")
            raise ConflictError(f"Appointment {appt_id} changed concurrently; re-fetch and retry")

        appt = await self.get(org_id, appt_id)
        meta = {**_summary(appt), "previous": previous}
        await AuditService(self.session).log(org_id, actor_id, "appointment.rescheduled", "appointment", appt.id, meta=meta)
        await OutboxService(self.session).enqueue(org_id, APPT_RESCHEDULED, "appointment", appt.id, meta)
        await self.session.commit()
        logger.info(f"Appointment {appt.id} moved {previous['date']} {previous['time']} -> {appt.appointment_date} {appt.time}")

        out = AppointmentOut.model_validate(appt)
        warnings = await self._notify(org_id, out, contact, "rescheduled")
        return BookingResult(appointment=out, warnings=warnings)

    async def transition(self, org_id: uuid.UUID, appt_id: uuid.UUID, action: str, *,
                         reason: str | None = None, actor_id: uuid.UUID | None = None,
                         contact: ContactIn | None = None) -> BookingResult:
        target = ACTION_TARGET.get(action)
        if target is None:
            raise ValidationError(f"Unknown action {action!r}")
        appt = await self.get(org_id, appt_id)
        prev = appt.status
        if target not in VALID_NEXT.get(prev, set()):
            raise ValidationError(f"Cannot {action} an appointment that is {prev}", details={"status": prev, "action": action})

        try:
            changed = await self.appts.set_status(org_id, appt.id, appt.version, prev, target)
        except IntegrityError:
            await self.session.rollback()
            raise ConflictError(f"Appointment {appt_id} slot is held by another active appointment")
        if not changed:
            await self.session.rollback()
            raise ConflictError(f"Appointment {appt_id} changed concurrently; re-fetch and retry")

        appt = await self.get(org_id, appt_id)
        meta = {**_summary(appt), "previous_status": prev, "action": action}
        await AuditService(self.session).log(org_id, actor_id, f"appointment.{action.lower()}", "appointment", appt.id, reason=reason, meta=meta)
        await OutboxService(self.session).enqueue(org_id, APPT_STATUS_CHANGED, "appointment", appt.id, meta)
        await self.session.commit()
        logger.info(f"Appointment {appt.id} {prev} -> {target}")

        out = AppointmentOut.model_validate(appt)
        warnings = await self._notify(org_id, out, contact, "status_changed")
        return BookingResult(appointment=out, warnings=warnings)

    async def apply_action(self, org_id: uuid.UUID, payload: AppointmentAction, actor_id: uuid.UUID | None = None) -> BookingResult:
        if payload.action == "RESCHEDULE":
            if payload.appointment_date is None and payload.time is None:
                raise ValidationError("RESCHEDULE needs a new date or time")
            return await self.reschedule(org_id, payload.appointment_id, payload.appointment_date, payload.time,
                                         actor_id=actor_id, contact=payload.contact)
        return await self.transition(org_id, payload.appointment_id, payload.action,
                                     reason=payload.reason, actor_id=actor_id, contact=payload.contact)
