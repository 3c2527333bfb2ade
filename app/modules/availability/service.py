import uuid
import logging
from datetime import date, timedelta
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, utcnow
from app.core.errors import ValidationError
from app.modules.appointments.repository import AppointmentRepository
from app.modules.availability.engine import ScheduleSnapshot, evaluate_day
from app.modules.availability.schemas import DayAvailability
from app.modules.schedules.service import ScheduleService

logger = logging.getLogger(__name__)

MAX_RANGE_DAYS = 62

class AvailabilityService:
    def __init__(self, s: AsyncSession, clock: Clock = utcnow):
        self.s = s
        self.clock = clock
        self.schedules = ScheduleService(s)
        self.appts = AppointmentRepository(s)

    async def snapshot(self, org: uuid.UUID, doctor_id: uuid.UUID, start: date, end: date) -> ScheduleSnapshot:
        """One consistent read of schedule, exceptions and active bookings."""
        schedule = await self.schedules.get_schedule(org, doctor_id)
        exceptions = await self.schedules.exceptions.list_overlapping(org, doctor_id, start, end)
        appts = await self.appts.list_active_between(org, doctor_id, start, end)
        return ScheduleSnapshot.build(schedule.working_days, schedule.rule(), exceptions, appts)

    async def availability(self, org: uuid.UUID, doctor_id: uuid.UUID, on_date: date) -> DayAvailability:
        snap = await self.snapshot(org, doctor_id, on_date, on_date)
        day = evaluate_day(doctor_id, snap, on_date, self.clock())
        logger.debug(f"Availability for doctor {doctor_id} on {on_date}: {day.available_count} free, {day.booked_count} booked")
        return day

    async def availability_range(self, org: uuid.UUID, doctor_id: uuid.UUID, start: date, days: int) -> list[DayAvailability]:
        """``start`` through ``start + days`` inclusive, from a single snapshot."""
        if days < 0 or days > MAX_RANGE_DAYS:
            raise ValidationError(f"days must be between 0 and {MAX_RANGE_DAYS}")
        end = start + timedelta(days=days)
        snap = await self.snapshot(org, doctor_id, start, end)
        now = self.clock()
        return [evaluate_day(doctor_id, snap, start + timedelta(days=i), now) for i in range(days + 1)]
