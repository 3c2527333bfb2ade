"""Alternative slots near a requested time, for when a booking is refused."""
import uuid
import logging
from datetime import date
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, utcnow
from app.core.config import settings
from app.core.errors import ValidationError
from app.modules.availability.schemas import DayAvailability, Suggestion
from app.modules.availability.service import AvailabilityService
from app.modules.availability.slots import parse_hhmm, to_minutes

logger = logging.getLogger(__name__)

def priority_for(distance: int) -> str:
    if distance <= 30:
        return "high"
    if distance <= 120:
        return "medium"
    return "low"

def reason_for(distance: int, same_day: bool) -> str:
    if distance == 0:
        text = "Exact time requested"
    elif distance <= 15:
        text = "Very close to requested time"
    elif distance <= 30:
        text = "Close to requested time"
    else:
        text = "Alternative time slot"
    return f"{text}, same day" if same_day else f"{text}, later date"

def rank_suggestions(days: Sequence[DayAvailability], requested_date: date, requested_minutes: int, limit: int) -> list[Suggestion]:
    """Available slots only, ordered same day first, then by distance, date, time."""
    candidates = []
    for day in days:
        for slot in day.slots:
            if not slot.is_available:
                continue
            distance = abs(to_minutes(slot.start) - requested_minutes)
            same_day = day.date == requested_date
            candidates.append(((0 if same_day else 1, distance, day.date, slot.key), day.date, slot.key, distance, same_day))
    candidates.sort(key=lambda c: c[0])
    return [
        Suggestion(date=d, time=t, priority=priority_for(dist), reason=reason_for(dist, same), distance_minutes=dist)
        for _, d, t, dist, same in candidates[:limit]
    ]

class SuggestionService:
    def __init__(self, session: AsyncSession, clock: Clock = utcnow):
        self.availability = AvailabilityService(session, clock=clock)

    async def suggest(self,
                      org: uuid.UUID,
                      doctor_id: uuid.UUID,
                      requested_date: date,
                      requested_time: str,
                      horizon_days: int | None = None,
                      limit: int | None = None) -> list[Suggestion]:
        horizon = settings.SUGGESTION_HORIZON_DAYS if horizon_days is None else horizon_days
        if horizon < 0 or horizon > settings.SUGGESTION_MAX_HORIZON_DAYS:
            raise ValidationError(f"days must be between 0 and {settings.SUGGESTION_MAX_HORIZON_DAYS}")
        limit = settings.SUGGESTION_LIMIT if limit is None else limit
        if limit < 1:
            raise ValidationError("limit must be at least 1")
        requested = to_minutes(parse_hhmm(requested_time))
        days = await self.availability.availability_range(org, doctor_id, requested_date, horizon)
        out = rank_suggestions(days, requested_date, requested, limit)
        logger.info(f"{len(out)} suggestions for doctor {doctor_id} near {requested_date} {requested_time}")
        return out
