"""Turn one working-day definition into its candidate slots. No I/O."""
from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from app.core.errors import ValidationError
from app.modules.availability.schemas import TimeSlot, REASON_BREAK, REASON_PAST
from app.modules.schedules.schemas import WorkingDay

def to_minutes(t: time) -> int:
    return t.hour * 60 + t.minute

def from_minutes(m: int) -> time:
    return time(m // 60, m % 60)

def parse_hhmm(value: str) -> time:
    try:
        parsed = datetime.strptime(value, "%H:%M").time()
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid time {value!r}, expected HH:MM")
    return parsed

def local_now(working_day: WorkingDay, now: datetime | None = None) -> datetime:
    tz = ZoneInfo(working_day.timezone)
    if now is None:
        return datetime.now(tz)
    if now.tzinfo is None:
        return now.replace(tzinfo=tz)
    return now.astimezone(tz)

def is_elapsed(working_day: WorkingDay, on_date: date, start: time, now: datetime | None = None) -> bool:
    current = local_now(working_day, now)
    starts_at = datetime.combine(on_date, start, tzinfo=current.tzinfo)
    return starts_at <= current

def generate(working_day: WorkingDay, on_date: date, now: datetime | None = None) -> list[TimeSlot]:
    """Slots ``[t, t + duration)`` every ``duration + buffer`` minutes from start_time.

    A step is emitted only while ``t + stride <= end_time``. Slots touching the
    break are marked ``break``; slots whose start has passed are marked ``past``.
    """
    if not working_day.is_working:
        return []
    duration = working_day.appointment_duration_minutes
    stride = duration + working_day.buffer_minutes
    end = to_minutes(working_day.end_time)
    brk = None
    if working_day.has_break:
        brk = (to_minutes(working_day.break_start), to_minutes(working_day.break_end))

    current = local_now(working_day, now)
    slots: list[TimeSlot] = []
    t = to_minutes(working_day.start_time)
    while t + stride <= end:
        slot_end = t + duration
        start = from_minutes(t)
        reason = None
        if brk and t < brk[1] and slot_end > brk[0]:
            reason = REASON_BREAK
        elif datetime.combine(on_date, start, tzinfo=current.tzinfo) <= current:
            reason = REASON_PAST
        slots.append(TimeSlot(start=start, end=from_minutes(slot_end), is_available=reason is None, reason=reason))
        t += stride
    return slots
