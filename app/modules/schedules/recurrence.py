"""Which calendar dates a weekly schedule applies to.

Everything here is pure: the same rule, week and range always give the same
dates, so callers can evaluate many doctors or days in parallel.
"""
import calendar
from datetime import date, timedelta
from typing import Iterator, Sequence

from app.core.config import settings
from app.modules.schedules.schemas import CustomPattern, RecurrenceRule, RecurrenceType, WorkingDay

WEEKLY = RecurrenceRule()

PATTERN_WEEKDAYS = {
    CustomPattern.MON_WED_FRI: frozenset({0, 2, 4}),
    CustomPattern.TUE_THU: frozenset({1, 3}),
    CustomPattern.WEEKDAYS: frozenset({0, 1, 2, 3, 4}),
    CustomPattern.WEEKENDS: frozenset({5, 6}),
}

def _monday(day: date) -> date:
    return day - timedelta(days=day.weekday())

def on_active_week(day: date, anchor: date) -> bool:
    # Weeks alternate starting with the week that holds the anchor
    weeks = (_monday(day) - _monday(anchor)).days // 7
    return weeks % 2 == 0

def monthly_day(anchor: date, day: date) -> int:
    last = calendar.monthrange(day.year, day.month)[1]
    return min(anchor.day, last)

def in_effect(rule: RecurrenceRule, day: date) -> bool:
    if rule.effective_from and day < rule.effective_from:
        return False
    if rule.effective_until and day > rule.effective_until:
        return False
    return True

def _for_weekday(week: Sequence[WorkingDay], day: date) -> WorkingDay | None:
    return next((d for d in week if d.day_of_week == day.weekday()), None)

def _with_fallback(week: Sequence[WorkingDay], day: date) -> WorkingDay | None:
    own = _for_weekday(week, day)
    if own is not None and own.is_working:
        return own
    first = next((d for d in sorted(week, key=lambda d: d.day_of_week) if d.is_working), None)
    if first is None:
        return None
    return first.model_copy(update={"day_of_week": day.weekday()})

def _own_if_working(week: Sequence[WorkingDay], day: date) -> WorkingDay | None:
    own = _for_weekday(week, day)
    return own if own is not None and own.is_working else None

def resolve_working_day(rule: RecurrenceRule | None, week: Sequence[WorkingDay], day: date) -> WorkingDay | None:
    """The working-day configuration that applies on ``day``, or None.

    DAILY, MONTHLY and the fixed CUSTOM weekday sets borrow the first working
    record of the week when the matching weekday is marked off.
    """
    rule = rule or WEEKLY
    if not in_effect(rule, day):
        return None
    kind = rule.type
    if kind == RecurrenceType.WEEKLY:
        return _own_if_working(week, day)
    if kind == RecurrenceType.BIWEEKLY:
        if rule.effective_from is None or not on_active_week(day, rule.effective_from):
            return None
        return _own_if_working(week, day)
    if kind == RecurrenceType.DAILY:
        return _with_fallback(week, day)
    if kind == RecurrenceType.MONTHLY:
        if rule.effective_from is None or day.day != monthly_day(rule.effective_from, day):
            return None
        return _with_fallback(week, day)
    if rule.custom_pattern == CustomPattern.ALTERNATE_WEEKS:
        if rule.effective_from is None or not on_active_week(day, rule.effective_from):
            return None
        return _own_if_working(week, day)
    allowed = PATTERN_WEEKDAYS.get(rule.custom_pattern, frozenset())
    if day.weekday() not in allowed:
        return None
    return _with_fallback(week, day)

def window(rule: RecurrenceRule | None, range_start: date, range_end: date | None = None) -> tuple[date, date]:
    rule = rule or WEEKLY
    start = max(range_start, rule.effective_from) if rule.effective_from else range_start
    if range_end is not None:
        end = range_end
    elif rule.effective_until is not None:
        end = rule.effective_until
    else:
        end = range_start + timedelta(days=settings.RECURRENCE_HORIZON_DAYS)
    if rule.effective_until is not None:
        end = min(end, rule.effective_until)
    return start, end

def dates_for(rule: RecurrenceRule | None, week: Sequence[WorkingDay], range_start: date, range_end: date | None = None) -> Iterator[date]:
    """Lazily yield every date in range the schedule applies to."""
    start, end = window(rule, range_start, range_end)
    day = start
    while day <= end:
        if resolve_working_day(rule, week, day) is not None:
            yield day
        day += timedelta(days=1)
