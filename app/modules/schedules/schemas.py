import uuid
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_serializer, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from app.core.config import settings
from app.core.errors import ValidationError
from app.core.schemas import CamelModel

HHMM = "%H:%M"

class RecurrenceType(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"
    CUSTOM = "CUSTOM"

class CustomPattern(str, Enum):
    MON_WED_FRI = "MON_WED_FRI"
    TUE_THU = "TUE_THU"
    WEEKDAYS = "WEEKDAYS"
    WEEKENDS = "WEEKENDS"
    ALTERNATE_WEEKS = "ALTERNATE_WEEKS"

EXCEPTION_TYPES = ("HOLIDAY", "VACATION", "SICK_LEAVE", "EMERGENCY", "CUSTOM")

def _fmt(value: time | str | None) -> str | None:
    return value.strftime(HHMM) if isinstance(value, time) else value

def _errors(exc: PydanticValidationError) -> list[dict]:
    return [{"loc": [str(p) for p in err["loc"]], "msg": err["msg"]} for err in exc.errors()]

class WorkingDay(CamelModel):
    day_of_week: int = Field(ge=0, le=6)  # 0 = Monday
    is_working: bool = False
    start_time: time = time(9, 0)
    end_time: time = time(17, 0)
    break_start: time | None = None
    break_end: time | None = None
    max_appointments: int = Field(default=20, ge=1, le=32)
    appointment_duration_minutes: int = Field(default=30, ge=15, le=480)
    buffer_minutes: int = Field(default=5, ge=0, le=60)
    timezone: str = Field(default_factory=lambda: settings.DEFAULT_TIMEZONE)

    @field_validator("start_time", "end_time", "break_start", "break_end")
    @classmethod
    def _whole_minutes(cls, v: time | None):
        if v is None:
            return v
        if v.second or v.microsecond:
            raise ValueError("times must be whole minutes (HH:MM)")
        return v.replace(tzinfo=None)

    @field_validator("timezone")
    @classmethod
    def _known_zone(cls, v: str):
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown timezone {v!r}")
        return v

    @model_validator(mode="after")
    def _check_hours(self):
        if self.is_working and self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        if (self.break_start is None) != (self.break_end is None):
            raise ValueError("break_start and break_end must be given together")
        if self.break_start is not None and not (self.start_time <= self.break_start < self.break_end <= self.end_time):
            raise ValueError("break must satisfy start_time <= break_start < break_end <= end_time")
        return self

    @field_serializer("start_time", "end_time", "break_start", "break_end")
    def _hhmm(self, v: time | None):
        return _fmt(v)

    @property
    def has_break(self) -> bool:
        return self.break_start is not None and self.break_end is not None

def default_week() -> list[WorkingDay]:
    return [WorkingDay(day_of_week=d) for d in range(7)]

def validate_week(days: Sequence[WorkingDay | dict]) -> list[WorkingDay]:
    """Parse and check a full week at the store boundary.

    Records are re-validated even when they arrive as model instances, so a
    week built with ``model_construct`` cannot slip past the invariants.
    Returns the seven records ordered Monday..Sunday.
    """
    parsed: list[WorkingDay] = []
    for i, raw in enumerate(days):
        data = raw.model_dump() if isinstance(raw, WorkingDay) else raw
        try:
            parsed.append(WorkingDay.model_validate(data))
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid working day at position {i}", details={"errors": _errors(e)})
    if len(parsed) != 7:
        raise ValidationError(f"A week needs exactly 7 working days, got {len(parsed)}")
    seen = {d.day_of_week for d in parsed}
    if seen != set(range(7)):
        raise ValidationError("A week needs one record per day_of_week 0..6", details={"days": sorted(seen)})
    return sorted(parsed, key=lambda d: d.day_of_week)

class RecurrenceRule(CamelModel):
    type: RecurrenceType = RecurrenceType.WEEKLY
    custom_pattern: CustomPattern | None = None
    effective_from: date | None = None
    effective_until: date | None = None

    @model_validator(mode="after")
    def _check_rule(self):
        if self.effective_from and self.effective_until and self.effective_from > self.effective_until:
            raise ValueError("effective_from must not be after effective_until")
        if self.type == RecurrenceType.CUSTOM and self.custom_pattern is None:
            raise ValueError("CUSTOM recurrence needs a custom_pattern")
        if self.type != RecurrenceType.CUSTOM and self.custom_pattern is not None:
            raise ValueError("custom_pattern is only allowed with CUSTOM recurrence")
        anchored = self.type in (RecurrenceType.BIWEEKLY, RecurrenceType.MONTHLY) or self.custom_pattern == CustomPattern.ALTERNATE_WEEKS
        if anchored and self.effective_from is None:
            raise ValueError(f"{self.type.value} recurrence needs effective_from as its anchor")
        return self

def build_rule(recurrence_type: Any = None, custom_pattern: Any = None, effective_from: date | None = None, effective_until: date | None = None) -> RecurrenceRule | None:
    """Assemble a rule from flat fields; ``None`` when nothing was given."""
    if recurrence_type is None and custom_pattern is None and effective_from is None and effective_until is None:
        return None
    try:
        return RecurrenceRule(
            type=recurrence_type or RecurrenceType.WEEKLY,
            custom_pattern=custom_pattern,
            effective_from=effective_from,
            effective_until=effective_until,
        )
    except PydanticValidationError as e:
        raise ValidationError("Invalid recurrence rule", details={"errors": _errors(e)})

def validate_rule(rule: RecurrenceRule | dict | None) -> RecurrenceRule | None:
    if rule is None:
        return None
    data = rule.model_dump() if isinstance(rule, RecurrenceRule) else rule
    try:
        return RecurrenceRule.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError("Invalid recurrence rule", details={"errors": _errors(e)})

# ---- Schedule payloads ----

class ScheduleIn(CamelModel):
    working_days: list[WorkingDay]
    recurrence_type: RecurrenceType | None = None
    custom_pattern: CustomPattern | None = None
    effective_from: date | None = None
    effective_until: date | None = None
    version: int | None = None  # version the caller last read; omitted means "whatever is current"

    def rule(self) -> RecurrenceRule | None:
        return build_rule(self.recurrence_type, self.custom_pattern, self.effective_from, self.effective_until)

class DoctorScheduleOut(CamelModel):
    doctor_id: uuid.UUID
    working_days: list[WorkingDay]
    recurrence_type: RecurrenceType | None = None
    custom_pattern: CustomPattern | None = None
    effective_from: date | None = None
    effective_until: date | None = None
    applied_template_id: uuid.UUID | None = None
    version: int = 0
    updated_at: datetime | None = None

    def rule(self) -> RecurrenceRule | None:
        return build_rule(self.recurrence_type, self.custom_pattern, self.effective_from, self.effective_until)

# ---- Templates ----

class TemplateCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    template_type: RecurrenceType = RecurrenceType.WEEKLY
    working_days: list[WorkingDay]
    is_default: bool = False

class TemplateOut(CamelModel):
    id: uuid.UUID
    name: str
    description: str | None = None
    template_type: RecurrenceType
    working_days: list[WorkingDay]
    is_default: bool
    created_at: datetime | None = None

class ApplyTemplate(CamelModel):
    template_id: uuid.UUID
    recurrence: RecurrenceRule | None = None
    version: int | None = None

# ---- Exceptions (leave, holidays) ----

class ExceptionCreate(CamelModel):
    exception_type: str = Field(default="CUSTOM", pattern="^(HOLIDAY|VACATION|SICK_LEAVE|EMERGENCY|CUSTOM)$")
    title: str = Field(..., min_length=1, max_length=120)
    description: str | None = None
    start_date: date
    end_date: date
    is_all_day: bool = True
    start_time: time | None = None
    end_time: time | None = None

    @model_validator(mode="after")
    def _check_window(self):
        if self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        if not self.is_all_day:
            if self.start_time is None or self.end_time is None:
                raise ValueError("a partial-day exception needs start_time and end_time")
            if self.start_time >= self.end_time:
                raise ValueError("start_time must be before end_time")
        return self

class ExceptionOut(CamelModel):
    id: uuid.UUID
    doctor_id: uuid.UUID
    exception_type: str
    title: str
    description: str | None = None
    start_date: date
    end_date: date
    is_all_day: bool
    start_time: time | None = None
    end_time: time | None = None

    @field_serializer("start_time", "end_time")
    def _hhmm(self, v: time | None):
        return _fmt(v)
