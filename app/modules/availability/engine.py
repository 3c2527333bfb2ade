"""Merge generated slots with a read snapshot of bookings and exceptions.

``evaluate_day`` never touches the database; the service loads a
``ScheduleSnapshot`` once and evaluates as many dates as it needs from it.
"""
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Iterable, Sequence

from app.core.errors import NotWorkingDayError
from app.modules.availability.schemas import (
    AppointmentSummary, DayAvailability, TimeSlot,
    REASON_BOOKED, REASON_BREAK, REASON_CAPACITY, REASON_EXCEPTION,
)
from app.modules.availability.slots import generate, to_minutes
from app.modules.schedules.recurrence import resolve_working_day
from app.modules.schedules.schemas import RecurrenceRule, WorkingDay

@dataclass(frozen=True)
class ExceptionWindow:
    title: str
    start_date: date
    end_date: date
    is_all_day: bool = True
    start_time: time | None = None
    end_time: time | None = None

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    def blocks(self, day: date, slot: TimeSlot) -> bool:
        if not self.covers(day):
            return False
        if self.is_all_day or self.start_time is None or self.end_time is None:
            return True
        return to_minutes(slot.start) < to_minutes(self.end_time) and to_minutes(slot.end) > to_minutes(self.start_time)

@dataclass(frozen=True)
class BookedAppointment:
    id: uuid.UUID
    patient_id: uuid.UUID
    appointment_date: date
    time: str
    status: str
    type: str

    def summary(self) -> AppointmentSummary:
        return AppointmentSummary(id=self.id, patient_id=self.patient_id, status=self.status, type=self.type)

@dataclass
class ScheduleSnapshot:
    week: Sequence[WorkingDay]
    rule: RecurrenceRule | None = None
    exceptions: Sequence[ExceptionWindow] = ()
    appointments: dict[date, list[BookedAppointment]] = field(default_factory=dict)

    @classmethod
    def build(cls, week, rule, exceptions: Iterable = (), appointments: Iterable = ()) -> "ScheduleSnapshot":
        windows = [
            ExceptionWindow(
                title=e.title, start_date=e.start_date, end_date=e.end_date,
                is_all_day=e.is_all_day, start_time=e.start_time, end_time=e.end_time,
            )
            for e in exceptions
        ]
        by_date: dict[date, list[BookedAppointment]] = defaultdict(list)
        for a in appointments:
            by_date[a.appointment_date].append(BookedAppointment(
                id=a.id, patient_id=a.patient_id, appointment_date=a.appointment_date,
                time=a.time, status=a.status, type=a.type,
            ))
        return cls(week=list(week), rule=rule, exceptions=windows, appointments=dict(by_date))

    def appointments_on(self, day: date) -> list[BookedAppointment]:
        return self.appointments.get(day, [])

def effective_working_day(snapshot: ScheduleSnapshot, day: date) -> WorkingDay:
    for ex in snapshot.exceptions:
        if ex.is_all_day and ex.covers(day):
            raise NotWorkingDayError(f"Doctor is unavailable on {day.isoformat()}: {ex.title}")
    working_day = resolve_working_day(snapshot.rule, snapshot.week, day)
    if working_day is None:
        raise NotWorkingDayError(f"Doctor is not working on {day:%A} {day.isoformat()}")
    return working_day

def evaluate_day(doctor_id: uuid.UUID, snapshot: ScheduleSnapshot, day: date, now: datetime | None = None) -> DayAvailability:
    try:
        working_day = effective_working_day(snapshot, day)
    except NotWorkingDayError as e:
        return DayAvailability(doctor_id=doctor_id, date=day, is_working=False, message=e.message)

    booked = {a.time: a for a in snapshot.appointments_on(day)}
    partial = [ex for ex in snapshot.exceptions if not ex.is_all_day and ex.covers(day)]

    slots: list[TimeSlot] = []
    for slot in generate(working_day, day, now):
        if slot.reason == REASON_BREAK:
            slots.append(slot)
            continue
        appt = booked.get(slot.key)
        if appt is not None:
            slot = slot.model_copy(update={"is_available": False, "reason": REASON_BOOKED, "appointment": appt.summary()})
        elif any(ex.blocks(day, slot) for ex in partial):
            slot = slot.model_copy(update={"is_available": False, "reason": REASON_EXCEPTION})
        slots.append(slot)

    active = snapshot.appointments_on(day)
    # Capacity counts every active booking on the date, aligned to a slot or not
    if len(active) >= working_day.max_appointments:
        slots = [
            s.model_copy(update={"is_available": False, "reason": REASON_CAPACITY}) if s.is_available else s
            for s in slots
        ]

    shown = {s.key for s in slots if s.reason == REASON_BOOKED}
    off_grid = sorted(a.time for a in active if a.time not in shown)
    message = None
    if off_grid:
        message = f"{len(off_grid)} active appointment(s) not on a bookable slot: {', '.join(off_grid)}"

    return DayAvailability(
        doctor_id=doctor_id,
        date=day,
        is_working=True,
        timezone=working_day.timezone,
        message=message,
        slots=slots,
        available_count=sum(1 for s in slots if s.is_available),
        booked_count=sum(1 for s in slots if s.reason == REASON_BOOKED),
        active_count=len(active),
        max_appointments=working_day.max_appointments,
    )
