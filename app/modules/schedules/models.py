import uuid
from datetime import date, time
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, JSON, Date, Time, Boolean, ForeignKey, UniqueConstraint
from app.core.base import Base, TimestampedTenantMixin

class DoctorSchedule(Base, TimestampedTenantMixin):
    # One packed row per doctor; the whole week is replaced in a single guarded UPDATE
    __table_args__ = (UniqueConstraint("doctor_id", name="uq_doctorschedule_doctor"),)

    doctor_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("doctor.id"), index=True)
    working_days: Mapped[list] = mapped_column(JSON)  # 7 WorkingDay dicts, Monday first

    recurrence_type: Mapped[str | None] = mapped_column(String(16), nullable=True)
    custom_pattern: Mapped[str | None] = mapped_column(String(24), nullable=True)
    effective_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    effective_until: Mapped[date | None] = mapped_column(Date, nullable=True)

    applied_template_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)


class ScheduleTemplate(Base, TimestampedTenantMixin):
    __table_args__ = (UniqueConstraint("org_id", "name", name="uq_scheduletemplate_org_name"),)

    name: Mapped[str] = mapped_column(String(100))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    template_type: Mapped[str] = mapped_column(String(16), default="WEEKLY")
    working_days: Mapped[list] = mapped_column(JSON)  # a copy; applying never links back
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)


class ScheduleException(Base, TimestampedTenantMixin):
    doctor_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("doctor.id"), index=True)
    exception_type: Mapped[str] = mapped_column(String(16), default="CUSTOM")  # HOLIDAY, VACATION, SICK_LEAVE, EMERGENCY, CUSTOM
    title: Mapped[str] = mapped_column(String(120))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[date] = mapped_column(Date, index=True)
    end_date: Mapped[date] = mapped_column(Date, index=True)
    is_all_day: Mapped[bool] = mapped_column(Boolean, default=True)
    start_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    end_time: Mapped[time | None] = mapped_column(Time, nullable=True)
