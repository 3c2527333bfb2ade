"""
Unit tests for recurrence expansion.

Each rule type is checked against a Monday-to-Friday week, plus the effective
window, the default horizon and idempotence of repeated expansion.
"""

import pytest
from datetime import date, timedelta
from pydantic import ValidationError as PydanticValidationError

from app.core.config import settings
from app.core.errors import ValidationError
from app.modules.schedules.recurrence import dates_for, resolve_working_day
from app.modules.schedules.schemas import RecurrenceRule, WorkingDay, build_rule

from builders import clinic_day, weekday_week


def _rule(**kwargs) -> RecurrenceRule:
    return RecurrenceRule(**kwargs)


class TestWeekly:
    def test_absent_rule_means_every_working_weekday(self):
        """No rule behaves like WEEKLY: only working weekdays come out."""
        days = list(dates_for(None, weekday_week(), date(2030, 1, 7), date(2030, 1, 20)))
        assert len(days) == 10
        assert all(d.weekday() < 5 for d in days)

    def test_weekly_skips_days_marked_off(self):
        """A working-week hole is never produced."""
        week = weekday_week()
        week[2] = WorkingDay(day_of_week=2)
        days = list(dates_for(_rule(type="WEEKLY"), week, date(2030, 1, 7), date(2030, 1, 13)))
        assert date(2030, 1, 9) not in days
        assert len(days) == 4

    def test_expansion_is_lazy_and_restartable(self):
        """Calling twice with the same inputs yields the same dates."""
        rule = _rule(type="BIWEEKLY", effective_from=date(2030, 1, 7))
        gen = dates_for(rule, weekday_week(), date(2030, 1, 1))
        assert next(gen) == date(2030, 1, 7)
        first = list(dates_for(rule, weekday_week(), date(2030, 1, 1)))
        second = list(dates_for(rule, weekday_week(), date(2030, 1, 1)))
        assert first == second
        assert first


class TestOtherTypes:
    def test_daily_covers_every_date_when_some_day_works(self):
        """DAILY includes weekends and borrows the first working day's hours."""
        rule = _rule(type="DAILY")
        days = list(dates_for(rule, weekday_week(), date(2030, 1, 7), date(2030, 1, 20)))
        assert len(days) == 14
        saturday = resolve_working_day(rule, weekday_week(), date(2030, 1, 12))
        assert saturday.day_of_week == 5
        assert saturday.start_time == clinic_day(0).start_time

    def test_daily_with_no_working_day_is_empty(self):
        """A week with nothing marked working never applies."""
        week = [WorkingDay(day_of_week=d) for d in range(7)]
        assert list(dates_for(_rule(type="DAILY"), week, date(2030, 1, 7), date(2030, 1, 20))) == []

    def test_biweekly_alternates_from_the_anchor_week(self):
        """Anchor week on, next week off, the one after on."""
        rule = _rule(type="BIWEEKLY", effective_from=date(2030, 1, 9))
        days = list(dates_for(rule, weekday_week(), date(2030, 1, 7), date(2030, 1, 27)))
        assert days[0] == date(2030, 1, 9)
        assert not any(date(2030, 1, 14) <= d <= date(2030, 1, 20) for d in days)
        assert [d for d in days if d >= date(2030, 1, 21)] == [date(2030, 1, 21) + timedelta(days=i) for i in range(5)]

    def test_monthly_clips_to_short_months(self):
        """Anchored on the 31st: Feb gets the 28th, April the 30th."""
        rule = _rule(type="MONTHLY", effective_from=date(2030, 1, 31))
        days = list(dates_for(rule, weekday_week(), date(2030, 1, 1), date(2030, 4, 30)))
        assert days == [date(2030, 1, 31), date(2030, 2, 28), date(2030, 3, 31), date(2030, 4, 30)]

    @pytest.mark.parametrize("pattern, expected", [
        ("MON_WED_FRI", [date(2030, 1, 7), date(2030, 1, 9), date(2030, 1, 11)]),
        ("TUE_THU", [date(2030, 1, 8), date(2030, 1, 10)]),
        ("WEEKDAYS", [date(2030, 1, 7) + timedelta(days=i) for i in range(5)]),
        ("WEEKENDS", [date(2030, 1, 12), date(2030, 1, 13)]),
    ])
    def test_custom_weekday_sets(self, pattern, expected):
        """Fixed CUSTOM patterns pick their weekdays out of one week."""
        rule = _rule(type="CUSTOM", custom_pattern=pattern)
        assert list(dates_for(rule, weekday_week(), date(2030, 1, 7), date(2030, 1, 13))) == expected

    def test_custom_alternate_weeks(self):
        """ALTERNATE_WEEKS keeps working weekdays of every other week."""
        rule = _rule(type="CUSTOM", custom_pattern="ALTERNATE_WEEKS", effective_from=date(2030, 1, 14))
        days = list(dates_for(rule, weekday_week(), date(2030, 1, 14), date(2030, 2, 3)))
        assert {d.isocalendar()[1] for d in days} == {3, 5}


class TestEffectiveWindow:
    def test_dates_outside_the_window_are_never_produced(self):
        """effective_from and effective_until clip the requested range."""
        rule = _rule(type="WEEKLY", effective_from=date(2030, 1, 9), effective_until=date(2030, 1, 10))
        assert list(dates_for(rule, weekday_week(), date(2030, 1, 7), date(2030, 1, 20))) == [date(2030, 1, 9), date(2030, 1, 10)]

    def test_until_bounds_an_open_range(self):
        """With no range end the rule's own end date stops expansion."""
        rule = _rule(type="WEEKLY", effective_until=date(2030, 1, 8))
        assert list(dates_for(rule, weekday_week(), date(2030, 1, 7))) == [date(2030, 1, 7), date(2030, 1, 8)]

    def test_default_horizon(self):
        """Without any end the expansion stops after the configured horizon."""
        start = date(2030, 1, 7)
        days = list(dates_for(None, weekday_week(), start))
        assert days[-1] <= start + timedelta(days=settings.RECURRENCE_HORIZON_DAYS)
        assert days[-1] >= start + timedelta(days=settings.RECURRENCE_HORIZON_DAYS - 3)

    def test_resolve_outside_window_is_none(self):
        rule = _rule(type="WEEKLY", effective_from=date(2030, 2, 1))
        assert resolve_working_day(rule, weekday_week(), date(2030, 1, 7)) is None


class TestRuleValidation:
    def test_custom_needs_a_pattern(self):
        with pytest.raises(PydanticValidationError):
            RecurrenceRule(type="CUSTOM")

    def test_pattern_only_with_custom(self):
        with pytest.raises(PydanticValidationError):
            RecurrenceRule(type="WEEKLY", custom_pattern="TUE_THU")

    def test_unknown_pattern_is_rejected(self):
        """Free-text patterns are not part of the closed set."""
        with pytest.raises(PydanticValidationError):
            RecurrenceRule(type="CUSTOM", custom_pattern="EVERY_THIRD_TUESDAY")

    @pytest.mark.parametrize("kind", ["BIWEEKLY", "MONTHLY"])
    def test_anchored_types_need_effective_from(self, kind):
        with pytest.raises(PydanticValidationError):
            RecurrenceRule(type=kind)

    def test_from_after_until(self):
        with pytest.raises(PydanticValidationError):
            RecurrenceRule(effective_from=date(2030, 2, 1), effective_until=date(2030, 1, 1))

    def test_build_rule_reports_a_scheduling_validation_error(self):
        """Flat HTTP fields are turned into the 400-mapped error type."""
        with pytest.raises(ValidationError):
            build_rule("MONTHLY")
        assert build_rule() is None
        assert build_rule("DAILY").type.value == "DAILY"
