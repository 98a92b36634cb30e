"""Tests for recurrence computation."""

from datetime import UTC, datetime, timedelta

import pytest

from nudge.scheduling.errors import InvalidRecurrenceRule
from nudge.scheduling.recurrence import add_months, next_fire_time, validate_rule
from nudge.scheduling.types import RecurrenceKind, RecurrenceRule

# Monday
MONDAY = datetime(2026, 1, 5, 9, 0, tzinfo=UTC)


def rule(kind: RecurrenceKind, **kwargs) -> RecurrenceRule:
    return RecurrenceRule(kind=kind, **kwargs)


class TestDaily:
    def test_advances_one_day_same_time(self):
        assert next_fire_time(MONDAY, rule(RecurrenceKind.DAILY)) == datetime(
            2026, 1, 6, 9, 0, tzinfo=UTC
        )

    def test_interval_counts_days(self):
        result = next_fire_time(MONDAY, rule(RecurrenceKind.DAILY, interval=3))
        assert result == MONDAY + timedelta(days=3)

    def test_result_is_utc(self):
        from_time = datetime(2026, 1, 5, 9, 0, tzinfo=UTC).astimezone()
        result = next_fire_time(from_time, rule(RecurrenceKind.DAILY))
        assert result.tzinfo == UTC


class TestWeekly:
    def test_without_anchor_adds_a_week(self):
        result = next_fire_time(MONDAY, rule(RecurrenceKind.WEEKLY))
        assert result == datetime(2026, 1, 12, 9, 0, tzinfo=UTC)

    def test_anchor_moves_forward_to_weekday(self):
        # Candidate is Monday the 12th; Wednesday anchor lands on the 14th
        result = next_fire_time(
            MONDAY, rule(RecurrenceKind.WEEKLY, anchor_day_of_week=2)
        )
        assert result == datetime(2026, 1, 14, 9, 0, tzinfo=UTC)
        assert result.weekday() == 2

    def test_anchor_on_same_weekday_does_not_move(self):
        result = next_fire_time(
            MONDAY, rule(RecurrenceKind.WEEKLY, anchor_day_of_week=0)
        )
        assert result == datetime(2026, 1, 12, 9, 0, tzinfo=UTC)

    def test_anchor_never_moves_backward(self):
        # From Wednesday, a Monday anchor moves past the candidate Wednesday
        wednesday = datetime(2026, 1, 7, 9, 0, tzinfo=UTC)
        result = next_fire_time(
            wednesday, rule(RecurrenceKind.WEEKLY, anchor_day_of_week=0)
        )
        assert result == datetime(2026, 1, 19, 9, 0, tzinfo=UTC)
        assert result > wednesday + timedelta(days=7)

    def test_interval_with_anchor(self):
        result = next_fire_time(
            MONDAY, rule(RecurrenceKind.WEEKLY, interval=2, anchor_day_of_week=4)
        )
        assert result == datetime(2026, 1, 23, 9, 0, tzinfo=UTC)

    def test_anchor_weekday_evaluated_at_offset(self):
        # 02:00 UTC Monday is 21:00 Sunday at UTC-5
        from_time = datetime(2026, 1, 5, 2, 0, tzinfo=UTC)

        at_utc = next_fire_time(
            from_time, rule(RecurrenceKind.WEEKLY, anchor_day_of_week=0)
        )
        at_offset = next_fire_time(
            from_time,
            rule(RecurrenceKind.WEEKLY, anchor_day_of_week=0, utc_offset_minutes=-300),
        )

        assert at_utc == datetime(2026, 1, 12, 2, 0, tzinfo=UTC)
        # Monday 21:00 local
        assert at_offset == datetime(2026, 1, 13, 2, 0, tzinfo=UTC)


class TestMonthly:
    def test_clamps_to_end_of_february(self):
        jan_31 = datetime(2026, 1, 31, 10, 0, tzinfo=UTC)
        result = next_fire_time(
            jan_31, rule(RecurrenceKind.MONTHLY, anchor_day_of_month=31)
        )
        assert result == datetime(2026, 2, 28, 10, 0, tzinfo=UTC)

    def test_clamps_to_leap_day(self):
        jan_31 = datetime(2028, 1, 31, 10, 0, tzinfo=UTC)
        result = next_fire_time(
            jan_31, rule(RecurrenceKind.MONTHLY, anchor_day_of_month=31)
        )
        assert result == datetime(2028, 2, 29, 10, 0, tzinfo=UTC)

    def test_anchor_restores_day_after_short_month(self):
        feb_28 = datetime(2026, 2, 28, 10, 0, tzinfo=UTC)
        result = next_fire_time(
            feb_28, rule(RecurrenceKind.MONTHLY, anchor_day_of_month=31)
        )
        assert result == datetime(2026, 3, 31, 10, 0, tzinfo=UTC)

    def test_without_anchor_clamps_too(self):
        jan_31 = datetime(2026, 1, 31, 10, 0, tzinfo=UTC)
        result = next_fire_time(jan_31, rule(RecurrenceKind.MONTHLY))
        assert result == datetime(2026, 2, 28, 10, 0, tzinfo=UTC)

    def test_year_rollover(self):
        dec_15 = datetime(2026, 12, 15, 8, 0, tzinfo=UTC)
        result = next_fire_time(dec_15, rule(RecurrenceKind.MONTHLY))
        assert result == datetime(2027, 1, 15, 8, 0, tzinfo=UTC)

    def test_interval_counts_months(self):
        march = datetime(2026, 3, 15, 8, 0, tzinfo=UTC)
        result = next_fire_time(march, rule(RecurrenceKind.MONTHLY, interval=12))
        assert result == datetime(2027, 3, 15, 8, 0, tzinfo=UTC)

    def test_day_of_month_evaluated_at_offset(self):
        # 20:00 UTC on Jan 31 is 05:00 Feb 1 at UTC+9
        from_time = datetime(2026, 1, 31, 20, 0, tzinfo=UTC)
        result = next_fire_time(
            from_time,
            rule(RecurrenceKind.MONTHLY, anchor_day_of_month=1, utc_offset_minutes=540),
        )
        # 05:00 Mar 1 local
        assert result == datetime(2026, 2, 28, 20, 0, tzinfo=UTC)


class TestCustom:
    def test_interval_is_milliseconds(self):
        result = next_fire_time(MONDAY, rule(RecurrenceKind.CUSTOM, interval=90_000))
        assert result == MONDAY + timedelta(seconds=90)

    def test_one_millisecond_still_advances(self):
        result = next_fire_time(MONDAY, rule(RecurrenceKind.CUSTOM, interval=1))
        assert result == MONDAY + timedelta(milliseconds=1)
        assert result > MONDAY


class TestNextFireTimeErrors:
    def test_naive_from_time_rejected(self):
        with pytest.raises(ValueError):
            next_fire_time(datetime(2026, 1, 5, 9, 0), rule(RecurrenceKind.DAILY))

    def test_invalid_rule_rejected(self):
        with pytest.raises(InvalidRecurrenceRule):
            next_fire_time(MONDAY, rule(RecurrenceKind.DAILY, interval=0))


class TestAddMonths:
    def test_plain_advance(self):
        value = datetime(2026, 4, 10, tzinfo=UTC)
        assert add_months(value, 2) == datetime(2026, 6, 10, tzinfo=UTC)

    def test_override_day_is_clamped(self):
        value = datetime(2026, 11, 30, tzinfo=UTC)
        assert add_months(value, 3, 31) == datetime(2027, 2, 28, tzinfo=UTC)

    def test_zero_months_sets_day(self):
        value = datetime(2026, 4, 10, tzinfo=UTC)
        assert add_months(value, 0, 31) == datetime(2026, 4, 30, tzinfo=UTC)


class TestValidateRule:
    @pytest.mark.parametrize(
        "bad_rule",
        [
            RecurrenceRule(kind=RecurrenceKind.DAILY, interval=0),
            RecurrenceRule(kind=RecurrenceKind.DAILY, interval=-1),
            RecurrenceRule(kind=RecurrenceKind.DAILY, interval=True),
            RecurrenceRule(kind=RecurrenceKind.CUSTOM, interval=1.5),  # type: ignore[arg-type]
            RecurrenceRule(kind="hourly"),  # type: ignore[arg-type]
            RecurrenceRule(kind=RecurrenceKind.DAILY, anchor_day_of_week=1),
            RecurrenceRule(kind=RecurrenceKind.WEEKLY, anchor_day_of_week=7),
            RecurrenceRule(kind=RecurrenceKind.WEEKLY, anchor_day_of_month=3),
            RecurrenceRule(kind=RecurrenceKind.MONTHLY, anchor_day_of_month=0),
            RecurrenceRule(kind=RecurrenceKind.MONTHLY, anchor_day_of_month=32),
            RecurrenceRule(kind=RecurrenceKind.DAILY, utc_offset_minutes=15 * 60),
            RecurrenceRule(
                kind=RecurrenceKind.DAILY, end_time=datetime(2026, 2, 1, 0, 0)
            ),
        ],
    )
    def test_rejects_malformed_rules(self, bad_rule):
        with pytest.raises(InvalidRecurrenceRule):
            validate_rule(bad_rule)

    def test_accepts_valid_rules(self):
        validate_rule(RecurrenceRule(kind=RecurrenceKind.WEEKLY, anchor_day_of_week=6))
        validate_rule(
            RecurrenceRule(
                kind=RecurrenceKind.MONTHLY,
                interval=2,
                anchor_day_of_month=31,
                utc_offset_minutes=-600,
                end_time=datetime(2027, 1, 1, tzinfo=UTC),
            )
        )

    def test_invalid_rule_is_a_value_error(self):
        with pytest.raises(ValueError):
            validate_rule(RecurrenceRule(kind=RecurrenceKind.DAILY, interval=0))
