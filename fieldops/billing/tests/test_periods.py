from datetime import UTC
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from decimal import Decimal

import pytest

from fieldops.billing.periods import as_utc
from fieldops.billing.periods import in_month_of
from fieldops.billing.periods import month_bounds
from fieldops.billing.periods import remaining_fraction
from fieldops.billing.periods import round2
from fieldops.billing.periods import to_money

MARCH_START = datetime(2024, 3, 1, tzinfo=UTC)
APRIL_START = datetime(2024, 4, 1, tzinfo=UTC)


class TestMonthBounds:
    def test_mid_month(self):
        start, end = month_bounds(datetime(2024, 3, 16, 12, 30, tzinfo=UTC))
        assert start == MARCH_START
        assert end == APRIL_START

    def test_december_rolls_into_next_year(self):
        start, end = month_bounds(datetime(2024, 12, 31, 23, 59, tzinfo=UTC))
        assert start == datetime(2024, 12, 1, tzinfo=UTC)
        assert end == datetime(2025, 1, 1, tzinfo=UTC)

    def test_first_instant_belongs_to_its_own_month(self):
        start, end = month_bounds(APRIL_START)
        assert start == APRIL_START
        assert end == datetime(2024, 5, 1, tzinfo=UTC)

    def test_other_timezones_are_normalized_to_utc(self):
        # 01:00 on April 1st at UTC+3 is still March in UTC.
        moscow = timezone(timedelta(hours=3))
        start, _ = month_bounds(datetime(2024, 4, 1, 1, 0, tzinfo=moscow))
        assert start == MARCH_START

    def test_naive_values_are_taken_as_utc(self):
        assert as_utc(datetime(2024, 3, 1)) == MARCH_START  # noqa: DTZ001


class TestInMonthOf:
    def test_none_is_never_in_month(self):
        assert not in_month_of(None, MARCH_START)

    def test_start_is_inclusive(self):
        assert in_month_of(APRIL_START, datetime(2024, 4, 20, tzinfo=UTC))

    def test_end_is_exclusive(self):
        assert not in_month_of(APRIL_START, datetime(2024, 3, 20, tzinfo=UTC))

    def test_last_instant_of_previous_month(self):
        last_march = APRIL_START - timedelta(microseconds=1)
        assert not in_month_of(last_march, APRIL_START)


class TestRounding:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (Decimal("516.129"), Decimal("516.13")),
            (Decimal("0.005"), Decimal("0.01")),
            (Decimal("-0.005"), Decimal("-0.01")),
            (Decimal("2.344"), Decimal("2.34")),
        ],
    )
    def test_round_half_up(self, value, expected):
        assert round2(value) == expected

    def test_to_money_accepts_ints_and_strings(self):
        assert to_money(10) == Decimal("10.00")
        assert to_money("99.999") == Decimal("100.00")


class TestRemainingFraction:
    def test_at_start_is_one(self):
        assert remaining_fraction(MARCH_START, APRIL_START, MARCH_START) == 1

    def test_at_end_is_zero(self):
        assert remaining_fraction(MARCH_START, APRIL_START, APRIL_START) == 0

    def test_mid_march(self):
        fraction = remaining_fraction(
            MARCH_START,
            APRIL_START,
            datetime(2024, 3, 16, tzinfo=UTC),
        )
        assert fraction == Decimal(16) / Decimal(31)

    def test_clamped_outside_period(self):
        before = MARCH_START - timedelta(days=3)
        after = APRIL_START + timedelta(days=3)
        assert remaining_fraction(MARCH_START, APRIL_START, before) == 1
        assert remaining_fraction(MARCH_START, APRIL_START, after) == 0

    def test_empty_period_is_zero(self):
        assert remaining_fraction(APRIL_START, APRIL_START, MARCH_START) == 0
