"""
Tests for monthly billing-cycle helpers.
"""

from datetime import date

from subscriptions.billing_cycle import add_months, day_of_month, end_of_month, in_month, start_of_month
from subscriptions.tests.conftest import local_dt


class TestMonthBoundaries:

    def test_start_and_end_of_month(self):
        now = local_dt(2024, 2, 10)
        assert start_of_month(now) == local_dt(2024, 2, 1, 0)
        end = end_of_month(now)
        assert (end.day, end.hour, end.minute, end.second) == (29, 23, 59, 59)

    def test_in_month_is_strict(self):
        now = local_dt(2024, 1, 3)
        assert in_month(local_dt(2024, 1, 20), now)
        assert not in_month(start_of_month(now), now)
        assert not in_month(local_dt(2024, 2, 1, 0), now)
        assert not in_month(None, now)

    def test_day_of_month_uses_local_time(self):
        assert day_of_month(local_dt(2024, 1, 4, 23, 30)) == 4


class TestAddMonths:

    def test_keeps_day_of_month(self):
        assert add_months(local_dt(2024, 1, 20)) == local_dt(2024, 2, 20)

    def test_clamps_to_last_day_of_shorter_month(self):
        assert add_months(local_dt(2024, 1, 31)) == local_dt(2024, 2, 29)
        assert add_months(local_dt(2023, 1, 31)) == local_dt(2023, 2, 28)
        assert add_months(local_dt(2024, 3, 31)) == local_dt(2024, 4, 30)

    def test_rolls_over_year(self):
        assert add_months(local_dt(2024, 12, 15)) == local_dt(2025, 1, 15)

    def test_keeps_local_wall_clock_across_dst(self):
        """March 10 2024 is a DST change in the service zone."""
        shifted = add_months(local_dt(2024, 2, 20, 9))
        assert shifted == local_dt(2024, 3, 20, 9)

    def test_plain_dates(self):
        assert add_months(date(2024, 5, 31), 1) == date(2024, 6, 30)
