"""
Tests for the schedule generator and the day-count helpers.

Interest is Actual/365 on the balance before each payment, rounded
half-up to whole units.
"""

from datetime import date
from decimal import Decimal

import pytest

from money_manager.amortization import (
    accrue_interest,
    actual_days,
    add_months,
    base_principal,
    generate_schedule,
    suggest_interest,
)


class TestDayCount:
    """Tests for day counting and interest accrual."""

    def test_actual_days_across_leap_february(self):
        """February 2024 has 29 days."""
        assert actual_days(date(2024, 2, 1), date(2024, 3, 1)) == 29

    def test_actual_days_is_absolute(self):
        """Reversed dates still count the days between them."""
        assert actual_days(date(2024, 3, 1), date(2024, 2, 1)) == 29

    def test_accrue_interest_rounds_half_up(self):
        """0.5 rounds away from zero."""
        # 365 * 10% * 1 / 365 / 100 * 100 = 0.5 on a balance of 1825
        assert accrue_interest(Decimal("1825"), Decimal("10"), 1) == Decimal("1")

    def test_accrue_interest_zero_days(self):
        """No elapsed time means no interest."""
        assert accrue_interest(Decimal("1000000"), Decimal("12"), 0) == Decimal("0")

    def test_add_months_clamps_to_month_end(self):
        """Jan 31 plus one month is the last day of February."""
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)

    def test_add_months_from_anchor_does_not_drift(self):
        """Offsets from the anchor keep the original day when the month allows it."""
        assert add_months(date(2024, 1, 31), 2) == date(2024, 3, 31)

    def test_suggest_interest(self):
        """Suggested interest uses the same Actual/365 rule."""
        assert suggest_interest(
            Decimal("60000000"), date(2024, 2, 1), date(2024, 3, 1), Decimal("12")
        ) == Decimal("572055")


class TestWorkedExample:
    """120,000,000 at 12% over 2 months with a 60,000,000 override."""

    @pytest.fixture
    def schedule(self):
        return generate_schedule(
            total_amount=Decimal("120000000"),
            annual_rate_percent=Decimal("12"),
            term_months=2,
            start_date=date(2024, 1, 1),
            first_payment_date=date(2024, 2, 1),
            monthly_principal_override=Decimal("60000000"),
        )

    def test_first_entry(self, schedule):
        """31 days of interest on the full amount."""
        first = schedule.entries[0]
        assert first.id == "1"
        assert first.payment_date == date(2024, 2, 1)
        # 120,000,000 * 0.12 * 31 / 365 = 1,223,013.69...
        assert first.interest == Decimal("1223014")
        assert first.principal == Decimal("60000000")
        assert first.remaining_balance == Decimal("60000000")
        assert first.total_payment == Decimal("61223014")

    def test_second_entry(self, schedule):
        """29 days of interest on the remaining half."""
        second = schedule.entries[1]
        assert second.id == "2"
        assert second.payment_date == date(2024, 3, 1)
        # 60,000,000 * 0.12 * 29 / 365 = 572,054.79...
        assert second.interest == Decimal("572055")
        assert second.principal == Decimal("60000000")
        assert second.remaining_balance == Decimal("0")

    def test_entries_carry_rate_and_are_unpaid(self, schedule):
        """Every entry records the rate used and starts unpaid."""
        for entry in schedule.entries:
            assert entry.interest_rate_snapshot == Decimal("12")
            assert entry.is_paid is False
        assert schedule.final_balance == Decimal("0")


class TestScheduleGenerator:
    """Tests for generate_schedule invariants and edge cases."""

    def test_even_split_puts_remainder_on_last_entry(self):
        """floor(total / term) per entry, the last one absorbs the rest."""
        result = generate_schedule(
            Decimal("1000000"), Decimal("0"), 3, date(2024, 1, 1), date(2024, 2, 1)
        )
        assert [e.principal for e in result.entries] == [
            Decimal("333333"), Decimal("333333"), Decimal("333334")
        ]

    def test_principal_sums_to_total(self):
        """Principal always adds up to the amount borrowed."""
        for total, term, override in [
            (Decimal("1000000"), 7, None),
            (Decimal("999999999"), 36, None),
            (Decimal("100000"), 4, Decimal("40000")),
            (Decimal("5000000"), 12, Decimal("300000")),
        ]:
            result = generate_schedule(
                total, Decimal("9.5"), term, date(2024, 1, 15), date(2024, 2, 15), override
            )
            assert result.total_principal == total
            assert len(result.entries) == term

    def test_balances_non_increasing_and_end_at_zero(self):
        """Snapshots never go up and the last one is exactly zero."""
        result = generate_schedule(
            Decimal("36000000"), Decimal("10.5"), 12, date(2024, 1, 10), date(2024, 2, 10)
        )
        balances = [e.remaining_balance for e in result.entries]
        assert all(a >= b for a, b in zip(balances, balances[1:]))
        assert balances[-1] == Decimal("0")

    def test_override_is_clamped_to_remaining(self):
        """An override larger than what is left only repays what is left."""
        result = generate_schedule(
            Decimal("100000"), Decimal("12"), 4, date(2024, 1, 1), date(2024, 2, 1), Decimal("40000")
        )
        assert [e.principal for e in result.entries] == [
            Decimal("40000"), Decimal("40000"), Decimal("20000"), Decimal("0")
        ]
        assert result.entries[3].interest == Decimal("0")

    def test_zero_override_falls_back_to_even_split(self):
        """A non-positive override is treated as unset."""
        assert base_principal(Decimal("900"), 3, Decimal("0")) == Decimal("300")

    def test_month_end_dates(self):
        """Payment dates stay on the anchor day where the month allows it."""
        result = generate_schedule(
            Decimal("3000000"), Decimal("12"), 3, date(2024, 1, 1), date(2024, 1, 31)
        )
        assert [e.payment_date for e in result.entries] == [
            date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31)
        ]

    def test_ids_are_sequence_numbers(self):
        """Entry ids are "1".."n"."""
        result = generate_schedule(
            Decimal("1200000"), Decimal("12"), 12, date(2024, 1, 1), date(2024, 2, 1)
        )
        assert [e.id for e in result.entries] == [str(k) for k in range(1, 13)]

    def test_zero_term_gives_empty_schedule(self):
        """No entries, and the whole amount is still outstanding."""
        result = generate_schedule(
            Decimal("5000000"), Decimal("12"), 0, date(2024, 1, 1), date(2024, 2, 1)
        )
        assert result.entries == []
        assert result.final_balance == Decimal("5000000")

    def test_negative_term_gives_empty_schedule(self):
        """Negative terms behave like zero."""
        result = generate_schedule(
            Decimal("5000000"), Decimal("12"), -3, date(2024, 1, 1), date(2024, 2, 1)
        )
        assert result.entries == []

    def test_first_payment_before_start_still_accrues(self):
        """Interest uses the absolute day difference."""
        result = generate_schedule(
            Decimal("3650000"), Decimal("10"), 1, date(2024, 1, 11), date(2024, 1, 1)
        )
        # 3,650,000 * 10% * 10 / 365 = 10,000
        assert result.entries[0].interest == Decimal("10000")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
