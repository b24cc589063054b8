"""
Tests for read-only loan summaries.
"""

from datetime import date
from decimal import Decimal

import pytest

from money_manager.amortization import (
    earlier_unpaid_entries,
    generate_schedule,
    loan_progress,
    maturity_date,
    next_unpaid_entry,
    reconcile_remaining_balance,
    upcoming_payments,
)
from money_manager.models.loan import LoanWithSchedule


def make_loan(loan_id="L1", name="Home loan", first_payment=date(2024, 2, 1), paid=0, remaining=None):
    entries = generate_schedule(
        Decimal("3000000"), Decimal("12"), 3, date(2024, 1, 1), first_payment
    ).entries
    entries = [e.model_copy(update={"is_paid": True}) if i < paid else e for i, e in enumerate(entries)]
    return LoanWithSchedule(
        id=loan_id,
        name=name,
        from_account_id="acc-bank",
        total_amount=Decimal("3000000"),
        interest_rate=Decimal("12"),
        term_months=3,
        start_date=date(2024, 1, 1),
        remaining_balance=remaining if remaining is not None else Decimal("3000000") - 1000000 * paid,
        schedule=entries,
    )


class TestProgress:
    """Tests for maturity and progress."""

    def test_maturity_date(self):
        """Start plus term months."""
        assert maturity_date(make_loan()) == date(2024, 4, 1)

    def test_progress_percent(self):
        """Paid share of the total, two decimals."""
        progress = loan_progress(make_loan(paid=1))
        assert progress.paid_amount == Decimal("1000000")
        assert progress.progress_percent == Decimal("33.33")

    def test_progress_of_new_loan(self):
        """Nothing paid is zero percent."""
        assert loan_progress(make_loan()).progress_percent == Decimal("0.00")


class TestNextPayments:
    """Tests for next-unpaid lookups and reminders."""

    def test_next_unpaid(self):
        """The earliest unpaid entry by date."""
        assert next_unpaid_entry(make_loan(paid=2).schedule).id == "3"

    def test_next_unpaid_when_all_paid(self):
        """Paid-off loans have no next entry."""
        assert next_unpaid_entry(make_loan(paid=3).schedule) is None

    def test_dates_decide_order_not_ids(self):
        """An entry moved earlier is due first."""
        schedule = make_loan().schedule
        moved = [schedule[0], schedule[1], schedule[2].model_copy(update={"payment_date": date(2024, 1, 20)})]
        assert next_unpaid_entry(moved).id == "3"
        assert [e.id for e in earlier_unpaid_entries(moved, "1")] == ["3"]

    def test_earlier_unpaid_of_unknown_entry(self):
        """Unknown ids have nothing before them."""
        assert earlier_unpaid_entries(make_loan().schedule, "9") == []

    def test_upcoming_sorted_and_limited(self):
        """One reminder per loan, soonest first, at most `limit`."""
        loans = [
            make_loan("A", "A", first_payment=date(2024, 2, 10)),
            make_loan("B", "B", first_payment=date(2024, 2, 1)),
            make_loan("C", "C", first_payment=date(2024, 2, 5)),
            make_loan("D", "D", paid=3),
        ]
        reminders = upcoming_payments(loans, limit=2)
        assert [(r.loan_id, r.entry_id) for r in reminders] == [("B", "1"), ("C", "1")]
        assert reminders[0].total_payment == reminders[0].total_payment.to_integral_value()


class TestReconcile:
    """Tests for reconcile_remaining_balance."""

    def test_matches_incremental_balance(self):
        """Total minus paid principal."""
        assert reconcile_remaining_balance(make_loan(paid=2)) == Decimal("1000000")

    def test_ignores_stored_balance(self):
        """The stored value is what is being checked, not an input."""
        loan = make_loan(paid=1, remaining=Decimal("123"))
        assert reconcile_remaining_balance(loan) == Decimal("2000000")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
