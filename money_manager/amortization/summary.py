"""
Loan Summaries

Read-only views over loans for list pages and the dashboard:
maturity, repayment progress, next installment and upcoming reminders.
Nothing here writes.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from money_manager.amortization.daycount import ZERO, add_months
from money_manager.models.loan import (
    Loan,
    LoanWithSchedule,
    PaymentScheduleEntry,
    chronological,
)


class LoanProgress(BaseModel):
    """How much of a loan has been repaid."""

    loan_id: str
    paid_amount: Decimal
    remaining_balance: Decimal
    progress_percent: Decimal = Field(
        ...,
        description="Paid share of the total, 0-100, two decimals"
    )
    maturity_date: date


class PaymentReminder(BaseModel):
    """One upcoming installment, for the dashboard."""

    loan_id: str
    loan_name: str
    entry_id: str
    payment_date: date
    total_payment: Decimal


def maturity_date(loan: Loan) -> date:
    """Start date plus the term in months."""
    return add_months(loan.start_date, loan.term_months)


def loan_progress(loan: Loan) -> LoanProgress:
    paid = Decimal(loan.total_amount) - Decimal(loan.remaining_balance)
    if loan.total_amount > ZERO:
        percent = (paid / Decimal(loan.total_amount) * Decimal("100")).quantize(Decimal("0.01"))
    else:
        percent = ZERO
    return LoanProgress(
        loan_id=loan.id,
        paid_amount=paid,
        remaining_balance=loan.remaining_balance,
        progress_percent=percent,
        maturity_date=maturity_date(loan),
    )


def next_unpaid_entry(schedule: list[PaymentScheduleEntry]) -> Optional[PaymentScheduleEntry]:
    """Earliest unpaid entry by payment date, or None when all are paid."""
    for entry in chronological(schedule):
        if not entry.is_paid:
            return entry
    return None


def earlier_unpaid_entries(
    schedule: list[PaymentScheduleEntry],
    entry_id: str,
) -> list[PaymentScheduleEntry]:
    """Unpaid entries that fall due before the given entry."""
    ordered = chronological(schedule)
    ids = [e.id for e in ordered]
    if entry_id not in ids:
        return []
    return [e for e in ordered[:ids.index(entry_id)] if not e.is_paid]


def upcoming_payments(loans: list[LoanWithSchedule], limit: int = 3) -> list[PaymentReminder]:
    """
    Next unpaid installment of each loan, soonest first.

    Args:
        loans: Loans with their schedules
        limit: Maximum reminders to return

    Returns:
        At most `limit` reminders
    """
    reminders = []
    for loan in loans:
        entry = next_unpaid_entry(loan.schedule)
        if entry is None:
            continue
        reminders.append(PaymentReminder(
            loan_id=loan.id,
            loan_name=loan.name,
            entry_id=entry.id,
            payment_date=entry.payment_date,
            total_payment=entry.total_payment,
        ))
    reminders.sort(key=lambda r: r.payment_date)
    return reminders[:limit]


def reconcile_remaining_balance(loan: LoanWithSchedule) -> Decimal:
    """
    Remaining balance recomputed from the schedule.

    Total minus the principal of paid entries. The stored balance is
    maintained incrementally; this is only used to verify it.
    """
    paid = sum((e.principal for e in loan.schedule if e.is_paid), ZERO)
    return Decimal(loan.total_amount) - paid
