"""
Amortization Package

Pure schedule math: day-count helpers, the schedule generator, the
cascading entry editor and read-only loan summaries.
"""

from money_manager.amortization.daycount import (
    accrue_interest,
    actual_days,
    add_months,
    suggest_interest,
)
from money_manager.amortization.editor import cascade_edit, previous_balance_for
from money_manager.amortization.generator import base_principal, generate_schedule
from money_manager.amortization.summary import (
    LoanProgress,
    PaymentReminder,
    earlier_unpaid_entries,
    loan_progress,
    maturity_date,
    next_unpaid_entry,
    reconcile_remaining_balance,
    upcoming_payments,
)

__all__ = [
    "accrue_interest",
    "actual_days",
    "add_months",
    "suggest_interest",
    "cascade_edit",
    "previous_balance_for",
    "base_principal",
    "generate_schedule",
    "LoanProgress",
    "PaymentReminder",
    "earlier_unpaid_entries",
    "loan_progress",
    "maturity_date",
    "next_unpaid_entry",
    "reconcile_remaining_balance",
    "upcoming_payments",
]
