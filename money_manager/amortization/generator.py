"""
Schedule Generator

Builds the payment schedule of a new (or fully edited) loan.

Each installment repays a fixed principal and the interest accrued since
the previous installment (Actual/365 on the balance outstanding before
the payment). The last installment repays whatever is left, which absorbs
the remainder of floor(total / term).

DESIGN DECISION: This is a pure function over Decimal values.
It does not know about storage, accounts or validation; callers validate
the draft first (see LoanValidator) and persist the result themselves.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

import structlog

from money_manager.amortization.daycount import (
    ZERO,
    accrue_interest,
    actual_days,
    add_months,
    floor_whole,
)
from money_manager.models.loan import GeneratedSchedule, PaymentScheduleEntry

logger = structlog.get_logger(__name__)


def base_principal(
    total_amount: Decimal,
    term_months: int,
    monthly_principal_override: Optional[Decimal] = None,
) -> Decimal:
    """Principal per installment: the override when positive, else floor(total / term)."""
    if monthly_principal_override is not None and monthly_principal_override > ZERO:
        return Decimal(monthly_principal_override)
    return floor_whole(Decimal(total_amount) / Decimal(term_months))


def generate_schedule(
    total_amount: Decimal,
    annual_rate_percent: Decimal,
    term_months: int,
    start_date: date,
    first_payment_date: date,
    monthly_principal_override: Optional[Decimal] = None,
) -> GeneratedSchedule:
    """
    Generate a full amortization schedule.

    Args:
        total_amount: Principal borrowed (whole units)
        annual_rate_percent: Annual interest rate in percent
        term_months: Number of monthly installments
        start_date: Disbursement date, interest accrues from here
        first_payment_date: Date of installment 1; later ones follow monthly
        monthly_principal_override: Custom principal per installment

    Returns:
        GeneratedSchedule with entries "1".."n" and the final balance
        (zero unless the schedule is empty)
    """
    total_amount = Decimal(total_amount)
    annual_rate_percent = Decimal(annual_rate_percent)

    if term_months <= 0:
        logger.debug("empty_schedule", term_months=term_months)
        return GeneratedSchedule(entries=[], final_balance=total_amount)

    base = base_principal(total_amount, term_months, monthly_principal_override)

    entries: list[PaymentScheduleEntry] = []
    remaining = total_amount
    previous_date = start_date

    for k in range(1, term_months + 1):
        payment_date = add_months(first_payment_date, k - 1)
        days = actual_days(previous_date, payment_date)
        interest = accrue_interest(remaining, annual_rate_percent, days)

        # Last installment clears the balance; overrides never overshoot it
        if k == term_months:
            principal = remaining
        else:
            principal = min(base, remaining)

        remaining = remaining - principal

        entries.append(
            PaymentScheduleEntry(
                id=str(k),
                payment_date=payment_date,
                principal=principal,
                interest=interest,
                total_payment=principal + interest,
                is_paid=False,
                interest_rate_snapshot=annual_rate_percent,
                remaining_balance=remaining,
            )
        )
        previous_date = payment_date

    logger.debug(
        "schedule_generated",
        term_months=term_months,
        base_principal=str(base),
        total_interest=str(sum((e.interest for e in entries), ZERO)),
    )

    return GeneratedSchedule(entries=entries, final_balance=remaining)
