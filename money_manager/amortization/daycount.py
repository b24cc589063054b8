"""
Day-count and Rounding Helpers

Interest accrues on the Actual/365 convention:

    interest = balance * annual_rate / 100 * actual_days / 365

rounded half-up to a whole currency unit. Every schedule calculation
goes through these helpers so the generator and the editor can never
disagree on a rounding rule.
"""

from datetime import date
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal

from dateutil.relativedelta import relativedelta

DAYS_PER_YEAR = Decimal("365")
WHOLE_UNIT = Decimal("1")
ZERO = Decimal("0")


def round_whole(amount: Decimal) -> Decimal:
    """Round half away from zero to a whole unit."""
    return amount.quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP)


def floor_whole(amount: Decimal) -> Decimal:
    return amount.quantize(WHOLE_UNIT, rounding=ROUND_FLOOR)


def actual_days(previous_date: date, payment_date: date) -> int:
    """
    Calendar days between two dates.

    Calendar dates are whole days, so the absolute difference is already
    the ceiling. Reversed dates (after a manual edit) still accrue.
    """
    return abs((payment_date - previous_date).days)


def accrue_interest(balance: Decimal, annual_rate_percent: Decimal, days: int) -> Decimal:
    """
    Actual/365 interest on a balance for a number of days.

    Args:
        balance: Principal outstanding during the period
        annual_rate_percent: Annual rate, e.g. Decimal("12") for 12%
        days: Actual elapsed days

    Returns:
        Interest in whole units. Zero when the balance is not positive,
        which happens after an edit overpays the schedule.
    """
    if days == 0 or balance <= ZERO:
        return ZERO
    raw = balance * Decimal(annual_rate_percent) / Decimal("100") * Decimal(days) / DAYS_PER_YEAR
    return round_whole(raw)


def add_months(anchor: date, months: int) -> date:
    """
    Same day-of-month, `months` calendar months after the anchor.

    Short months clamp to their last day. Always offset from the anchor,
    never from the previous result, so a clamp in February does not pull
    March back to the 28th.
    """
    return anchor + relativedelta(months=months)


def suggest_interest(
    previous_balance: Decimal,
    previous_date: date,
    payment_date: date,
    annual_rate_percent: Decimal,
) -> Decimal:
    """
    Interest a user would expect for an edited entry.

    Used by forms to pre-fill the interest field when the date or rate of
    an entry changes. The editor itself always takes the interest it is
    given for the edited entry.
    """
    return accrue_interest(
        previous_balance,
        annual_rate_percent,
        actual_days(previous_date, payment_date),
    )
