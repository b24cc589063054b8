"""
Schedule Editor

Applies a manual edit to one schedule entry and cascades it forward.

The edited (target) entry takes the principal and interest it is given.
Every chronologically later entry keeps its own principal and payment
date, but its interest and balance are recomputed from the new running
balance. Entries before the target are never touched.

DESIGN DECISION: The cascade is a fold over the later entries that
threads (running_balance, previous_date) through each step and returns
new frozen entries. Nothing is written here; the caller commits the
returned entries in one batch.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from functools import reduce
from typing import Optional

import structlog

from money_manager.amortization.daycount import ZERO, accrue_interest, actual_days
from money_manager.models.loan import (
    Loan,
    PaymentScheduleEntry,
    ScheduleEntryEdit,
    chronological,
)
from money_manager.services.storage.interface import NotFoundError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class _CascadeState:
    running_balance: Decimal
    previous_date: date
    updated: tuple[PaymentScheduleEntry, ...]


def previous_balance_for(
    loan: Loan,
    ordered: list[PaymentScheduleEntry],
    index: int,
) -> tuple[Decimal, date]:
    """
    Balance and date just before the entry at `index`.

    Args:
        loan: The owning loan
        ordered: Schedule sorted by payment date
        index: Position of the entry in `ordered`

    Returns:
        (previous_balance, previous_date). For the first entry this is the
        loan total and start date. Legacy entries without a balance
        snapshot fall back to total minus the principal of earlier entries.
    """
    if index == 0:
        return Decimal(loan.total_amount), loan.start_date

    prior = ordered[index - 1]
    if prior.remaining_balance is not None:
        return prior.remaining_balance, prior.payment_date

    paid_before = sum((e.principal for e in ordered[:index]), ZERO)
    return Decimal(loan.total_amount) - paid_before, prior.payment_date


def _rate_for(
    entry: PaymentScheduleEntry,
    loan: Loan,
    new_rate: Optional[Decimal],
    apply_rate_to_future: bool,
) -> tuple[Decimal, Optional[Decimal]]:
    """Rate to accrue with, and the snapshot the entry should carry."""
    if apply_rate_to_future and new_rate is not None:
        return new_rate, new_rate
    if entry.interest_rate_snapshot is not None:
        return entry.interest_rate_snapshot, entry.interest_rate_snapshot
    return Decimal(loan.interest_rate), entry.interest_rate_snapshot


def cascade_edit(
    loan: Loan,
    schedule: list[PaymentScheduleEntry],
    entry_id: str,
    edit: ScheduleEntryEdit,
    apply_rate_to_future: bool = False,
) -> list[PaymentScheduleEntry]:
    """
    Edit one entry and recalculate every later entry.

    Args:
        loan: The owning loan (total, start date, fallback rate)
        schedule: All entries of the loan, any order
        entry_id: Sequence id of the entry being edited
        edit: New payment date, principal, interest and rate for the target
        apply_rate_to_future: Also move later entries to the new rate

    Returns:
        The updated target followed by the updated later entries, in
        payment date order

    Raises:
        NotFoundError: If no entry has `entry_id`
    """
    ordered = chronological(schedule)
    index = next((i for i, e in enumerate(ordered) if e.id == entry_id), None)
    if index is None:
        raise NotFoundError(f"Schedule entry {entry_id} not found in loan {loan.id}")

    previous_balance, _ = previous_balance_for(loan, ordered, index)
    target = ordered[index]
    target_remaining = previous_balance - edit.principal

    updated_target = target.model_copy(update={
        "payment_date": edit.payment_date,
        "principal": edit.principal,
        "interest": edit.interest,
        "total_payment": edit.principal + edit.interest,
        "interest_rate_snapshot": edit.interest_rate_snapshot,
        "remaining_balance": target_remaining,
    })

    def step(state: _CascadeState, entry: PaymentScheduleEntry) -> _CascadeState:
        rate, snapshot = _rate_for(entry, loan, edit.interest_rate_snapshot, apply_rate_to_future)
        days = actual_days(state.previous_date, entry.payment_date)
        interest = accrue_interest(state.running_balance, rate, days)
        remaining = state.running_balance - entry.principal
        updated = entry.model_copy(update={
            "interest": interest,
            "total_payment": entry.principal + interest,
            "interest_rate_snapshot": snapshot,
            "remaining_balance": remaining,
        })
        return _CascadeState(remaining, entry.payment_date, state.updated + (updated,))

    final = reduce(
        step,
        ordered[index + 1:],
        _CascadeState(target_remaining, edit.payment_date, (updated_target,)),
    )

    logger.debug(
        "cascade_applied",
        loan_id=loan.id,
        entry_id=entry_id,
        cascaded=len(final.updated) - 1,
        final_balance=str(final.running_balance),
    )

    return list(final.updated)
