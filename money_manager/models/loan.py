"""
Loan Data Models for Money Manager

These models define the strict schemas for loans and their payment
schedules. They are designed to:
1. Enforce type safety at runtime
2. Keep currency in whole units (no fractional currency)
3. Be serializable for the document store and the audit trail
4. Stay immutable, so schedule math can be written as pure functions

DESIGN DECISION: Schedule entries are frozen values.
Generating or editing a schedule never mutates an entry in place;
it returns new entries built with model_copy().
"""

from datetime import date
from decimal import Decimal
from typing import Annotated, Optional
from uuid import uuid4

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


def _require_whole_units(v: Decimal) -> Decimal:
    """Reject fractional currency amounts."""
    if v != v.to_integral_value():
        raise ValueError(f"Amount must be in whole currency units: {v}")
    return v


WholeAmount = Annotated[Decimal, AfterValidator(_require_whole_units)]


# =============================================================================
# CORE LOAN MODELS
# =============================================================================

class Loan(BaseModel):
    """
    A borrowing agreement.

    CRITICAL: remaining_balance is maintained incrementally by the
    ledger (mark-paid decrements it). It is never recomputed from the
    schedule on write.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(
        default_factory=lambda: uuid4().hex,
        description="Opaque loan identifier"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Display name"
    )
    from_account_id: str = Field(
        ...,
        min_length=1,
        description="Account the borrowed funds came from"
    )
    from_account_name: str = Field(
        default="",
        max_length=200,
        description="Display name of the source account"
    )
    total_amount: WholeAmount = Field(
        ...,
        gt=0,
        description="Principal borrowed, fixed at origination"
    )
    interest_rate: Decimal = Field(
        ...,
        ge=0,
        description="Annual interest rate in percent"
    )
    term_months: int = Field(
        ...,
        ge=0,
        description="Term in whole months"
    )
    start_date: date = Field(
        ...,
        description="Disbursement date"
    )
    remaining_balance: WholeAmount = Field(
        ...,
        description="Principal still owed"
    )


class PaymentScheduleEntry(BaseModel):
    """
    One scheduled installment.

    The id is the 1-based sequence number as a string. It is also the
    document key, so a regenerated schedule overwrites keys 1..n in place.
    Sequence order and chronological order can differ after a manual
    date edit; calculations always use payment_date order.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(
        ...,
        pattern=r"^[1-9][0-9]*$",
        description="Sequence number within the loan"
    )
    payment_date: date
    principal: WholeAmount = Field(ge=0)
    interest: WholeAmount = Field(ge=0)
    total_payment: WholeAmount = Field(ge=0)
    is_paid: bool = Field(
        default=False,
        description="Monotonic: unpaid -> paid only"
    )
    interest_rate_snapshot: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Annual rate used for this entry's interest"
    )
    remaining_balance: Optional[WholeAmount] = Field(
        default=None,
        description="Principal balance right after this entry (missing on legacy data)"
    )

    @model_validator(mode='after')
    def validate_total(self) -> 'PaymentScheduleEntry':
        """Total payment is always principal plus interest."""
        if self.total_payment != self.principal + self.interest:
            raise ValueError("Total payment must equal principal plus interest")
        return self

    @property
    def sequence(self) -> int:
        """Sequence number as an int."""
        return int(self.id)


def chronological(schedule: list[PaymentScheduleEntry]) -> list[PaymentScheduleEntry]:
    """Sort entries by payment date, ties broken by sequence number."""
    return sorted(schedule, key=lambda e: (e.payment_date, e.sequence))


class LoanWithSchedule(Loan):
    """A loan together with its schedule, sorted by payment date."""

    schedule: list[PaymentScheduleEntry] = Field(default_factory=list)

    @field_validator('schedule')
    @classmethod
    def sort_schedule(cls, v: list[PaymentScheduleEntry]) -> list[PaymentScheduleEntry]:
        """Stored order is arbitrary; keep the schedule chronological."""
        return chronological(v)

    @property
    def loan(self) -> Loan:
        """The loan record without its schedule."""
        return Loan(**self.model_dump(exclude={"schedule"}))

    def entry(self, entry_id: str) -> Optional[PaymentScheduleEntry]:
        """Find an entry by its sequence id."""
        for item in self.schedule:
            if item.id == entry_id:
                return item
        return None


class GeneratedSchedule(BaseModel):
    """Output of the schedule generator."""

    entries: list[PaymentScheduleEntry] = Field(default_factory=list)
    final_balance: Decimal = Field(
        ...,
        description="Running balance after the last entry (zero for any non-empty schedule)"
    )

    @property
    def total_principal(self) -> Decimal:
        return sum((e.principal for e in self.entries), Decimal("0"))

    @property
    def total_interest(self) -> Decimal:
        return sum((e.interest for e in self.entries), Decimal("0"))


# =============================================================================
# INPUT MODELS (what the caller submits)
# =============================================================================

class LoanDraft(BaseModel):
    """
    Loan form input, for creating or fully editing a loan.

    DESIGN DECISION: Every field is optional here.
    Missing fields are reported by LoanValidator as validation issues
    with readable messages, instead of failing inside pydantic.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = None
    from_account_id: Optional[str] = None
    total_amount: Optional[Decimal] = None
    interest_rate: Optional[Decimal] = None
    term_months: Optional[int] = None
    start_date: Optional[date] = None
    first_payment_date: Optional[date] = None
    monthly_principal: Optional[Decimal] = Field(
        default=None,
        description="Custom principal per installment; floor(total / term) when unset"
    )
    remaining_balance: Optional[Decimal] = Field(
        default=None,
        description="Explicit remaining balance, only used when editing a loan"
    )


class ScheduleEntryEdit(BaseModel):
    """
    New values for one schedule entry.

    The caller supplies principal AND interest directly; the editor does
    not recompute the target's own interest.
    """

    payment_date: date
    principal: WholeAmount = Field(ge=0)
    interest: WholeAmount = Field(ge=0)
    interest_rate_snapshot: Optional[Decimal] = Field(default=None, ge=0)
