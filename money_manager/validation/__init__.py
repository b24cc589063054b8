"""Validation package."""

from money_manager.validation.validator import (
    EntryAlreadyPaidError,
    InsufficientFundsError,
    LoanValidationError,
    LoanValidator,
    OutOfOrderPaymentError,
    get_user_friendly_summary,
    raise_for_result,
)

__all__ = [
    "EntryAlreadyPaidError",
    "InsufficientFundsError",
    "LoanValidationError",
    "LoanValidator",
    "OutOfOrderPaymentError",
    "get_user_friendly_summary",
    "raise_for_result",
]
