"""
Data Models Package

This package contains all Pydantic models used in Money Manager.
All data flowing through the loan ledger must conform to these schemas.
"""

from money_manager.models.account import (
    Account,
    AccountAdjustment,
    AccountType,
)
from money_manager.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from money_manager.models.loan import (
    GeneratedSchedule,
    Loan,
    LoanDraft,
    LoanWithSchedule,
    PaymentScheduleEntry,
    ScheduleEntryEdit,
    chronological,
)
from money_manager.models.validation import (
    ValidationIssue,
    ValidationResult,
)

__all__ = [
    # Account models
    "Account",
    "AccountAdjustment",
    "AccountType",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Loan models
    "GeneratedSchedule",
    "Loan",
    "LoanDraft",
    "LoanWithSchedule",
    "PaymentScheduleEntry",
    "ScheduleEntryEdit",
    "chronological",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
]
