"""
Two-Stage Validation Pipeline

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence
- Ranges (positive amount and term, non-negative rate)
- This catches incomplete loan forms

STAGE 2 - SEMANTIC VALIDATION:
- Source account checks (exists, is a bank or credit account)
- Date consistency
- Suspicious values (very high rate, principal above the total)
- This catches logically impossible or suspicious data

Ledger actions get their own checks (entry edits, payments), reported
in the same ValidationResult shape.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them, and the ledger refuses to write while errors remain.
"""

from datetime import timedelta
from decimal import Decimal
from typing import Optional, Sequence

from money_manager.amortization.summary import earlier_unpaid_entries
from money_manager.config import LoanSettings, get_settings
from money_manager.models.account import Account
from money_manager.models.loan import LoanDraft, PaymentScheduleEntry, ScheduleEntryEdit
from money_manager.models.validation import ValidationIssue, ValidationResult


class LoanValidationError(ValueError):
    """
    A ledger action was rejected before anything was written.

    Carries the full ValidationResult so callers can show every issue.
    """

    def __init__(self, result: ValidationResult, message: Optional[str] = None):
        self.result = result
        super().__init__(message or get_user_friendly_summary(result))


class EntryAlreadyPaidError(LoanValidationError):
    """The entry is already paid; paying again would decrement twice."""
    pass


class OutOfOrderPaymentError(LoanValidationError):
    """An earlier entry is still unpaid."""
    pass


class InsufficientFundsError(LoanValidationError):
    """The paying account cannot cover the installment."""
    pass


# Issue type -> specific exception, checked in order
_ERROR_TYPES = (
    ("already_paid", EntryAlreadyPaidError),
    ("out_of_order", OutOfOrderPaymentError),
    ("insufficient_funds", InsufficientFundsError),
)


def raise_for_result(result: ValidationResult) -> None:
    """
    Raise the matching LoanValidationError if the result has errors.

    Raises:
        EntryAlreadyPaidError, OutOfOrderPaymentError, InsufficientFundsError:
            For the corresponding payment errors
        LoanValidationError: For any other error
    """
    if not result.has_errors:
        return
    error_types = {issue.issue_type for issue in result.errors}
    for issue_type, exc_class in _ERROR_TYPES:
        if issue_type in error_types:
            raise exc_class(result)
    raise LoanValidationError(result)


def _build_result(
    subject: str,
    schema_valid: bool,
    semantic_valid: bool,
    issues: list[ValidationIssue],
) -> ValidationResult:
    warnings = [issue.message for issue in issues if issue.severity == "warning"]
    return ValidationResult(
        subject=subject,
        schema_valid=schema_valid,
        semantic_valid=semantic_valid,
        is_valid=schema_valid and semantic_valid,
        issues=issues,
        warnings=warnings,
    )


def _no_errors(issues: list[ValidationIssue]) -> bool:
    return not any(issue.severity == "error" for issue in issues)


class LoanValidator:
    """
    Validates loan forms, entry edits and payments.

    Stage 1: Schema validation (needs nothing but the input)
    Stage 2: Semantic validation (needs the source account)
    """

    def __init__(
        self,
        settings: Optional[LoanSettings] = None,
        max_batch_operations: Optional[int] = None,
    ):
        """
        Initialize validator.

        Args:
            settings: Loan limits. Loaded from the environment if None.
            max_batch_operations: Writes the store accepts in one batch.
                Defaults to settings.max_batch_operations.
        """
        self._settings = settings or get_settings().loans
        self._max_batch_operations = max_batch_operations or self._settings.max_batch_operations

    # =========================================================================
    # LOAN FORM
    # =========================================================================

    @staticmethod
    def _schedule_writes(term_months: int, existing_entry_ids: Sequence[str]) -> int:
        """Loan record, entries 1..term and deletes of old entries beyond the term."""
        stale = sum(1 for entry_id in existing_entry_ids if int(entry_id) > term_months)
        return 1 + term_months + stale

    def _validate_draft_schema(
        self,
        draft: LoanDraft,
        is_new: bool,
        existing_entry_ids: Sequence[str] = (),
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Checks:
        - Every form field is filled in
        - Amount and term are positive, rate is non-negative
        - The loan record and its schedule fit one atomic batch
        - A custom principal, when given, is positive

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        required = {
            "name": draft.name,
            "from_account_id": draft.from_account_id,
            "total_amount": draft.total_amount,
            "interest_rate": draft.interest_rate,
            "term_months": draft.term_months,
            "start_date": draft.start_date,
            "first_payment_date": draft.first_payment_date,
        }
        if not is_new:
            required["remaining_balance"] = draft.remaining_balance

        for field, value in required.items():
            if value is None or value == "":
                issues.append(ValidationIssue(
                    field=field,
                    issue_type="missing",
                    message=f"{field.replace('_', ' ').capitalize()} is required",
                    severity="error",
                    suggested_fix="Please fill out all fields",
                ))

        if draft.total_amount is not None:
            if draft.total_amount <= 0:
                issues.append(ValidationIssue(
                    field="total_amount",
                    issue_type="invalid_value",
                    message="Loan amount must be greater than zero",
                    severity="error",
                ))
            elif draft.total_amount != draft.total_amount.to_integral_value():
                issues.append(ValidationIssue(
                    field="total_amount",
                    issue_type="invalid_value",
                    message="Loan amount must be a whole number",
                    severity="error",
                ))

        if draft.interest_rate is not None and draft.interest_rate < 0:
            issues.append(ValidationIssue(
                field="interest_rate",
                issue_type="invalid_value",
                message="Interest rate cannot be negative",
                severity="error",
            ))

        if draft.term_months is not None:
            if draft.term_months <= 0:
                issues.append(ValidationIssue(
                    field="term_months",
                    issue_type="invalid_value",
                    message="Term must be at least one month",
                    severity="error",
                ))
            elif draft.term_months > self._settings.max_term_months:
                issues.append(ValidationIssue(
                    field="term_months",
                    issue_type="invalid_value",
                    message=f"Term cannot exceed {self._settings.max_term_months} months",
                    severity="error",
                ))
            elif self._schedule_writes(draft.term_months, existing_entry_ids) > self._max_batch_operations:
                writes = self._schedule_writes(draft.term_months, existing_entry_ids)
                issues.append(ValidationIssue(
                    field="term_months",
                    issue_type="invalid_value",
                    message=(
                        f"A {draft.term_months}-month schedule needs {writes} writes, "
                        f"more than the {self._max_batch_operations} that can be saved at once"
                    ),
                    severity="error",
                    suggested_fix=f"Use a term of at most {self._max_batch_operations - 1} months",
                ))

        if draft.monthly_principal is not None:
            if draft.monthly_principal <= 0:
                # Edits may clear the override; new loans may not set it to zero
                if is_new:
                    issues.append(ValidationIssue(
                        field="monthly_principal",
                        issue_type="invalid_value",
                        message="Monthly principal must be greater than 0",
                        severity="error",
                        suggested_fix="Leave it empty to split the amount evenly",
                    ))
            elif draft.monthly_principal != draft.monthly_principal.to_integral_value():
                issues.append(ValidationIssue(
                    field="monthly_principal",
                    issue_type="invalid_value",
                    message="Monthly principal must be a whole number",
                    severity="error",
                ))

        if (
            not is_new
            and draft.remaining_balance is not None
            and draft.remaining_balance != draft.remaining_balance.to_integral_value()
        ):
            issues.append(ValidationIssue(
                field="remaining_balance",
                issue_type="invalid_value",
                message="Remaining balance must be a whole number",
                severity="error",
            ))

        return _no_errors(issues), issues

    def _validate_draft_semantic(
        self,
        draft: LoanDraft,
        source_account: Optional[Account],
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Checks:
        - Source account exists and can fund a loan
        - First payment date relative to the start date
        - Custom principal relative to the total
        - Unusually high interest rate

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if source_account is None:
            issues.append(ValidationIssue(
                field="from_account_id",
                issue_type="not_found",
                message="Source account not found",
                severity="error",
                suggested_fix="Choose one of your bank or credit accounts",
            ))
        elif not source_account.can_fund_loans:
            issues.append(ValidationIssue(
                field="from_account_id",
                issue_type="invalid_value",
                message=f"{source_account.name} is not a bank or credit account",
                severity="error",
                suggested_fix="Loans can only come from bank or credit accounts",
            ))

        if draft.first_payment_date < draft.start_date:
            issues.append(ValidationIssue(
                field="first_payment_date",
                issue_type="inconsistent",
                message="First payment date is before the loan start date",
                severity="warning",
                suggested_fix="Please verify both dates",
            ))
        elif draft.first_payment_date > draft.start_date + timedelta(days=366):
            issues.append(ValidationIssue(
                field="first_payment_date",
                issue_type="suspicious_date",
                message="First payment is more than a year after the loan start",
                severity="warning",
                suggested_fix="Please verify the first payment date",
            ))

        if draft.monthly_principal is not None and draft.monthly_principal > draft.total_amount:
            issues.append(ValidationIssue(
                field="monthly_principal",
                issue_type="suspicious_value",
                message="Monthly principal is larger than the loan amount",
                severity="warning",
                suggested_fix="The first payment will repay the whole loan",
            ))

        if draft.interest_rate > Decimal(str(self._settings.max_interest_rate_percent)):
            issues.append(ValidationIssue(
                field="interest_rate",
                issue_type="suspicious_value",
                message=f"Interest rate ({draft.interest_rate}%) seems unusually high",
                severity="warning",
                suggested_fix="Rates are annual percentages, e.g. 12 for 12%",
            ))

        return _no_errors(issues), issues

    def validate_draft(
        self,
        draft: LoanDraft,
        source_account: Optional[Account],
        is_new: bool = True,
        existing_entry_ids: Sequence[str] = (),
    ) -> ValidationResult:
        """
        Run full two-stage validation of a loan form.

        Args:
            draft: The loan form input
            source_account: The account named by draft.from_account_id, if found
            is_new: False when editing an existing loan
            existing_entry_ids: Stored entry ids of the loan being edited

        Returns:
            ValidationResult with all issues found
        """
        all_issues = []

        # Stage 1: Schema validation
        schema_valid, schema_issues = self._validate_draft_schema(draft, is_new, existing_entry_ids)
        all_issues.extend(schema_issues)

        # Only run stage 2 if stage 1 passes
        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_draft_semantic(draft, source_account)
            all_issues.extend(semantic_issues)

        return _build_result("loan_draft", schema_valid, semantic_valid, all_issues)

    # =========================================================================
    # LEDGER ACTIONS
    # =========================================================================

    def validate_entry_edit(
        self,
        edit: ScheduleEntryEdit,
        previous_balance: Decimal,
    ) -> ValidationResult:
        """
        Check a manual edit of one schedule entry.

        Args:
            edit: The new values
            previous_balance: Balance before the edited entry
        """
        issues = []

        if edit.principal > previous_balance:
            issues.append(ValidationIssue(
                field="principal",
                issue_type="suspicious_value",
                message=(
                    f"Principal ({edit.principal}) is larger than the balance "
                    f"before this payment ({previous_balance})"
                ),
                severity="warning",
                suggested_fix="Later balances will go negative",
            ))

        if (
            edit.interest_rate_snapshot is not None
            and edit.interest_rate_snapshot > Decimal(str(self._settings.max_interest_rate_percent))
        ):
            issues.append(ValidationIssue(
                field="interest_rate_snapshot",
                issue_type="suspicious_value",
                message=f"Interest rate ({edit.interest_rate_snapshot}%) seems unusually high",
                severity="warning",
            ))

        valid = _no_errors(issues)
        return _build_result("schedule_entry_edit", True, valid, issues)

    def validate_payment(
        self,
        schedule: list[PaymentScheduleEntry],
        entry: PaymentScheduleEntry,
        paying_account: Optional[Account] = None,
    ) -> ValidationResult:
        """
        Check that an entry can be marked paid.

        Args:
            schedule: All entries of the loan
            entry: The entry being paid
            paying_account: Account the installment is paid from, if any
        """
        issues = []

        if entry.is_paid:
            issues.append(ValidationIssue(
                field="is_paid",
                issue_type="already_paid",
                message=f"Payment {entry.id} is already marked as paid",
                severity="error",
            ))

        earlier = earlier_unpaid_entries(schedule, entry.id)
        if earlier and not entry.is_paid:
            issues.append(ValidationIssue(
                field="payment_date",
                issue_type="out_of_order",
                message=(
                    f"{len(earlier)} earlier payment(s) are still unpaid, "
                    f"starting with {earlier[0].payment_date.isoformat()}"
                ),
                severity="warning" if self._settings.allow_out_of_order_payments else "error",
                suggested_fix="Pay the earliest installment first",
            ))

        if (
            paying_account is not None
            and paying_account.balance is not None
            and paying_account.balance < entry.total_payment
        ):
            issues.append(ValidationIssue(
                field="balance",
                issue_type="insufficient_funds",
                message=(
                    f"{paying_account.name} has {paying_account.balance}, "
                    f"less than the payment of {entry.total_payment}"
                ),
                severity="error",
            ))

        valid = _no_errors(issues)
        return _build_result("payment", True, valid, issues)


def get_user_friendly_summary(result: ValidationResult) -> str:
    """
    Generate a user-friendly summary of validation results.

    This is what we show to non-technical users.
    """
    if result.is_valid and not result.warnings:
        return "✅ All checks passed."

    lines = []

    if result.has_errors:
        lines.append("❌ This cannot be saved yet:")
        for issue in result.errors:
            lines.append(f"   • {issue.message}")
            if issue.suggested_fix:
                lines.append(f"     💡 {issue.suggested_fix}")

    if result.warnings:
        if lines:
            lines.append("")
        lines.append("⚠️ Please verify the following:")
        for warning in result.warnings:
            lines.append(f"   • {warning}")

    return "\n".join(lines)
