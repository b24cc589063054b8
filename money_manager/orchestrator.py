"""
Main Orchestrator for Money Manager

This module ties together all the components and defines the
end-to-end flows for:
1. The loan ledger (create, edit, edit one entry, mark paid, delete)
2. Advice (snapshot → question → streamed answer)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is written before validation passes
- Every multi-document change is ONE batch
- A failed batch triggers a resync of the affected loan
- Every step is audited

This is the "glue" that ensures the ledger stays consistent
even when the store rejects a write.
"""

from collections.abc import AsyncIterator
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from money_manager.agents import AdvisorError, FinancialAdvisorAgent, format_financial_data
from money_manager.amortization import (
    PaymentReminder,
    cascade_edit,
    generate_schedule,
    previous_balance_for,
    reconcile_remaining_balance,
    upcoming_payments,
)
from money_manager.audit import AuditLogger, create_correlation_id
from money_manager.config import AppSettings, LoanSettings, get_settings
from money_manager.models.account import Account, AccountAdjustment
from money_manager.models.loan import (
    Loan,
    LoanDraft,
    LoanWithSchedule,
    PaymentScheduleEntry,
    ScheduleEntryEdit,
    chronological,
)
from money_manager.models.validation import ValidationResult
from money_manager.services.storage import (
    DocumentStoreInterface,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
    InMemoryDocumentStore,
    LoanRepository,
    NotFoundError,
    StorageError,
    WriteOperation,
)
from money_manager.validation import LoanValidationError, LoanValidator, raise_for_result

logger = structlog.get_logger(__name__)


def _with_schedule(loan: Loan, schedule: list[PaymentScheduleEntry]) -> LoanWithSchedule:
    """Attach a schedule to a loan record (re-sorted by payment date)."""
    record = loan.loan if isinstance(loan, LoanWithSchedule) else loan
    return LoanWithSchedule(**record.model_dump(), schedule=schedule)


class LoanManager:
    """
    Owns the loan collection and every write to it.

    Flow of every ledger action:
    1. Load the loan (local cache first)
    2. Validate → raise LoanValidationError before any write
    3. Compute new state with the pure amortization functions
    4. Commit ONE batch
    5. Success → update the local cache
       Failure → audit, re-fetch the loan (resync), re-raise

    Nothing is retried automatically.
    """

    def __init__(
        self,
        repository: LoanRepository,
        validator: Optional[LoanValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LoanSettings] = None,
    ):
        self._settings = settings or get_settings().loans
        self._repo = repository
        self._validator = validator or LoanValidator(
            self._settings,
            max_batch_operations=repository.max_batch_operations,
        )
        self._audit_logger = audit_logger
        self._loans: dict[str, LoanWithSchedule] = {}

    @property
    def loans(self) -> list[LoanWithSchedule]:
        """Locally known loans, by start date then name."""
        return sorted(self._loans.values(), key=lambda l: (l.start_date, l.name))

    # =========================================================================
    # READS
    # =========================================================================

    async def refresh(self) -> list[LoanWithSchedule]:
        """Reload every loan from the store."""
        loans = await self._repo.list_loans()
        self._loans = {loan.id: loan for loan in loans}
        return self.loans

    async def get_loan(self, loan_id: str) -> LoanWithSchedule:
        """
        Get a loan with its schedule.

        Raises:
            NotFoundError: If the loan does not exist
        """
        if loan_id in self._loans:
            return self._loans[loan_id]
        loan = await self._repo.get_loan(loan_id)
        if loan is None:
            raise NotFoundError(f"Loan not found: {loan_id}")
        self._loans[loan_id] = loan
        return loan

    async def upcoming_payments(self, limit: int = 3) -> list[PaymentReminder]:
        """Next unpaid installment of each loan, soonest first."""
        if not self._loans:
            await self.refresh()
        return upcoming_payments(self.loans, limit=limit)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    async def _resync(self, loan_id: str, correlation_id: UUID) -> Optional[LoanWithSchedule]:
        """Replace the cached loan with the stored one."""
        try:
            loan = await self._repo.get_loan(loan_id)
        except StorageError as e:
            # Resync is best effort; the original error is what the caller sees
            logger.error("resync_failed", loan_id=loan_id, error=str(e))
            self._loans.pop(loan_id, None)
            return None

        if loan is None:
            self._loans.pop(loan_id, None)
        else:
            self._loans[loan_id] = loan

        if self._audit_logger:
            await self._audit_logger.log_state_resynced(
                loan_id=loan_id,
                found=loan is not None,
                correlation_id=correlation_id,
            )
        return loan

    async def _reject_if_invalid(
        self,
        result: ValidationResult,
        correlation_id: UUID,
        entity_id: Optional[str] = None,
    ) -> None:
        """Audit and raise if the validation result has errors."""
        if not result.has_errors:
            return
        if self._audit_logger:
            issues = [
                {"field": i.field, "type": i.issue_type, "message": i.message}
                for i in result.errors
            ]
            await self._audit_logger.log_validation_failed(
                subject=result.subject,
                issues=issues,
                correlation_id=correlation_id,
                entity_id=entity_id,
            )
        raise_for_result(result)

    async def _commit(
        self,
        operation: str,
        loan_id: str,
        operations: list[WriteOperation],
        correlation_id: UUID,
        chunked: bool = False,
    ) -> int:
        """
        Commit a batch, or sequential batches when `chunked`.

        Returns:
            Number of batches committed

        Raises:
            StorageError: After auditing and resyncing the loan
        """
        try:
            if chunked:
                return await self._repo.commit_in_chunks(operations)
            await self._repo.commit_atomic(operations)
            return 1
        except StorageError as e:
            logger.error("ledger_commit_failed", operation=operation, loan_id=loan_id, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_save_failed(
                    operation=operation,
                    loan_id=loan_id,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            await self._resync(loan_id, correlation_id)
            raise

    async def _load_for_write(self, loan_id: str, correlation_id: UUID) -> LoanWithSchedule:
        try:
            return await self.get_loan(loan_id)
        except NotFoundError as e:
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type="loan_not_found",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            self._loans.pop(loan_id, None)
            raise

    async def _entry_or_raise(
        self,
        loan: LoanWithSchedule,
        entry_id: str,
        correlation_id: UUID,
    ) -> PaymentScheduleEntry:
        entry = loan.entry(entry_id)
        if entry is not None:
            return entry
        message = f"Schedule entry {entry_id} not found in loan {loan.id}"
        if self._audit_logger:
            await self._audit_logger.log_error(
                error_type="entry_not_found",
                error_message=message,
                correlation_id=correlation_id,
            )
        await self._resync(loan.id, correlation_id)
        raise NotFoundError(message)

    def _schedule_for(self, draft: LoanDraft) -> list[PaymentScheduleEntry]:
        return generate_schedule(
            total_amount=draft.total_amount,
            annual_rate_percent=draft.interest_rate,
            term_months=draft.term_months,
            start_date=draft.start_date,
            first_payment_date=draft.first_payment_date,
            monthly_principal_override=draft.monthly_principal,
        ).entries

    # =========================================================================
    # LEDGER ACTIONS
    # =========================================================================

    async def create_loan(
        self,
        draft: LoanDraft,
        correlation_id: Optional[UUID] = None,
    ) -> LoanWithSchedule:
        """
        Create a loan together with its full schedule in one batch.

        Args:
            draft: The loan form input

        Returns:
            The created loan with its schedule

        Raises:
            LoanValidationError: If the form is incomplete or inconsistent
            StorageError: If the batch fails
        """
        correlation_id = correlation_id or create_correlation_id()

        source = None
        if draft.from_account_id:
            source = await self._repo.get_account(draft.from_account_id)
        result = self._validator.validate_draft(draft, source, is_new=True)
        await self._reject_if_invalid(result, correlation_id)

        entries = self._schedule_for(draft)
        loan = LoanWithSchedule(
            name=draft.name,
            from_account_id=draft.from_account_id,
            from_account_name=source.name,
            total_amount=draft.total_amount,
            interest_rate=draft.interest_rate,
            term_months=draft.term_months,
            start_date=draft.start_date,
            remaining_balance=draft.total_amount,
            schedule=entries,
        )

        operations = [self._repo.loan_set_operation(loan)] + self._repo.entry_set_operations(loan.id, entries)
        try:
            await self._repo.commit_atomic(operations)
        except StorageError as e:
            # Nothing to resync: the loan never existed
            if self._audit_logger:
                await self._audit_logger.log_save_failed(
                    operation="create_loan",
                    loan_id=loan.id,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise

        self._loans[loan.id] = loan

        if self._audit_logger:
            await self._audit_logger.log_loan_created(
                loan_id=loan.id,
                name=loan.name,
                total_amount=str(loan.total_amount),
                entry_count=len(entries),
                correlation_id=correlation_id,
            )
            await self._audit_logger.log_schedule_generated(
                loan_id=loan.id,
                entry_count=len(entries),
                total_interest=str(sum((e.interest for e in entries), Decimal("0"))),
                correlation_id=correlation_id,
            )

        return loan

    async def update_loan(
        self,
        loan_id: str,
        draft: LoanDraft,
        correlation_id: Optional[UUID] = None,
    ) -> LoanWithSchedule:
        """
        Fully edit a loan: new parameters, regenerated schedule.

        The remaining balance is reset to the form's explicit value.
        Paid flags of the old schedule are not carried over.

        Raises:
            NotFoundError: If the loan does not exist
            LoanValidationError: If the form is incomplete or inconsistent
            StorageError: If the batch fails
        """
        correlation_id = correlation_id or create_correlation_id()
        existing = await self._load_for_write(loan_id, correlation_id)
        # Stored entries the cache never saw must be replaced too
        stored_ids = {e.id for e in await self._repo.list_entries(loan_id)}
        old_ids = sorted(stored_ids | {e.id for e in existing.schedule}, key=int)

        source = None
        if draft.from_account_id:
            source = await self._repo.get_account(draft.from_account_id)
        result = self._validator.validate_draft(draft, source, is_new=False, existing_entry_ids=old_ids)
        await self._reject_if_invalid(result, correlation_id, entity_id=loan_id)

        entries = self._schedule_for(draft)
        loan = LoanWithSchedule(
            id=existing.id,
            name=draft.name,
            from_account_id=draft.from_account_id,
            from_account_name=source.name,
            total_amount=draft.total_amount,
            interest_rate=draft.interest_rate,
            term_months=draft.term_months,
            start_date=draft.start_date,
            remaining_balance=draft.remaining_balance,
            schedule=entries,
        )

        operations = self._repo.full_edit_operations(loan, entries, old_ids)
        await self._commit("update_loan", loan_id, operations, correlation_id)

        self._loans[loan_id] = loan

        if self._audit_logger:
            new_ids = {e.id for e in entries}
            await self._audit_logger.log_loan_updated(
                loan_id=loan_id,
                entry_count=len(entries),
                removed_entries=len([i for i in old_ids if i not in new_ids]),
                remaining_balance=str(loan.remaining_balance),
                correlation_id=correlation_id,
            )

        return loan

    async def delete_loan(
        self,
        loan_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """
        Delete a loan and its whole schedule.

        One atomic batch when it fits the batch limit; otherwise sequential
        batches, entries first and the loan record last.

        Returns:
            Number of batches committed

        Raises:
            NotFoundError: If the loan does not exist
            StorageError: If a batch fails
        """
        correlation_id = correlation_id or create_correlation_id()
        loan = await self._load_for_write(loan_id, correlation_id)

        # Delete whatever is stored, even entries the cache never saw
        stored_ids = {e.id for e in await self._repo.list_entries(loan_id)}
        entry_ids = sorted(stored_ids | {e.id for e in loan.schedule}, key=int)
        operations = self._repo.delete_operations(loan_id, entry_ids)
        chunked = len(operations) > self._repo.max_batch_operations

        batches = await self._commit("delete_loan", loan_id, operations, correlation_id, chunked=chunked)

        self._loans.pop(loan_id, None)

        if self._audit_logger:
            await self._audit_logger.log_loan_deleted(
                loan_id=loan_id,
                entry_count=len(entry_ids),
                batch_count=batches,
                correlation_id=correlation_id,
            )

        return batches

    async def mark_entry_paid(
        self,
        loan_id: str,
        entry_id: str,
        paying_account_id: Optional[str] = None,
        adjustments: Optional[list[AccountAdjustment]] = None,
        correlation_id: Optional[UUID] = None,
    ) -> LoanWithSchedule:
        """
        Mark one installment paid and reduce the loan balance by its principal.

        Both writes (plus any account adjustments) go in one batch.

        Args:
            loan_id: The loan
            entry_id: Sequence id of the installment
            paying_account_id: Account checked for sufficient funds
            adjustments: Sibling account updates written in the same batch

        Raises:
            NotFoundError: If the loan or entry does not exist
            EntryAlreadyPaidError: If the entry is already paid
            OutOfOrderPaymentError: If an earlier entry is unpaid (unless allowed)
            InsufficientFundsError: If the paying account cannot cover it
            StorageError: If the batch fails
        """
        correlation_id = correlation_id or create_correlation_id()
        loan = await self._load_for_write(loan_id, correlation_id)
        entry = await self._entry_or_raise(loan, entry_id, correlation_id)

        paying_account: Optional[Account] = None
        if paying_account_id:
            paying_account = await self._repo.get_account(paying_account_id)

        result = self._validator.validate_payment(loan.schedule, entry, paying_account)
        await self._reject_if_invalid(result, correlation_id, entity_id=f"{loan_id}/{entry_id}")

        operations = self._repo.mark_paid_operations(loan_id, entry)
        operations += [self._repo.account_adjustment_operation(a) for a in adjustments or []]
        await self._commit("mark_entry_paid", loan_id, operations, correlation_id)

        paid_entry = entry.model_copy(update={"is_paid": True})
        schedule = [paid_entry if e.id == entry_id else e for e in loan.schedule]
        updated = _with_schedule(
            loan.model_copy(update={"remaining_balance": loan.remaining_balance - entry.principal}),
            schedule,
        )
        self._loans[loan_id] = updated

        if self._audit_logger:
            await self._audit_logger.log_payment_marked_paid(
                loan_id=loan_id,
                entry_id=entry_id,
                principal=str(entry.principal),
                correlation_id=correlation_id,
            )

        return updated

    async def edit_schedule_entry(
        self,
        loan_id: str,
        entry_id: str,
        edit: ScheduleEntryEdit,
        apply_rate_to_future: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> LoanWithSchedule:
        """
        Edit one installment and cascade the change to later installments.

        The loan's remaining balance is not touched; paid flags are kept.

        Raises:
            NotFoundError: If the loan or entry does not exist
            LoanValidationError: If the edit is invalid
            StorageError: If the batch fails
        """
        correlation_id = correlation_id or create_correlation_id()
        loan = await self._load_for_write(loan_id, correlation_id)
        await self._entry_or_raise(loan, entry_id, correlation_id)

        ordered = chronological(loan.schedule)
        index = [e.id for e in ordered].index(entry_id)
        previous_balance, _ = previous_balance_for(loan, ordered, index)

        result = self._validator.validate_entry_edit(edit, previous_balance)
        await self._reject_if_invalid(result, correlation_id, entity_id=f"{loan_id}/{entry_id}")

        updated_entries = cascade_edit(loan, loan.schedule, entry_id, edit, apply_rate_to_future)
        operations = self._repo.entry_update_operations(loan_id, updated_entries)
        await self._commit("edit_schedule_entry", loan_id, operations, correlation_id)

        by_id = {e.id: e for e in updated_entries}
        updated = _with_schedule(loan, [by_id.get(e.id, e) for e in loan.schedule])
        self._loans[loan_id] = updated

        if self._audit_logger:
            await self._audit_logger.log_entry_edited(
                loan_id=loan_id,
                entry_id=entry_id,
                cascaded_entries=len(updated_entries) - 1,
                apply_rate_to_future=apply_rate_to_future,
                correlation_id=correlation_id,
            )

        return updated

    async def check_balance_drift(self, loan_id: str) -> Optional[Decimal]:
        """
        Compare the stored balance with total minus paid principal.

        Reads from the store, not the cache.

        Returns:
            stored - expected when they differ, None when consistent
        """
        loan = await self._repo.get_loan(loan_id)
        if loan is None:
            raise NotFoundError(f"Loan not found: {loan_id}")
        expected = reconcile_remaining_balance(loan)
        if loan.remaining_balance == expected:
            return None
        if self._audit_logger:
            await self._audit_logger.log_balance_drift(
                loan_id=loan_id,
                stored=str(loan.remaining_balance),
                expected=str(expected),
            )
        return loan.remaining_balance - expected

    @staticmethod
    def user_message_for(error: Exception) -> str:
        """Message to show the user for a failed ledger action."""
        if isinstance(error, LoanValidationError):
            return str(error)
        if isinstance(error, NotFoundError):
            return "This loan has changed or was deleted. Your data has been refreshed."
        if isinstance(error, StorageError):
            return "Failed to save your changes. Please try again."
        return "Something went wrong. Please try again."


class AdvisorFlow:
    """
    Orchestrates the advice flow.

    Flow:
    1. Load accounts and loans → plain-text snapshot
    2. Snapshot + question → advisor model
    3. Stream the answer back

    The advisor only ever sees the snapshot; it never touches storage.
    """

    def __init__(
        self,
        repository: LoanRepository,
        agent: Optional[FinancialAdvisorAgent] = None,
        audit_logger: Optional[AuditLogger] = None,
        app_settings: Optional[AppSettings] = None,
    ):
        self._repo = repository
        self._agent = agent
        self._audit_logger = audit_logger
        self._app_settings = app_settings or get_settings().app

    @property
    def agent(self) -> FinancialAdvisorAgent:
        # Created on first use so the ledger runs without Gemini configured
        if self._agent is None:
            self._agent = FinancialAdvisorAgent()
        return self._agent

    async def build_context(self, as_of: Optional[date] = None) -> str:
        accounts = await self._repo.list_accounts()
        loans = await self._repo.list_loans()
        return format_financial_data(
            accounts,
            loans,
            as_of=as_of,
            currency_code=self._app_settings.currency_code,
            separator=self._app_settings.thousands_separator,
        )

    async def stream_answer(
        self,
        question: str,
        correlation_id: Optional[UUID] = None,
    ) -> AsyncIterator[str]:
        """
        Answer a question about the user's finances.

        Yields:
            Text chunks of the answer

        Raises:
            AdvisorError: If the model fails
        """
        correlation_id = correlation_id or create_correlation_id()
        context = await self.build_context()

        if self._audit_logger:
            await self._audit_logger.log_advice_requested(
                question=question,
                context_chars=len(context),
                correlation_id=correlation_id,
            )

        try:
            async for chunk in self.agent.stream_advice(question, context):
                yield chunk
        except AdvisorError as e:
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    service="gemini",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise


def create_app_components(
    use_storage: bool = True,
) -> tuple[LoanManager, AdvisorFlow, DocumentStoreInterface]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to use Google Sheets storage.
                     Set to False for an in-memory store.

    Returns:
        (loan_manager, advisor_flow, document_store)
    """
    settings = get_settings()
    loan_settings = settings.loans
    store: Optional[DocumentStoreInterface] = None

    if use_storage:
        try:
            store = GoogleSheetsDocumentStore(
                GoogleSheetsClient(),
                max_batch_operations=loan_settings.max_batch_operations,
            )
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))
            store = None

    if store is None:
        store = InMemoryDocumentStore(max_batch_operations=loan_settings.max_batch_operations)

    repository = LoanRepository(store, max_batch_operations=loan_settings.max_batch_operations)
    audit_logger = AuditLogger(store)

    loan_manager = LoanManager(
        repository,
        audit_logger=audit_logger,
        settings=loan_settings,
    )
    advisor_flow = AdvisorFlow(
        repository,
        audit_logger=audit_logger,
    )

    return loan_manager, advisor_flow, store
