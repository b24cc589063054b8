"""
Loan Repository

Maps loans, schedule entries and accounts to documents, and builds the
write operations the ledger commits.

Layout:
    accounts/<account_id>
    loans/<loan_id>
    loans/<loan_id>/paymentSchedule/<entry_id>

DESIGN DECISION: The repository only builds operations and reads
documents. Deciding which operations belong in one batch is the
LoanManager's job, so every ledger action is visible in one place.
"""

from typing import Optional

import structlog
from pydantic import ValidationError

from money_manager.models.account import Account, AccountAdjustment
from money_manager.models.loan import Loan, LoanWithSchedule, PaymentScheduleEntry
from money_manager.services.storage.batching import commit_atomic, commit_in_chunks
from money_manager.services.storage.interface import (
    Document,
    DocumentStoreInterface,
    Increment,
    StorageError,
    WriteOperation,
)

logger = structlog.get_logger(__name__)

ACCOUNTS = "accounts"
LOANS = "loans"

# Fields written when an entry's financials are edited in place
_ENTRY_EDIT_FIELDS = (
    "payment_date",
    "principal",
    "interest",
    "total_payment",
    "interest_rate_snapshot",
    "remaining_balance",
)


def schedule_collection(loan_id: str) -> str:
    return f"{LOANS}/{loan_id}/paymentSchedule"


# =============================================================================
# DOCUMENT MAPPING
# =============================================================================

def loan_to_document(loan: Loan) -> Document:
    # The schedule lives in its own collection
    return loan.model_dump(mode="json", exclude={"id", "schedule"})


def loan_from_document(loan_id: str, doc: Document) -> Loan:
    return Loan.model_validate({**doc, "id": loan_id})


def entry_to_document(entry: PaymentScheduleEntry) -> Document:
    return entry.model_dump(mode="json", exclude={"id"})


def entry_from_document(entry_id: str, doc: Document) -> PaymentScheduleEntry:
    return PaymentScheduleEntry.model_validate({**doc, "id": entry_id})


def account_from_document(account_id: str, doc: Document) -> Account:
    return Account.model_validate({**doc, "id": account_id})


class LoanRepository:
    """
    Reads loans and accounts from the document store and builds writes.

    Usage:
        repo = LoanRepository(store, max_batch_operations=400)
        loan = await repo.get_loan(loan_id)
        await repo.commit_atomic(repo.mark_paid_operations(loan.id, entry))
    """

    def __init__(self, store: DocumentStoreInterface, max_batch_operations: int = 400):
        self.store = store
        # Never exceed what the backend itself accepts
        self.max_batch_operations = min(max_batch_operations, store.max_batch_operations)

    # =========================================================================
    # READS
    # =========================================================================

    async def get_loan(self, loan_id: str) -> Optional[LoanWithSchedule]:
        """
        Load a loan with its schedule.

        Returns:
            The loan, or None if the loan document does not exist

        Raises:
            StorageError: If a stored document does not match the schema
        """
        doc = await self.store.get_document(LOANS, loan_id)
        if doc is None:
            return None
        entries = await self.list_entries(loan_id)
        try:
            loan = loan_from_document(loan_id, doc)
            return LoanWithSchedule(**loan.model_dump(), schedule=entries)
        except ValidationError as e:
            logger.error("corrupt_loan_document", loan_id=loan_id, error=str(e))
            raise StorageError(f"Loan {loan_id} is not a valid loan document") from e

    async def list_entries(self, loan_id: str) -> list[PaymentScheduleEntry]:
        docs = await self.store.list_documents(schedule_collection(loan_id))
        try:
            return [entry_from_document(entry_id, doc) for entry_id, doc in docs.items()]
        except ValidationError as e:
            logger.error("corrupt_schedule_document", loan_id=loan_id, error=str(e))
            raise StorageError(f"Schedule of loan {loan_id} has an invalid entry") from e

    async def list_loans(self) -> list[LoanWithSchedule]:
        """All loans with schedules, ordered by start date then name."""
        docs = await self.store.list_documents(LOANS)
        loans = []
        for loan_id in docs:
            loan = await self.get_loan(loan_id)
            if loan is not None:
                loans.append(loan)
        return sorted(loans, key=lambda l: (l.start_date, l.name))

    async def get_account(self, account_id: str) -> Optional[Account]:
        doc = await self.store.get_document(ACCOUNTS, account_id)
        if doc is None:
            return None
        return account_from_document(account_id, doc)

    async def list_accounts(self) -> list[Account]:
        docs = await self.store.list_documents(ACCOUNTS)
        return [account_from_document(account_id, doc) for account_id, doc in docs.items()]

    # =========================================================================
    # OPERATION BUILDERS
    # =========================================================================

    def loan_set_operation(self, loan: Loan) -> WriteOperation:
        return WriteOperation.set(LOANS, loan.id, loan_to_document(loan))

    def entry_set_operations(
        self,
        loan_id: str,
        entries: list[PaymentScheduleEntry],
    ) -> list[WriteOperation]:
        collection = schedule_collection(loan_id)
        return [WriteOperation.set(collection, e.id, entry_to_document(e)) for e in entries]

    def entry_update_operations(
        self,
        loan_id: str,
        entries: list[PaymentScheduleEntry],
    ) -> list[WriteOperation]:
        """Update the financial fields of existing entries, leaving is_paid alone."""
        collection = schedule_collection(loan_id)
        ops = []
        for entry in entries:
            doc = entry_to_document(entry)
            ops.append(WriteOperation.update(
                collection,
                entry.id,
                {field: doc[field] for field in _ENTRY_EDIT_FIELDS},
            ))
        return ops

    def mark_paid_operations(self, loan_id: str, entry: PaymentScheduleEntry) -> list[WriteOperation]:
        """Flag the entry paid and decrement the loan balance by its principal."""
        return [
            WriteOperation.update(schedule_collection(loan_id), entry.id, {"is_paid": True}),
            WriteOperation.update(LOANS, loan_id, {"remaining_balance": Increment(delta=-entry.principal)}),
        ]

    def account_adjustment_operation(self, adjustment: AccountAdjustment) -> WriteOperation:
        return WriteOperation.update(
            ACCOUNTS,
            adjustment.account_id,
            {adjustment.field: Increment(delta=adjustment.delta)},
        )

    def full_edit_operations(
        self,
        loan: Loan,
        new_entries: list[PaymentScheduleEntry],
        old_entry_ids: list[str],
    ) -> list[WriteOperation]:
        """
        Replace a loan record and its whole schedule.

        New entries overwrite keys 1..n in place; old keys that are not
        reused are deleted.
        """
        new_ids = {e.id for e in new_entries}
        collection = schedule_collection(loan.id)
        stale = sorted((i for i in old_entry_ids if i not in new_ids), key=int)
        return (
            [self.loan_set_operation(loan)]
            + self.entry_set_operations(loan.id, new_entries)
            + [WriteOperation.delete(collection, entry_id) for entry_id in stale]
        )

    def delete_operations(self, loan_id: str, entry_ids: list[str]) -> list[WriteOperation]:
        """Delete every entry, then the loan record last."""
        collection = schedule_collection(loan_id)
        return (
            [WriteOperation.delete(collection, entry_id) for entry_id in sorted(entry_ids, key=int)]
            + [WriteOperation.delete(LOANS, loan_id)]
        )

    # =========================================================================
    # COMMITS
    # =========================================================================

    async def commit_atomic(self, operations: list[WriteOperation]) -> None:
        await commit_atomic(self.store, operations, self.max_batch_operations)

    async def commit_in_chunks(self, operations: list[WriteOperation]) -> int:
        return await commit_in_chunks(self.store, operations, self.max_batch_operations)
