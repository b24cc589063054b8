"""
Tests for the balance ledger (LoanManager over the in-memory store).

Every test drives the async manager with asyncio.run; no network.
"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from money_manager.audit import AUDIT_COLLECTION, AuditLogger, create_correlation_id
from money_manager.config import LoanSettings
from money_manager.models.account import AccountAdjustment
from money_manager.models.audit import AuditEventType
from money_manager.models.loan import ScheduleEntryEdit
from money_manager.orchestrator import LoanManager
from money_manager.services.storage import (
    ACCOUNTS,
    LOANS,
    InMemoryDocumentStore,
    LoanRepository,
    NotFoundError,
    StorageError,
    schedule_collection,
)
from money_manager.validation import (
    EntryAlreadyPaidError,
    InsufficientFundsError,
    LoanValidationError,
    OutOfOrderPaymentError,
)


def stored_loan(store, loan_id):
    return asyncio.run(store.get_document(LOANS, loan_id))


def stored_entries(store, loan_id):
    return asyncio.run(store.list_documents(schedule_collection(loan_id)))


def ledger_commits(store):
    """Commits that touched loans (audit writes excluded)."""
    return [
        ops for ops in store.commit_log
        if not all(op.collection == AUDIT_COLLECTION for op in ops)
    ]


class TestCreateLoan:
    """Tests for LoanManager.create_loan."""

    def test_creates_loan_and_schedule_in_one_batch(self, manager, store, draft):
        """The loan record and every entry are one commit."""
        loan = asyncio.run(manager.create_loan(draft))

        assert len(ledger_commits(store)) == 1
        assert len(ledger_commits(store)[0]) == 4
        doc = stored_loan(store, loan.id)
        assert Decimal(doc["remaining_balance"]) == Decimal("3000000")
        assert doc["from_account_name"] == "Vietcombank"
        assert sorted(stored_entries(store, loan.id)) == ["1", "2", "3"]

    def test_returned_loan_has_schedule(self, manager, draft):
        """The created loan carries its generated schedule."""
        loan = asyncio.run(manager.create_loan(draft))
        assert [e.interest for e in loan.schedule] == [
            Decimal("30575"), Decimal("19068"), Decimal("10192")
        ]
        assert loan.remaining_balance == loan.total_amount

    def test_incomplete_form_writes_nothing(self, manager, store, draft):
        """Missing fields are rejected before any write."""
        incomplete = draft.model_copy(update={"name": None})
        with pytest.raises(LoanValidationError) as exc_info:
            asyncio.run(manager.create_loan(incomplete))

        assert exc_info.value.result.errors[0].field == "name"
        assert store.count(LOANS) == 0

    def test_wallet_cannot_fund_a_loan(self, manager, store, draft):
        """Only bank and credit accounts can be the source."""
        with pytest.raises(LoanValidationError):
            asyncio.run(manager.create_loan(draft.model_copy(update={"from_account_id": "acc-wallet"})))
        assert store.count(LOANS) == 0

    def test_validation_failure_is_audited(self, manager, store, draft):
        """Rejected forms leave an audit event."""
        with pytest.raises(LoanValidationError):
            asyncio.run(manager.create_loan(draft.model_copy(update={"term_months": None})))
        events = asyncio.run(store.list_documents(AUDIT_COLLECTION)).values()
        assert any(e["event_type"] == AuditEventType.VALIDATION_FAILED.value for e in events)

    def test_schedule_larger_than_batch_is_rejected(self, store, draft):
        """A loan that cannot be written atomically is rejected as invalid input."""
        small = LoanManager(LoanRepository(store, max_batch_operations=3), settings=LoanSettings())
        with pytest.raises(LoanValidationError) as exc_info:
            asyncio.run(small.create_loan(draft))

        assert exc_info.value.result.errors[0].field == "term_months"
        assert store.count(LOANS) == 0
        assert ledger_commits(store) == []

    def test_store_batch_limit_applies(self, draft):
        """The store's own cap wins over a larger configured limit."""
        store = InMemoryDocumentStore(max_batch_operations=3)
        store.seed(ACCOUNTS, "acc-bank", {"name": "Vietcombank", "type": "bank", "balance": "50000000"})
        capped = LoanManager(LoanRepository(store, max_batch_operations=400), settings=LoanSettings())

        with pytest.raises(LoanValidationError):
            asyncio.run(capped.create_loan(draft))
        assert store.count(LOANS) == 0


class TestMarkPaid:
    """Tests for LoanManager.mark_entry_paid."""

    def test_decrements_balance_by_principal(self, manager, store, draft):
        """Paying entry 1 reduces the balance by its principal only."""
        loan = asyncio.run(manager.create_loan(draft))
        updated = asyncio.run(manager.mark_entry_paid(loan.id, "1"))

        assert updated.remaining_balance == Decimal("2000000")
        assert updated.entry("1").is_paid is True
        assert Decimal(stored_loan(store, loan.id)["remaining_balance"]) == Decimal("2000000")
        assert stored_entries(store, loan.id)["1"]["is_paid"] is True

    def test_both_writes_in_one_batch(self, manager, store, draft):
        """The paid flag and the decrement are committed together."""
        loan = asyncio.run(manager.create_loan(draft))
        asyncio.run(manager.mark_entry_paid(loan.id, "1"))
        last = ledger_commits(store)[-1]
        assert {op.collection for op in last} == {LOANS, schedule_collection(loan.id)}

    def test_paying_twice_is_rejected(self, manager, store, draft):
        """A second mark-paid never decrements again."""
        loan = asyncio.run(manager.create_loan(draft))
        asyncio.run(manager.mark_entry_paid(loan.id, "1"))

        with pytest.raises(EntryAlreadyPaidError):
            asyncio.run(manager.mark_entry_paid(loan.id, "1"))
        assert Decimal(stored_loan(store, loan.id)["remaining_balance"]) == Decimal("2000000")

    def test_out_of_order_rejected_by_default(self, manager, store, draft):
        """Entry 2 cannot be paid while entry 1 is unpaid."""
        loan = asyncio.run(manager.create_loan(draft))
        with pytest.raises(OutOfOrderPaymentError):
            asyncio.run(manager.mark_entry_paid(loan.id, "2"))
        assert stored_entries(store, loan.id)["2"]["is_paid"] is False

    def test_out_of_order_allowed_by_setting(self, store, draft):
        """The policy can be relaxed."""
        relaxed = LoanManager(
            LoanRepository(store),
            settings=LoanSettings(allow_out_of_order_payments=True),
        )
        loan = asyncio.run(relaxed.create_loan(draft))
        updated = asyncio.run(relaxed.mark_entry_paid(loan.id, "3"))
        assert updated.remaining_balance == Decimal("2000000")

    def test_insufficient_funds(self, manager, store, draft):
        """The paying account must cover the installment."""
        loan = asyncio.run(manager.create_loan(draft))
        with pytest.raises(InsufficientFundsError):
            asyncio.run(manager.mark_entry_paid(loan.id, "1", paying_account_id="acc-wallet"))
        assert stored_entries(store, loan.id)["1"]["is_paid"] is False

    def test_account_adjustment_in_same_batch(self, manager, store, draft):
        """Caller-supplied account updates are written with the payment."""
        loan = asyncio.run(manager.create_loan(draft))
        asyncio.run(manager.mark_entry_paid(
            loan.id,
            "1",
            paying_account_id="acc-bank",
            adjustments=[AccountAdjustment(account_id="acc-bank", delta=Decimal("-1030575"))],
        ))
        account = asyncio.run(store.get_document(ACCOUNTS, "acc-bank"))
        assert Decimal(account["balance"]) == Decimal("48969425")
        assert len(ledger_commits(store)[-1]) == 3

    def test_unknown_entry(self, manager, draft):
        """A missing entry raises NotFoundError."""
        loan = asyncio.run(manager.create_loan(draft))
        with pytest.raises(NotFoundError):
            asyncio.run(manager.mark_entry_paid(loan.id, "99"))

    def test_unknown_loan(self, manager):
        """A missing loan raises NotFoundError."""
        with pytest.raises(NotFoundError):
            asyncio.run(manager.mark_entry_paid("nope", "1"))

    def test_failed_batch_changes_nothing_and_resyncs(self, manager, store, draft):
        """A failed commit leaves storage untouched and reloads the loan."""
        loan = asyncio.run(manager.create_loan(draft))
        # Someone else renamed the loan meanwhile
        doc = stored_loan(store, loan.id)
        store.seed(LOANS, loan.id, {**doc, "name": "Renamed elsewhere"})

        store.fail_next_commit(after_operations=1)
        with pytest.raises(StorageError):
            asyncio.run(manager.mark_entry_paid(loan.id, "1"))

        assert stored_entries(store, loan.id)["1"]["is_paid"] is False
        assert Decimal(stored_loan(store, loan.id)["remaining_balance"]) == Decimal("3000000")
        cached = asyncio.run(manager.get_loan(loan.id))
        assert cached.name == "Renamed elsewhere"
        assert cached.entry("1").is_paid is False


class TestEditScheduleEntry:
    """Tests for LoanManager.edit_schedule_entry."""

    def test_cascade_is_persisted(self, manager, store, draft):
        """Target and later entries are written; the loan balance is not."""
        loan = asyncio.run(manager.create_loan(draft))
        edit = ScheduleEntryEdit(
            payment_date=date(2024, 3, 1),
            principal=Decimal("1500000"),
            interest=Decimal("20000"),
            interest_rate_snapshot=Decimal("12"),
        )
        updated = asyncio.run(manager.edit_schedule_entry(loan.id, "2", edit))

        entries = stored_entries(store, loan.id)
        assert Decimal(entries["2"]["principal"]) == Decimal("1500000")
        assert Decimal(entries["3"]["interest"]) == Decimal("5096")
        assert Decimal(entries["1"]["interest"]) == Decimal("30575")
        assert Decimal(stored_loan(store, loan.id)["remaining_balance"]) == Decimal("3000000")
        assert updated.remaining_balance == Decimal("3000000")
        assert len(ledger_commits(store)[-1]) == 2

    def test_paid_entry_can_be_edited_without_decrement(self, manager, store, draft):
        """Editing a paid entry keeps it paid and leaves the balance alone."""
        loan = asyncio.run(manager.create_loan(draft))
        asyncio.run(manager.mark_entry_paid(loan.id, "1"))
        edit = ScheduleEntryEdit(
            payment_date=date(2024, 2, 1),
            principal=Decimal("1000000"),
            interest=Decimal("30000"),
        )
        updated = asyncio.run(manager.edit_schedule_entry(loan.id, "1", edit))

        assert updated.entry("1").is_paid is True
        assert stored_entries(store, loan.id)["1"]["is_paid"] is True
        assert Decimal(stored_loan(store, loan.id)["remaining_balance"]) == Decimal("2000000")


class TestUpdateLoan:
    """Tests for LoanManager.update_loan."""

    def test_regenerates_schedule_and_removes_stale_entries(self, manager, store, draft):
        """Shorter terms delete the entries no longer used."""
        loan = asyncio.run(manager.create_loan(draft))
        edited = draft.model_copy(update={
            "term_months": 2,
            "remaining_balance": Decimal("2500000"),
        })
        updated = asyncio.run(manager.update_loan(loan.id, edited))

        assert updated.id == loan.id
        assert sorted(stored_entries(store, loan.id)) == ["1", "2"]
        assert Decimal(stored_loan(store, loan.id)["remaining_balance"]) == Decimal("2500000")
        assert [e.principal for e in updated.schedule] == [Decimal("1500000"), Decimal("1500000")]

    def test_edit_requires_remaining_balance(self, manager, draft):
        """The edit form must state the remaining balance."""
        loan = asyncio.run(manager.create_loan(draft))
        with pytest.raises(LoanValidationError):
            asyncio.run(manager.update_loan(loan.id, draft))

    def test_stored_entries_missing_from_cache_are_removed(self, manager, store, draft):
        """Entries written behind the manager's back are replaced with the rest."""
        loan = asyncio.run(manager.create_loan(draft))
        third = stored_entries(store, loan.id)["3"]
        store.seed(schedule_collection(loan.id), "4", {**third, "payment_date": "2024-05-01"})
        edited = draft.model_copy(update={
            "term_months": 2,
            "remaining_balance": Decimal("3000000"),
        })

        asyncio.run(manager.update_loan(loan.id, edited))

        assert sorted(stored_entries(store, loan.id)) == ["1", "2"]

    def test_edit_larger_than_batch_is_rejected(self, manager, store, draft):
        """New entries plus stale deletes must fit one batch."""
        loan = asyncio.run(manager.create_loan(draft))
        small = LoanManager(LoanRepository(store, max_batch_operations=3), settings=LoanSettings())
        edited = draft.model_copy(update={
            "term_months": 1,
            "remaining_balance": Decimal("3000000"),
        })

        # 1 loan record, 1 entry and 2 deletes
        with pytest.raises(LoanValidationError):
            asyncio.run(small.update_loan(loan.id, edited))
        assert sorted(stored_entries(store, loan.id)) == ["1", "2", "3"]
        assert stored_loan(store, loan.id)["term_months"] == 3


class TestDeleteLoan:
    """Tests for LoanManager.delete_loan."""

    def test_deletes_everything_in_one_batch(self, manager, store, draft):
        """Small loans are deleted atomically."""
        loan = asyncio.run(manager.create_loan(draft))
        batches = asyncio.run(manager.delete_loan(loan.id))

        assert batches == 1
        assert store.count(LOANS) == 0
        assert stored_entries(store, loan.id) == {}
        assert manager.loans == []

    def test_failure_is_all_or_nothing(self, manager, store, draft):
        """A failure mid-batch leaves the loan and every entry in place."""
        loan = asyncio.run(manager.create_loan(draft))
        store.fail_next_commit(after_operations=2)

        with pytest.raises(StorageError):
            asyncio.run(manager.delete_loan(loan.id))

        assert stored_loan(store, loan.id) is not None
        assert sorted(stored_entries(store, loan.id)) == ["1", "2", "3"]

    def test_large_schedule_is_chunked(self, manager, store, draft):
        """Deletes beyond the batch limit run as sequential batches."""
        loan = asyncio.run(manager.create_loan(draft))
        small = LoanManager(LoanRepository(store, max_batch_operations=2), settings=LoanSettings())

        batches = asyncio.run(small.delete_loan(loan.id))

        assert batches == 2
        assert store.count(LOANS) == 0
        assert stored_entries(store, loan.id) == {}
        # Loan record goes in the last batch
        assert store.commit_log[-1][-1].collection == LOANS

    def test_chunk_failure_keeps_loan_record(self, manager, store, draft):
        """The loan record is deleted last, so a failed chunk never orphans entries."""
        loan = asyncio.run(manager.create_loan(draft))
        small = LoanManager(LoanRepository(store, max_batch_operations=2), settings=LoanSettings())
        store.fail_next_commit()

        with pytest.raises(StorageError):
            asyncio.run(small.delete_loan(loan.id))
        assert stored_loan(store, loan.id) is not None


class TestBalanceDrift:
    """Tests for LoanManager.check_balance_drift."""

    def test_consistent_after_payments(self, manager, draft):
        """Incremental decrements match the recomputed balance."""
        loan = asyncio.run(manager.create_loan(draft))
        asyncio.run(manager.mark_entry_paid(loan.id, "1"))
        asyncio.run(manager.mark_entry_paid(loan.id, "2"))
        assert asyncio.run(manager.check_balance_drift(loan.id)) is None

    def test_drift_is_reported(self, manager, store, draft):
        """A tampered balance is detected and audited."""
        loan = asyncio.run(manager.create_loan(draft))
        doc = stored_loan(store, loan.id)
        store.seed(LOANS, loan.id, {**doc, "remaining_balance": "2900000"})

        assert asyncio.run(manager.check_balance_drift(loan.id)) == Decimal("-100000")
        events = asyncio.run(store.list_documents(AUDIT_COLLECTION)).values()
        assert any(e["event_type"] == AuditEventType.BALANCE_DRIFT_DETECTED.value for e in events)


class TestAuditTrail:
    """Tests for the events written by the ledger."""

    def test_events_share_correlation_id(self, store, draft):
        """All events of one action can be found together."""
        audit_logger = AuditLogger(store)
        manager = LoanManager(LoanRepository(store), audit_logger=audit_logger, settings=LoanSettings())
        correlation_id = create_correlation_id()

        asyncio.run(manager.create_loan(draft, correlation_id=correlation_id))
        events = asyncio.run(audit_logger.get_events_by_correlation_id(correlation_id))

        assert [e.event_type for e in events] == [
            AuditEventType.LOAN_CREATED,
            AuditEventType.SCHEDULE_GENERATED,
        ]


class TestUserMessages:
    """Tests for LoanManager.user_message_for."""

    def test_storage_error_is_retryable_message(self):
        """Storage failures get a generic retry message."""
        assert "try again" in LoanManager.user_message_for(StorageError("boom"))

    def test_not_found_message(self):
        """Vanished loans tell the user data was refreshed."""
        assert "refreshed" in LoanManager.user_message_for(NotFoundError("gone"))


class TestUpcomingPayments:
    """Tests for LoanManager.upcoming_payments."""

    def test_next_unpaid_of_each_loan(self, manager, draft):
        """Reminders list the next unpaid entry per loan."""
        first = asyncio.run(manager.create_loan(draft))
        second = asyncio.run(manager.create_loan(draft.model_copy(update={
            "name": "Car loan",
            "first_payment_date": date(2024, 1, 15),
        })))
        asyncio.run(manager.mark_entry_paid(first.id, "1"))

        reminders = asyncio.run(manager.upcoming_payments())
        assert [(r.loan_id, r.entry_id) for r in reminders] == [(second.id, "1"), (first.id, "2")]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
