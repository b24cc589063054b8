"""Shared fixtures: an in-memory store with accounts, and a loan manager over it."""

from datetime import date
from decimal import Decimal

import pytest

from money_manager.audit import AuditLogger
from money_manager.config import LoanSettings
from money_manager.models.loan import LoanDraft
from money_manager.orchestrator import LoanManager
from money_manager.services.storage import ACCOUNTS, InMemoryDocumentStore, LoanRepository


@pytest.fixture
def store():
    """In-memory store seeded with one account of each kind."""
    store = InMemoryDocumentStore()
    store.seed(ACCOUNTS, "acc-bank", {"name": "Vietcombank", "type": "bank", "balance": "50000000"})
    store.seed(ACCOUNTS, "acc-credit", {
        "name": "Visa Platinum",
        "type": "credit",
        "parent_id": "acc-bank",
        "current_debt": "2000000",
    })
    store.seed(ACCOUNTS, "acc-wallet", {"name": "Cash", "type": "wallet", "balance": "100"})
    return store


@pytest.fixture
def loan_settings():
    return LoanSettings()


@pytest.fixture
def manager(store, loan_settings):
    return LoanManager(
        LoanRepository(store, max_batch_operations=loan_settings.max_batch_operations),
        audit_logger=AuditLogger(store),
        settings=loan_settings,
    )


@pytest.fixture
def draft():
    """3,000,000 at 12% over 3 months, paid monthly from February."""
    return LoanDraft(
        name="Home loan",
        from_account_id="acc-bank",
        total_amount=Decimal("3000000"),
        interest_rate=Decimal("12"),
        term_months=3,
        start_date=date(2024, 1, 1),
        first_payment_date=date(2024, 2, 1),
    )
