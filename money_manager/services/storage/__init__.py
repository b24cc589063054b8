"""
Storage Services Package

Provides the abstract document store interface and concrete implementations.
Google Sheets is the hosted backend; the in-memory store backs tests and
local runs. Designed to be swappable.
"""

from money_manager.services.storage.batching import (
    chunk_operations,
    commit_atomic,
    commit_in_chunks,
)
from money_manager.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
)
from money_manager.services.storage.interface import (
    BatchTooLargeError,
    ConnectionError,
    Document,
    DocumentStoreInterface,
    Increment,
    NotFoundError,
    OperationKind,
    StorageError,
    WriteOperation,
    apply_operations,
)
from money_manager.services.storage.loan_repository import (
    ACCOUNTS,
    LOANS,
    LoanRepository,
    schedule_collection,
)
from money_manager.services.storage.memory import InMemoryDocumentStore

__all__ = [
    # Interface
    "Document",
    "DocumentStoreInterface",
    "Increment",
    "OperationKind",
    "WriteOperation",
    "apply_operations",
    # Exceptions
    "BatchTooLargeError",
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # Batching
    "chunk_operations",
    "commit_atomic",
    "commit_in_chunks",
    # Implementations
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStore",
    "InMemoryDocumentStore",
    # Loans
    "ACCOUNTS",
    "LOANS",
    "LoanRepository",
    "schedule_collection",
]
