"""Services package."""

from money_manager.services.storage import (
    BatchTooLargeError,
    ConnectionError,
    DocumentStoreInterface,
    GoogleSheetsDocumentStore,
    InMemoryDocumentStore,
    LoanRepository,
    NotFoundError,
    StorageError,
)

__all__ = [
    "BatchTooLargeError",
    "ConnectionError",
    "DocumentStoreInterface",
    "GoogleSheetsDocumentStore",
    "InMemoryDocumentStore",
    "LoanRepository",
    "NotFoundError",
    "StorageError",
]
