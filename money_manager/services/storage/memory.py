"""
In-Memory Document Store

Used by tests and for local runs without Google credentials.

Commits are applied to a copy of the data and swapped in only when every
operation succeeded, which gives the same all-or-nothing behavior as a
hosted batch write. `fail_next_commit()` lets tests simulate a backend
failure at a given point in the batch.
"""

from typing import Optional

import structlog

from money_manager.services.storage.interface import (
    BatchTooLargeError,
    Document,
    DocumentStoreInterface,
    StorageError,
    WriteOperation,
    apply_operations,
)

logger = structlog.get_logger(__name__)


class InMemoryDocumentStore(DocumentStoreInterface):
    """Dict-backed document store with atomic commits."""

    def __init__(self, max_batch_operations: int = 500):
        self.max_batch_operations = max_batch_operations
        self._collections: dict[str, dict[str, Document]] = {}
        self.commit_log: list[list[WriteOperation]] = []
        self._fail_after: Optional[int] = None
        self._fail_reason = "Simulated storage failure"

    def fail_next_commit(self, after_operations: int = 0, reason: Optional[str] = None) -> None:
        """
        Make the next commit fail.

        Args:
            after_operations: Operations applied to the working copy before the failure
            reason: Error message of the raised StorageError
        """
        self._fail_after = after_operations
        if reason:
            self._fail_reason = reason

    async def get_document(self, collection: str, doc_id: str) -> Optional[Document]:
        doc = self._collections.get(collection, {}).get(doc_id)
        return dict(doc) if doc is not None else None

    async def list_documents(self, collection: str) -> dict[str, Document]:
        return {
            doc_id: dict(doc)
            for doc_id, doc in self._collections.get(collection, {}).items()
        }

    async def commit(self, operations: list[WriteOperation]) -> None:
        if len(operations) > self.max_batch_operations:
            raise BatchTooLargeError(len(operations), self.max_batch_operations)

        if self._fail_after is not None:
            fail_after = self._fail_after
            self._fail_after = None
            # Work on the copy, then abandon it
            apply_operations(self._collections, operations[:fail_after])
            logger.warning(
                "simulated_commit_failure",
                operations=len(operations),
                applied_before_failure=fail_after,
            )
            raise StorageError(self._fail_reason)

        self._collections = apply_operations(self._collections, operations)
        self.commit_log.append(list(operations))
        logger.debug("batch_committed", operations=len(operations))

    def seed(self, collection: str, doc_id: str, data: Document) -> None:
        """Insert a document directly, bypassing commits (test fixtures)."""
        self._collections.setdefault(collection, {})[doc_id] = dict(data)

    def count(self, collection: str) -> int:
        return len(self._collections.get(collection, {}))
