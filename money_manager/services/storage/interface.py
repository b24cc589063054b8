"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a hosted document database later
2. Use in-memory storage for testing
3. Keep ledger logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Documents are JSON-safe dicts grouped in collections (e.g. "loans",
"loans/<loan_id>/paymentSchedule"), and every multi-document change goes
through a single atomic commit() of WriteOperations.
"""

import copy
from abc import ABC, abstractmethod
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

Document = dict[str, Any]


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class BatchTooLargeError(StorageError):
    """An atomic batch exceeds the backend's operation limit."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"Batch of {size} operations exceeds the limit of {limit}")


class OperationKind(str, Enum):
    SET = "set"
    UPDATE = "update"
    DELETE = "delete"


class Increment(BaseModel):
    """
    Field transform for update operations: add `delta` to the stored value.

    Applied by the backend at commit time, so a decrement does not depend
    on a value read earlier by the caller.
    """
    model_config = ConfigDict(frozen=True)

    delta: Decimal


class WriteOperation(BaseModel):
    """
    One write within a batch.

    - set: replace (or create) the whole document
    - update: merge fields into an existing document; fails if missing
    - delete: remove the document; deleting a missing document is a no-op
    """
    model_config = ConfigDict(frozen=True)

    kind: OperationKind
    collection: str = Field(..., min_length=1)
    doc_id: str = Field(..., min_length=1)
    data: Optional[Document] = None

    @property
    def path(self) -> str:
        return f"{self.collection}/{self.doc_id}"

    @classmethod
    def set(cls, collection: str, doc_id: str, data: Document) -> "WriteOperation":
        return cls(kind=OperationKind.SET, collection=collection, doc_id=doc_id, data=data)

    @classmethod
    def update(cls, collection: str, doc_id: str, data: Document) -> "WriteOperation":
        return cls(kind=OperationKind.UPDATE, collection=collection, doc_id=doc_id, data=data)

    @classmethod
    def delete(cls, collection: str, doc_id: str) -> "WriteOperation":
        return cls(kind=OperationKind.DELETE, collection=collection, doc_id=doc_id)


def _apply_increment(current: Any, delta: Decimal) -> Any:
    """Add delta to a stored number, keeping the stored representation."""
    base = Decimal(str(current)) if current is not None else Decimal("0")
    result = base + delta
    if isinstance(current, (int, float)) and not isinstance(current, bool):
        return int(result) if result == result.to_integral_value() else float(result)
    return str(result)


def apply_operations(
    collections: dict[str, dict[str, Document]],
    operations: list[WriteOperation],
) -> dict[str, dict[str, Document]]:
    """
    Apply a batch to a snapshot of collections and return the new state.

    The input is never modified, so a backend can apply a batch to a copy
    and swap it in only if every operation succeeded.

    Raises:
        NotFoundError: If an update targets a missing document
    """
    state = copy.deepcopy(collections)

    for op in operations:
        docs = state.setdefault(op.collection, {})

        if op.kind == OperationKind.SET:
            docs[op.doc_id] = copy.deepcopy(op.data or {})

        elif op.kind == OperationKind.UPDATE:
            if op.doc_id not in docs:
                raise NotFoundError(f"Cannot update missing document {op.path}")
            doc = docs[op.doc_id]
            for field, value in (op.data or {}).items():
                if isinstance(value, Increment):
                    doc[field] = _apply_increment(doc.get(field), value.delta)
                else:
                    doc[field] = copy.deepcopy(value)

        elif op.kind == OperationKind.DELETE:
            docs.pop(op.doc_id, None)

    return state


class DocumentStoreInterface(ABC):
    """
    Abstract interface for the document store.

    Any storage implementation (Google Sheets, in-memory, a hosted
    document database) must implement these methods.
    """

    max_batch_operations: int = 500

    @abstractmethod
    async def get_document(self, collection: str, doc_id: str) -> Optional[Document]:
        """
        Retrieve a document by id.

        Args:
            collection: Collection path
            doc_id: Document id within the collection

        Returns:
            The document if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_documents(self, collection: str) -> dict[str, Document]:
        """
        List every document of a collection.

        Args:
            collection: Collection path

        Returns:
            Mapping of doc_id to document, in no particular order
        """
        pass

    @abstractmethod
    async def commit(self, operations: list[WriteOperation]) -> None:
        """
        Apply a batch of writes atomically.

        Either every operation is applied or none is.

        Args:
            operations: Writes to apply, in order

        Raises:
            BatchTooLargeError: If the batch exceeds max_batch_operations
            NotFoundError: If an update targets a missing document
            StorageError: If the backend fails
        """
        pass
