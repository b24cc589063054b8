"""
Batch Size Handling

Hosted document stores cap the number of writes in one atomic batch.
Writes that must be atomic go through commit_atomic(), which refuses
oversize batches up front. Writes that may be split (deleting a long
schedule) go through commit_in_chunks(), which commits sequential
batches and stops at the first failure.
"""

import structlog

from money_manager.services.storage.interface import (
    BatchTooLargeError,
    DocumentStoreInterface,
    WriteOperation,
)

logger = structlog.get_logger(__name__)


def chunk_operations(operations: list[WriteOperation], limit: int) -> list[list[WriteOperation]]:
    """Split operations into consecutive chunks of at most `limit`, order kept."""
    if limit < 1:
        raise ValueError("Batch limit must be at least 1")
    return [operations[i:i + limit] for i in range(0, len(operations), limit)]


async def commit_atomic(
    store: DocumentStoreInterface,
    operations: list[WriteOperation],
    limit: int,
) -> None:
    """
    Commit operations as one atomic batch.

    Raises:
        BatchTooLargeError: If the batch exceeds `limit`; nothing is written
    """
    if len(operations) > limit:
        raise BatchTooLargeError(len(operations), limit)
    if not operations:
        return
    await store.commit(operations)


async def commit_in_chunks(
    store: DocumentStoreInterface,
    operations: list[WriteOperation],
    limit: int,
) -> int:
    """
    Commit operations in sequential batches of at most `limit`.

    Each chunk is atomic on its own; across chunks this is best effort.
    A failure stops the sequence and propagates, leaving earlier chunks
    applied. Callers put the operations that must happen last (e.g.
    deleting the parent document) at the end.

    Returns:
        Number of batches committed
    """
    chunks = chunk_operations(operations, limit)
    for index, chunk in enumerate(chunks, start=1):
        logger.debug("committing_chunk", chunk=index, of=len(chunks), operations=len(chunk))
        await store.commit(chunk)
    return len(chunks)
