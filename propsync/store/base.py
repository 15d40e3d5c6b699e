"""
DocumentStore interface for the sync engine.

This module defines the protocol any remote document store must implement,
so the engine stays decoupled from the actual backend.

Implementations:
- InMemoryDocumentStore: For tests and dry runs
- FirestoreDocumentStore: Google Cloud Firestore
"""

from typing import Any, Callable, Protocol, runtime_checkable

from propsync.schemas import WriteOp


# (doc_id, data) as delivered by listen() and fetch()
Document = tuple[str, dict[str, Any]]

DocsCallback = Callable[[list[Document]], None]
ErrorCallback = Callable[[BaseException], None]
Unsubscribe = Callable[[], None]


@runtime_checkable
class DocumentStore(Protocol):
    """
    Protocol for the remote store behind a set of buckets.

    This interface abstracts the three capabilities the engine consumes:
    1. Live ordered queries (one per bucket)
    2. Identity allocation before a write
    3. Atomic multi-document writes scoped to one bucket
    """

    def listen(
        self,
        path: str,
        order_by: str,
        on_docs: DocsCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        """
        Start a live query on a collection.

        Args:
            path: Collection path
            order_by: Field to order documents by (ascending)
            on_docs: Called with the full ordered document list on every change
            on_error: Called once if the query fails; no further events follow

        Returns:
            Callable that stops the subscription (idempotent)
        """
        ...

    def new_id(self, path: str) -> str:
        """
        Allocate a fresh store-unique document identity.

        Args:
            path: Collection path the document will live in

        Returns:
            Document id (no write is performed)
        """
        ...

    async def commit(self, path: str, ops: list[WriteOp]) -> None:
        """
        Apply all ops as one all-or-nothing batch.

        Args:
            path: Collection path of the bucket being committed
            ops: Writes to apply

        Raises:
            Exception: If the batch fails; nothing was written
        """
        ...

    async def fetch(self, path: str, field: str, value: Any) -> list[Document]:
        """
        One-shot equality query.

        Args:
            path: Collection path
            field: Field to filter on
            value: Value the field must equal

        Returns:
            Matching documents
        """
        ...
