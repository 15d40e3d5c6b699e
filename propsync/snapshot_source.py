"""
RemoteSnapshotSource - one live subscription per bucket.

Every event delivers the full ordered list of OrderedItems for the bucket
(never a delta). Raw documents are decoded with defaults by the collection
layout; documents with a missing or non-numeric order sort last, keeping
their relative store order.

Errors are terminal: the subscription is closed, on_error is called once,
and nothing retries. The source never touches bucket state itself.
"""

import logging
from typing import Callable

from propsync.errors import InvariantViolation, SubscriptionError
from propsync.schemas import CollectionLayout, OrderedItem
from propsync.schemas.layouts import has_valid_order
from propsync.store.base import Document, DocumentStore, Unsubscribe

logger = logging.getLogger(__name__)


ORDER_FIELD = "order"

SnapshotCallback = Callable[[str, list[OrderedItem]], None]
SubscriptionErrorCallback = Callable[[str, SubscriptionError], None]


class RemoteSnapshotSource:
    """Live ordered queries for the buckets of one scope."""

    def __init__(self, store: DocumentStore, layout: CollectionLayout, scope: str):
        self.store = store
        self.layout = layout
        self.scope = scope
        self._subscriptions: dict[str, Unsubscribe] = {}

    def decode(self, docs: list[Document]) -> list[OrderedItem]:
        """Decode raw documents into an ordered item list."""
        def position(entry):
            index, (_, data) = entry
            data = data or {}
            if has_valid_order(data):
                return (False, data[ORDER_FIELD], index)
            return (True, 0, index)

        indexed = sorted(enumerate(docs), key=position)
        return [self.layout.decode(doc_id, data) for _, (doc_id, data) in indexed]

    def subscribe(
        self,
        key: str,
        on_snapshot: SnapshotCallback,
        on_error: SubscriptionErrorCallback,
    ) -> Unsubscribe:
        """
        Start the live query for one bucket.

        Args:
            key: Bucket key (must belong to the layout)
            on_snapshot: Called with (key, items) on every change
            on_error: Called once with (key, SubscriptionError) on failure

        Returns:
            Idempotent unsubscribe callable

        Raises:
            InvariantViolation: If key is unknown or already subscribed
        """
        if key not in self.layout.keys:
            raise InvariantViolation(f"Unknown bucket key for {self.layout.name}: {key}")
        if key in self._subscriptions:
            raise InvariantViolation(f"Bucket {key} already has a live subscription")

        path = self.layout.path(self.scope, key)
        state = {"closed": False}
        handle: dict[str, Unsubscribe] = {}

        def unsubscribe() -> None:
            if state["closed"]:
                return
            state["closed"] = True
            self._subscriptions.pop(key, None)
            stop = handle.get("stop")
            if stop is not None:
                stop()

        def _fail(error: BaseException) -> None:
            if state["closed"]:
                return
            if isinstance(error, SubscriptionError):
                wrapped = error
            else:
                wrapped = SubscriptionError(f"Subscription to {path} failed: {error}", key=key)
            logger.warning(f"Subscription for bucket {key} ended: {wrapped}")
            unsubscribe()
            on_error(key, wrapped)

        def _on_docs(docs: list[Document]) -> None:
            if state["closed"]:
                return
            try:
                items = self.decode(docs)
            except (TypeError, ValueError, AttributeError) as e:
                _fail(e)
                return
            on_snapshot(key, items)

        self._subscriptions[key] = unsubscribe
        handle["stop"] = self.store.listen(path, ORDER_FIELD, _on_docs, _fail)
        # listen() may have failed synchronously and already closed us
        if state["closed"]:
            stop = handle["stop"]
            stop()
        return unsubscribe

    def subscribe_all(
        self,
        on_snapshot: SnapshotCallback,
        on_error: SubscriptionErrorCallback,
    ) -> None:
        """Subscribe every key of the layout."""
        for key in self.layout.keys:
            self.subscribe(key, on_snapshot, on_error)

    @property
    def active_keys(self) -> list[str]:
        return list(self._subscriptions)

    def close(self) -> None:
        """Stop every live subscription."""
        for unsubscribe in list(self._subscriptions.values()):
            unsubscribe()
