"""
SyncEngine - draft/commit synchronization for one scope.

The engine owns the buckets of one collection layout for one scope (a
building). It subscribes every bucket to the remote store, applies
snapshots to clean buckets only, and exposes the edit/save/discard surface
to the presentation layer.

Flow:
    RemoteSnapshotSource -> (if not dirty) DraftStore <- reorder/insert/remove
    save(key)    -> BatchCommitter diff + atomic write -> original := committed
    discard(key) -> draft := original

Concurrency: everything except save() is synchronous and runs on the event
loop thread. save() awaits the remote write; the bucket is marked saving for
the duration, and a second save or a discard on that bucket is rejected.
Changing scope (open/close) unsubscribes everything; a save that completes
after the scope changed does not fold into the new scope's buckets.
"""

import asyncio
import logging
from typing import Any, Iterable, Mapping, Optional, Union

from propsync.commit import BatchCommitter, CommitPlan
from propsync.draft import BucketView, DraftStore
from propsync.errors import InvariantViolation, NotReadyError, SubscriptionError
from propsync.schemas import CollectionLayout, OrderedItem, copy_items
from propsync.snapshot_source import RemoteSnapshotSource
from propsync.store.base import DocumentStore

logger = logging.getLogger(__name__)


class SyncEngine:
    """
    Draft/commit engine for the buckets of one layout.

    Args:
        store: Remote document store
        layout: Collection layout (bucket keys, paths, document codec)
        scope: Owning scope (building id); None starts with no scope
        actor: Recorded as the creator of new documents
    """

    def __init__(
        self,
        store: DocumentStore,
        layout: CollectionLayout,
        scope: Optional[str] = None,
        actor: Optional[dict[str, Any]] = None,
    ):
        self.store = store
        self.layout = layout
        self.actor = actor
        self.scope: Optional[str] = None
        self.drafts = DraftStore(layout.keys, loading=False)
        self._source: Optional[RemoteSnapshotSource] = None
        self._committer: Optional[BatchCommitter] = None
        self._epoch = 0
        self._background: set[asyncio.Task] = set()
        if scope:
            self.open(scope)

    # -------------------------------------------------------------------------
    # Scope lifecycle
    # -------------------------------------------------------------------------

    def open(self, scope: Optional[str]) -> None:
        """
        Switch to a scope: tear down all subscriptions, reset every bucket
        and subscribe again.
        """
        self.close()
        self.scope = scope or None
        self.drafts.reset(self.layout.keys, loading=bool(self.scope))
        if not self.scope:
            return

        logger.info(f"Opening {self.layout.name} buckets for scope {self.scope}")
        epoch = self._epoch
        self._committer = BatchCommitter(self.store, self.layout, self.scope, self.actor)
        self._source = RemoteSnapshotSource(self.store, self.layout, self.scope)
        self._source.subscribe_all(
            lambda key, items: self._on_snapshot(epoch, key, items),
            lambda key, error: self._on_error(epoch, key, error),
        )

    def close(self) -> None:
        """Stop all live subscriptions. Bucket state is kept until the next open()."""
        self._epoch += 1
        if self._source is not None:
            self._source.close()
            self._source = None
        self._committer = None

    def _on_snapshot(self, epoch: int, key: str, items: list[OrderedItem]) -> None:
        if epoch != self._epoch:
            return
        self.drafts.apply_snapshot(key, items)

    def _on_error(self, epoch: int, key: str, error: SubscriptionError) -> None:
        if epoch != self._epoch:
            return
        self.drafts.mark_error(key, error)

    async def wait_until_loaded(self, timeout: Optional[float] = None, poll: float = 0.05) -> None:
        """
        Wait until no bucket is loading.

        Raises:
            asyncio.TimeoutError: If timeout elapses first
        """
        async def _poll():
            while any(self.drafts.bucket(key).loading for key in self.drafts.keys):
                await asyncio.sleep(poll)

        await asyncio.wait_for(_poll(), timeout)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_bucket(self, key: str) -> BucketView:
        return self.drafts.view(key)

    def confirmed_items(self, key: str) -> list[OrderedItem]:
        """Copy of the last state known to match the store."""
        return copy_items(self.drafts.bucket(key).original)

    def dirty_keys(self) -> list[str]:
        return self.drafts.dirty_keys()

    @property
    def has_dirty(self) -> bool:
        return bool(self.drafts.dirty_keys())

    # -------------------------------------------------------------------------
    # Edits
    # -------------------------------------------------------------------------

    def reorder(self, key: str, items: Iterable[Union[OrderedItem, str]]) -> None:
        self.drafts.reorder(key, items)

    def insert(
        self,
        key: str,
        item: Union[OrderedItem, Mapping[str, Any], None] = None,
        **fields: Any,
    ) -> OrderedItem:
        return self.drafts.insert(key, item, **fields)

    def remove(self, key: str, item_id: str) -> OrderedItem:
        return self.drafts.remove(key, item_id)

    def clear(self, key: str) -> None:
        self.drafts.clear(key)

    def discard(self, key: str) -> bool:
        return self.drafts.discard(key)

    def discard_all(self) -> list[str]:
        """Discard every dirty bucket. Nothing changes if any of them is saving."""
        keys = self.drafts.dirty_keys()
        busy = [key for key in keys if self.drafts.bucket(key).saving]
        if busy:
            raise InvariantViolation(f"Cannot discard while saving: {busy}")
        for key in keys:
            self.drafts.discard(key)
        return keys

    # -------------------------------------------------------------------------
    # Commits
    # -------------------------------------------------------------------------

    async def save(self, key: str) -> Optional[CommitPlan]:
        """
        Commit one bucket atomically.

        Returns:
            The submitted CommitPlan, or None if the bucket was clean

        Raises:
            InvariantViolation: Unknown key, or a save for the bucket is in flight
            NotReadyError: No scope is open
            CommitError: The write failed; the bucket stays dirty and its
                draft is untouched
        """
        b = self.drafts.bucket(key)
        if b.saving:
            raise InvariantViolation(f"Bucket {key} is already saving")
        if not b.dirty:
            return None
        if self._committer is None:
            raise NotReadyError(f"Cannot save bucket {key}: no scope is open")

        epoch = self._epoch
        started = b.revision
        live = list(b.draft)
        committer = self._committer
        b.saving = True
        try:
            plan = committer.plan(key, b.original, live)
            await committer.submit(plan)
        finally:
            b.saving = False

        if epoch != self._epoch:
            logger.info(f"Scope changed while bucket {key} was saving; result not folded")
            return plan
        self.drafts.fold_commit(key, plan.committed, live, started)
        return plan

    async def save_all(self) -> dict[str, BaseException]:
        """
        Commit every dirty bucket, each in its own atomic batch.

        Returns:
            Failures by bucket key (empty when everything saved)
        """
        keys = self.drafts.dirty_keys()
        results = await asyncio.gather(*(self.save(key) for key in keys), return_exceptions=True)
        return {
            key: result
            for key, result in zip(keys, results)
            if isinstance(result, BaseException)
        }

    def save_in_background(self, key: str) -> asyncio.Task:
        """Fire-and-forget save; failures are logged, never left unhandled."""
        task = asyncio.get_running_loop().create_task(self.save(key))
        self._background.add(task)
        task.add_done_callback(self._background_done)
        return task

    def _background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background save failed: {exc}")
