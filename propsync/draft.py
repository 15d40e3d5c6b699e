"""
DraftStore - the in-memory working copy of every bucket.

Each bucket holds:
- draft: the user-editable ordered items
- original: the last state known to match the remote store exactly
- dirty: whether draft diverges from original
- loading: true until the first snapshot (or error) arrives
- saving: a commit is in flight
- error: the subscription error that ended live updates, if any

Snapshots only replace draft/original while the bucket is clean. A dirty
bucket keeps its draft until the caller commits or discards; snapshots that
arrive in the meantime are dropped, not queued.

All methods are synchronous and must run on the event loop thread.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Union

from propsync.errors import InvariantViolation, SubscriptionError
from propsync.schemas import (
    PROVISIONAL_ORDER,
    OrderedItem,
    copy_items,
    dedupe_items,
    make_temp_id,
)

logger = logging.getLogger(__name__)


@dataclass
class Bucket:
    """Mutable per-key state. Owned by one DraftStore."""
    key: str
    draft: list[OrderedItem] = field(default_factory=list)
    original: list[OrderedItem] = field(default_factory=list)
    dirty: bool = False
    loading: bool = True
    saving: bool = False
    error: Optional[SubscriptionError] = None
    # bumped on every local edit; lets a commit detect edits made while in flight
    revision: int = 0


@dataclass(frozen=True)
class BucketView:
    """Read-only view of a bucket for the presentation layer."""
    key: str
    items: tuple[OrderedItem, ...]
    dirty: bool
    loading: bool
    saving: bool
    error: Optional[SubscriptionError] = None


class DraftStore:
    """Per-bucket drafts, originals and dirty flags for a fixed key set."""

    def __init__(self, keys: Iterable[str], loading: bool = True):
        self._buckets: dict[str, Bucket] = {}
        self.reset(keys, loading=loading)

    def reset(self, keys: Iterable[str], loading: bool = True) -> None:
        """Drop all state and start fresh buckets (scope change)."""
        self._buckets = {key: Bucket(key=key, loading=loading) for key in keys}

    def bucket(self, key: str) -> Bucket:
        try:
            return self._buckets[key]
        except KeyError:
            raise InvariantViolation(f"Unknown bucket key: {key}") from None

    @property
    def keys(self) -> list[str]:
        return list(self._buckets)

    # -------------------------------------------------------------------------
    # Remote side
    # -------------------------------------------------------------------------

    def apply_snapshot(self, key: str, items: list[OrderedItem]) -> bool:
        """
        Accept a remote snapshot unless the bucket has unsaved edits.

        Returns:
            True if draft and original were replaced, False if dropped
        """
        b = self.bucket(key)
        b.loading = False
        if b.dirty:
            logger.debug(f"Dropped snapshot for dirty bucket {key} ({len(items)} items)")
            return False

        clean = dedupe_items(items)
        if len(clean) != len(items):
            logger.warning(f"Snapshot for bucket {key} had {len(items) - len(clean)} duplicate id(s)")
        b.draft = copy_items(clean)
        b.original = copy_items(clean)
        b.error = None
        return True

    def mark_error(self, key: str, error: SubscriptionError) -> None:
        """Record a terminal subscription error; draft and original are kept."""
        b = self.bucket(key)
        b.loading = False
        b.error = error

    # -------------------------------------------------------------------------
    # Local edits
    # -------------------------------------------------------------------------

    def _touch(self, b: Bucket) -> None:
        b.dirty = True
        b.revision += 1

    def reorder(self, key: str, items: Iterable[Union[OrderedItem, str]]) -> None:
        """
        Replace the draft order.

        Args:
            key: Bucket key
            items: The same items (or their ids) in the new order

        Raises:
            InvariantViolation: If the id set differs from the draft's
        """
        b = self.bucket(key)
        ids = [item.id if isinstance(item, OrderedItem) else item for item in items]
        by_id = {item.id: item for item in b.draft}
        if len(ids) != len(set(ids)) or set(ids) != set(by_id):
            raise InvariantViolation(
                f"Reorder of bucket {key} must keep the same items: "
                f"got {sorted(ids)}, have {sorted(by_id)}"
            )
        b.draft = [by_id[item_id] for item_id in ids]
        self._touch(b)

    def insert(
        self,
        key: str,
        item: Union[OrderedItem, Mapping[str, Any], None] = None,
        **fields: Any,
    ) -> OrderedItem:
        """
        Append an item to the draft.

        Items without a store-backed id get a fresh temporary id. The item
        is placed after every existing item with a provisional order.

        Args:
            key: Bucket key
            item: An OrderedItem, or a mapping of domain fields
            **fields: Extra domain fields

        Returns:
            The item now held in the draft

        Raises:
            InvariantViolation: If the item's id is already in the draft
        """
        b = self.bucket(key)
        if isinstance(item, OrderedItem):
            # the caller's object may live in another draft
            new = item.copy()
            new.fields.update(fields)
        else:
            data = dict(item or {})
            data.update(fields)
            data.pop("order", None)
            new = OrderedItem(
                id=data.pop("id", None) or "",
                active=data.pop("active", True) is not False,
                fields=data,
            )

        if new.id and any(existing.id == new.id for existing in b.draft):
            raise InvariantViolation(f"Item {new.id} is already in bucket {key}")
        if not new.id or new.is_temporary:
            new.id = make_temp_id()

        new.order = max([PROVISIONAL_ORDER - 1] + [existing.order for existing in b.draft]) + 1
        b.draft.append(new)
        self._touch(b)
        return new

    def remove(self, key: str, item_id: str) -> OrderedItem:
        """
        Delete an item from the draft.

        Raises:
            InvariantViolation: If the id is not in the draft
        """
        b = self.bucket(key)
        for index, item in enumerate(b.draft):
            if item.id == item_id:
                del b.draft[index]
                self._touch(b)
                return item
        raise InvariantViolation(f"Item {item_id} is not in bucket {key}")

    def clear(self, key: str) -> None:
        """Empty the draft."""
        b = self.bucket(key)
        b.draft = []
        self._touch(b)

    def discard(self, key: str) -> bool:
        """
        Restore the draft from the original and clear dirty.

        Returns:
            True if there was anything to discard

        Raises:
            InvariantViolation: If a commit for the bucket is in flight
        """
        b = self.bucket(key)
        if b.saving:
            raise InvariantViolation(f"Cannot discard bucket {key} while it is saving")
        if not b.dirty:
            return False
        b.draft = copy_items(b.original)
        b.dirty = False
        return True

    # -------------------------------------------------------------------------
    # Commit folding
    # -------------------------------------------------------------------------

    def fold_commit(
        self,
        key: str,
        committed: list[OrderedItem],
        live: list[OrderedItem],
        started_revision: int,
    ) -> None:
        """
        Make a successful commit the new original.

        Args:
            key: Bucket key
            committed: Committed state (resolved ids, order 0..n-1)
            live: The draft item objects the commit was built from, same order
            started_revision: Bucket revision when the commit started
        """
        b = self.bucket(key)
        for obj, done in zip(live, committed):
            obj.id = done.id
            obj.order = done.order
        b.original = copy_items(committed)
        if b.revision == started_revision:
            b.dirty = False
        else:
            logger.info(f"Bucket {key} was edited during commit; it stays dirty")

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def is_dirty(self, key: str) -> bool:
        return self.bucket(key).dirty

    def dirty_keys(self) -> list[str]:
        return [key for key, b in self._buckets.items() if b.dirty]

    def view(self, key: str) -> BucketView:
        b = self.bucket(key)
        return BucketView(
            key=key,
            items=tuple(dedupe_items(b.draft)),
            dirty=b.dirty,
            loading=b.loading,
            saving=b.saving,
            error=b.error,
        )
