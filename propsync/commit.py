"""
Commit Builder - Convert a bucket's draft into one atomic write batch.

Commits run in two phases:
1. build_commit_plan(): pure diff of draft against the retained original.
   No IO beyond asking the store for fresh document ids.
2. submit_ops(): the single side-effecting step, one all-or-nothing batch.

Diff rules:
- ids in original but not in draft -> delete
- temporary ids -> create at a freshly allocated store id
- store-backed ids -> upsert (merge), only when the encoded document or its
  position changed
- every draft item is renumbered to its index (order 0..n-1)

Temporary items that were removed before ever being committed never reach
the original, so they produce no write at all.

Error classification at the store boundary:
- CommitError subclasses propagate unchanged
- Builtin TimeoutError -> TransientCommitError
- Unknown exceptions -> PermanentCommitError
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from propsync.errors import (
    CommitError,
    InvariantViolation,
    PermanentCommitError,
    TransientCommitError,
)
from propsync.schemas import CollectionLayout, OrderedItem, WriteKind, WriteOp
from propsync.store.base import DocumentStore

logger = logging.getLogger(__name__)


@dataclass
class CommitPlan:
    """
    Everything one bucket commit will write, and what the bucket looks like after.

    Attributes:
        key: Bucket key
        path: Collection path of the bucket
        ops: Writes for the atomic batch (deletes first)
        committed: Post-commit items (resolved ids, order == index)
        resolved: Temporary id -> allocated store id
    """
    key: str
    path: str
    ops: list[WriteOp] = field(default_factory=list)
    committed: list[OrderedItem] = field(default_factory=list)
    resolved: dict[str, str] = field(default_factory=dict)

    def _of_kind(self, kind: WriteKind) -> list[WriteOp]:
        return [op for op in self.ops if op.kind == kind]

    @property
    def creates(self) -> list[WriteOp]:
        return self._of_kind(WriteKind.CREATE)

    @property
    def upserts(self) -> list[WriteOp]:
        return self._of_kind(WriteKind.UPSERT)

    @property
    def deletes(self) -> list[WriteOp]:
        return self._of_kind(WriteKind.DELETE)

    @property
    def is_empty(self) -> bool:
        return not self.ops

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "path": self.path,
            "ops": [op.to_dict() for op in self.ops],
            "resolved": dict(self.resolved),
        }

    def summary(self) -> str:
        return (
            f"{len(self.creates)} create(s), {len(self.upserts)} upsert(s), "
            f"{len(self.deletes)} delete(s)"
        )


def build_commit_plan(
    key: str,
    path: str,
    original: list[OrderedItem],
    draft: list[OrderedItem],
    layout: CollectionLayout,
    new_id: Callable[[str], str],
    scope: str,
    actor: Optional[dict[str, Any]] = None,
) -> CommitPlan:
    """
    Diff a draft against its original.

    Identity resolution is decided here, from the ids as they are now: an
    item that an earlier commit already resolved is an upsert, not a create.

    Args:
        key: Bucket key
        path: Collection path of the bucket
        original: Last state known to match the store
        draft: Current draft, in final order
        layout: Collection layout used to encode documents
        new_id: Allocates a store id for a collection path
        scope: Owning scope (building id)
        actor: Written as the creator of new documents, if the layout records it

    Returns:
        CommitPlan for the bucket

    Raises:
        InvariantViolation: If the draft holds a duplicate id
    """
    draft_ids = [item.id for item in draft]
    if len(draft_ids) != len(set(draft_ids)):
        raise InvariantViolation(f"Draft for bucket {key} holds duplicate ids")

    plan = CommitPlan(key=key, path=path)
    keep = set(draft_ids)
    for item in original:
        if item.id not in keep:
            plan.ops.append(WriteOp(WriteKind.DELETE, path, item.id))

    before = {item.id: item for item in original}
    for index, item in enumerate(draft):
        if item.is_temporary:
            doc_id = new_id(path)
            plan.resolved[item.id] = doc_id
            data = {**layout.encode(item, doc_id, index), **layout.create_fields(scope, actor)}
            plan.ops.append(WriteOp(WriteKind.CREATE, path, doc_id, data))
        else:
            doc_id = item.id
            data = layout.encode(item, doc_id, index)
            prior = before.get(doc_id)
            if prior is None or layout.encode(prior, doc_id, prior.order) != data:
                plan.ops.append(WriteOp(WriteKind.UPSERT, path, doc_id, data))

        done = item.copy()
        done.id = doc_id
        done.order = index
        plan.committed.append(done)

    return plan


async def submit_ops(
    store: DocumentStore,
    path: str,
    ops: list[WriteOp],
    key: Optional[str] = None,
) -> None:
    """
    Submit ops to the store as one atomic batch.

    Raises:
        TransientCommitError: Transient failure (safe to retry)
        PermanentCommitError: Permanent failure (do not retry)
    """
    try:
        await store.commit(path, ops)
    except CommitError as e:
        if e.key is None:
            e.key = key
        raise
    except TimeoutError as e:
        raise TransientCommitError(f"Commit to {path} timed out: {e}", key=key) from e
    except Exception as e:
        raise PermanentCommitError(f"Commit to {path} failed: {e}", key=key) from e


class BatchCommitter:
    """Builds and submits bucket commits for one scope."""

    def __init__(
        self,
        store: DocumentStore,
        layout: CollectionLayout,
        scope: str,
        actor: Optional[dict[str, Any]] = None,
    ):
        self.store = store
        self.layout = layout
        self.scope = scope
        self.actor = actor

    def plan(self, key: str, original: list[OrderedItem], draft: list[OrderedItem]) -> CommitPlan:
        return build_commit_plan(
            key=key,
            path=self.layout.path(self.scope, key),
            original=original,
            draft=draft,
            layout=self.layout,
            new_id=self.store.new_id,
            scope=self.scope,
            actor=self.actor,
        )

    async def submit(self, plan: CommitPlan) -> None:
        """Write the plan; an empty plan is not sent to the store."""
        if plan.is_empty:
            logger.debug(f"Nothing to write for bucket {plan.key}")
            return
        logger.info(f"Committing bucket {plan.key}: {plan.summary()}")
        try:
            await submit_ops(self.store, plan.path, plan.ops, key=plan.key)
        except CommitError as e:
            logger.warning(f"Commit for bucket {plan.key} failed: {e}")
            raise
