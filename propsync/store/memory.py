"""
In-memory DocumentStore with real storage semantics.

Used by tests and dry runs. Listeners are notified synchronously on every
write, mirroring the live-query behavior of the real store: each listener
gets the full ordered document list of its collection.

Test hooks:
- fail_next_commit(exc): the next commit raises exc and writes nothing
- fail_listen(path, exc): new listens on path fail immediately
- interrupt(path, exc): active listeners on path receive exc and stop
- commit_gate: when set to an asyncio.Event, commits wait for it
- commits: log of (path, ops) for every successful commit
"""

import asyncio
import copy
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from propsync.schemas import SERVER_TIMESTAMP, WriteKind, WriteOp
from propsync.store.base import Document, DocsCallback, ErrorCallback, Unsubscribe

logger = logging.getLogger(__name__)


@dataclass
class _Listener:
    order_by: str
    on_docs: DocsCallback
    on_error: ErrorCallback
    active: bool = True


def _sort_key(data: dict[str, Any], order_by: str):
    value = data.get(order_by)
    valid = isinstance(value, (int, float)) and not isinstance(value, bool)
    return (not valid, value if valid else 0)


def _resolve_timestamps(data: dict[str, Any], now: datetime) -> dict[str, Any]:
    out = {}
    for key, value in data.items():
        if value is SERVER_TIMESTAMP:
            out[key] = now
        elif isinstance(value, dict):
            out[key] = _resolve_timestamps(value, now)
        else:
            out[key] = copy.deepcopy(value)
    return out


class InMemoryDocumentStore:
    """
    In-memory document store.

    All data is lost when the instance is garbage collected.
    """

    def __init__(self):
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._listeners: dict[str, list[_Listener]] = {}
        self._commit_failures: list[BaseException] = []
        self._listen_failures: dict[str, BaseException] = {}
        self.commit_gate: Optional[asyncio.Event] = None
        self.commits: list[tuple[str, list[WriteOp]]] = []

    # -------------------------------------------------------------------------
    # DocumentStore protocol
    # -------------------------------------------------------------------------

    def listen(
        self,
        path: str,
        order_by: str,
        on_docs: DocsCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        failure = self._listen_failures.get(path)
        if failure is not None:
            on_error(failure)
            return lambda: None

        listener = _Listener(order_by=order_by, on_docs=on_docs, on_error=on_error)
        self._listeners.setdefault(path, []).append(listener)
        on_docs(self._ordered(path, order_by))

        def unsubscribe() -> None:
            listener.active = False
            listeners = self._listeners.get(path, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def new_id(self, path: str) -> str:
        return uuid.uuid4().hex[:20]

    async def commit(self, path: str, ops: list[WriteOp]) -> None:
        if self.commit_gate is not None:
            await self.commit_gate.wait()
        else:
            await asyncio.sleep(0)

        if self._commit_failures:
            raise self._commit_failures.pop(0)

        # Stage on a copy so a bad op leaves nothing half-written
        staged = copy.deepcopy(self._collections)
        now = datetime.now(timezone.utc)
        for op in ops:
            docs = staged.setdefault(op.path, {})
            if op.kind == WriteKind.DELETE:
                docs.pop(op.doc_id, None)
            elif op.kind == WriteKind.CREATE:
                if op.doc_id in docs:
                    raise ValueError(f"Document already exists: {op.path}/{op.doc_id}")
                docs[op.doc_id] = _resolve_timestamps(op.data, now)
            else:
                merged = docs.get(op.doc_id, {})
                merged.update(_resolve_timestamps(op.data, now))
                docs[op.doc_id] = merged

        self._collections = staged
        self.commits.append((path, list(ops)))
        logger.debug(f"Committed {len(ops)} op(s) to {path}")
        for touched in sorted({op.path for op in ops}):
            self._notify(touched)

    async def fetch(self, path: str, field: str, value: Any) -> list[Document]:
        await asyncio.sleep(0)
        docs = self._collections.get(path, {})
        return [
            (doc_id, copy.deepcopy(data))
            for doc_id, data in docs.items()
            if data.get(field) == value
        ]

    # -------------------------------------------------------------------------
    # Direct access (another actor writing to the store)
    # -------------------------------------------------------------------------

    def put(self, path: str, doc_id: str, data: dict[str, Any], merge: bool = False) -> None:
        """Write a document outside of any bucket commit and notify listeners."""
        docs = self._collections.setdefault(path, {})
        resolved = _resolve_timestamps(data, datetime.now(timezone.utc))
        if merge and doc_id in docs:
            docs[doc_id].update(resolved)
        else:
            docs[doc_id] = resolved
        self._notify(path)

    def delete(self, path: str, doc_id: str) -> None:
        """Delete a document outside of any bucket commit and notify listeners."""
        self._collections.get(path, {}).pop(doc_id, None)
        self._notify(path)

    def get(self, path: str, doc_id: str) -> Optional[dict[str, Any]]:
        data = self._collections.get(path, {}).get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    def documents(self, path: str) -> dict[str, dict[str, Any]]:
        return copy.deepcopy(self._collections.get(path, {}))

    def listener_count(self, path: Optional[str] = None) -> int:
        if path is not None:
            return len(self._listeners.get(path, []))
        return sum(len(v) for v in self._listeners.values())

    # -------------------------------------------------------------------------
    # Failure injection
    # -------------------------------------------------------------------------

    def fail_next_commit(self, exc: BaseException) -> None:
        self._commit_failures.append(exc)

    def fail_listen(self, path: str, exc: BaseException) -> None:
        self._listen_failures[path] = exc

    def interrupt(self, path: str, exc: BaseException) -> None:
        """Terminate every active listener on path with an error."""
        listeners = self._listeners.pop(path, [])
        for listener in listeners:
            listener.active = False
            listener.on_error(exc)

    def _ordered(self, path: str, order_by: str) -> list[Document]:
        docs = self._collections.get(path, {})
        ordered = sorted(docs.items(), key=lambda kv: _sort_key(kv[1], order_by))
        return [(doc_id, copy.deepcopy(data)) for doc_id, data in ordered]

    def _notify(self, path: str) -> None:
        for listener in list(self._listeners.get(path, [])):
            if listener.active:
                listener.on_docs(self._ordered(path, listener.order_by))
