"""
Firestore DocumentStore - IO boundary to Google Cloud Firestore.

Live queries use Query.on_snapshot. Firestore invokes snapshot callbacks on
its own watch thread, so when an event loop is supplied every callback is
handed to that loop with call_soon_threadsafe; bucket state is only ever
touched on the loop thread.

A live query whose watch stream ends on its own (permission denied, a
non-retryable stream error) is reported through on_error as a
SubscriptionError; the watch is polled for that every WATCH_POLL_INTERVAL.

Commits build one WriteBatch (at most MAX_BATCH_WRITES writes) and run the
blocking commit() in a worker thread.

Error classification:
- ServiceUnavailable, DeadlineExceeded, Aborted, TooManyRequests,
  ResourceExhausted, InternalServerError, RetryError -> TransientCommitError
- Other Google API errors -> PermanentCommitError
"""

import asyncio
import logging
import threading
from typing import Any, Optional

from google.api_core import exceptions as gexc
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from propsync.errors import (
    CommitError,
    PermanentCommitError,
    SubscriptionError,
    TransientCommitError,
)
from propsync.schemas import SERVER_TIMESTAMP, WriteKind, WriteOp
from propsync.store.base import Document, DocsCallback, ErrorCallback, Unsubscribe

logger = logging.getLogger(__name__)


# Firestore rejects batches with more writes than this
MAX_BATCH_WRITES = 500

# Seconds between checks that a live query is still running
WATCH_POLL_INTERVAL = 2.0

TRANSIENT_ERRORS = (
    gexc.ServiceUnavailable,
    gexc.DeadlineExceeded,
    gexc.Aborted,
    gexc.TooManyRequests,
    gexc.ResourceExhausted,
    gexc.InternalServerError,
    gexc.RetryError,
)


def classify_error(exc: BaseException, path: str = "") -> CommitError:
    """Wrap a store exception in the matching CommitError subclass."""
    message = f"Commit to {path} failed: {exc}" if path else str(exc)
    if isinstance(exc, TRANSIENT_ERRORS) or isinstance(exc, TimeoutError):
        return TransientCommitError(message)
    return PermanentCommitError(message)


def _to_firestore(data: dict[str, Any]) -> dict[str, Any]:
    out = {}
    for key, value in data.items():
        if value is SERVER_TIMESTAMP:
            out[key] = firestore.SERVER_TIMESTAMP
        elif isinstance(value, dict):
            out[key] = _to_firestore(value)
        else:
            out[key] = value
    return out


class _WatchMonitor:
    """
    Reports the end of a Firestore watch stream.

    Watch closes itself on a non-retryable stream error without calling the
    snapshot callback, so its public is_active flag is polled instead.
    """

    def __init__(self, watch, path: str, on_closed, loop=None, interval: float = WATCH_POLL_INTERVAL):
        self.watch = watch
        self.path = path
        self.on_closed = on_closed
        self.loop = loop
        self.interval = interval
        self.stopped = False
        self._handle = None

    def start(self) -> None:
        if self.stopped:
            return
        if self.loop is not None:
            self._handle = self.loop.call_later(self.interval, self.check)
        else:
            timer = threading.Timer(self.interval, self.check)
            timer.daemon = True
            timer.start()
            self._handle = timer

    def check(self) -> None:
        if self.stopped:
            return
        if self.watch.is_active:
            self.start()
            return
        self.stopped = True
        message = f"Live query on {self.path} was closed by the server"
        logger.debug(message)
        self.on_closed(SubscriptionError(message))

    def stop(self) -> None:
        self.stopped = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class FirestoreDocumentStore:
    """
    DocumentStore backed by a google.cloud.firestore.Client.

    Args:
        client: Existing Firestore client (created from project/database if None)
        loop: Event loop that receives snapshot callbacks
        project: GCP project id
        database: Firestore database id
    """

    def __init__(
        self,
        client: Optional[firestore.Client] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        project: Optional[str] = None,
        database: Optional[str] = None,
    ):
        if client is None:
            client = firestore.Client(project=project, database=database)
        self.client = client
        self.loop = loop

    def _dispatch(self, callback, arg) -> None:
        if self.loop is not None:
            self.loop.call_soon_threadsafe(callback, arg)
        else:
            callback(arg)

    def listen(
        self,
        path: str,
        order_by: str,
        on_docs: DocsCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        query = self.client.collection(path).order_by(order_by)

        def _on_snapshot(docs, changes, read_time):
            try:
                payload = [(doc.id, doc.to_dict() or {}) for doc in docs]
            except Exception as e:
                logger.warning(f"Unreadable snapshot for {path}: {e}")
                self._dispatch(on_error, e)
                return
            self._dispatch(on_docs, payload)

        try:
            watch = query.on_snapshot(_on_snapshot)
        except gexc.GoogleAPIError as e:
            logger.warning(f"Failed to listen on {path}: {e}")
            on_error(e)
            return lambda: None

        monitor = _WatchMonitor(watch, path, on_error, loop=self.loop)
        monitor.start()

        def unsubscribe() -> None:
            monitor.stop()
            watch.unsubscribe()

        return unsubscribe

    def new_id(self, path: str) -> str:
        return self.client.collection(path).document().id

    async def commit(self, path: str, ops: list[WriteOp]) -> None:
        if len(ops) > MAX_BATCH_WRITES:
            raise PermanentCommitError(
                f"Commit to {path} has {len(ops)} writes; "
                f"a Firestore batch allows at most {MAX_BATCH_WRITES}"
            )
        batch = self.client.batch()
        for op in ops:
            ref = self.client.collection(op.path).document(op.doc_id)
            if op.kind == WriteKind.DELETE:
                batch.delete(ref)
            elif op.kind == WriteKind.CREATE:
                batch.set(ref, _to_firestore(op.data))
            else:
                batch.set(ref, _to_firestore(op.data), merge=True)

        try:
            await asyncio.to_thread(batch.commit)
        except CommitError:
            raise
        except (gexc.GoogleAPIError, TimeoutError) as e:
            raise classify_error(e, path) from e

    async def fetch(self, path: str, field: str, value: Any) -> list[Document]:
        query = self.client.collection(path).where(filter=FieldFilter(field, "==", value))

        def _run() -> list[Document]:
            return [(doc.id, doc.to_dict() or {}) for doc in query.stream()]

        return await asyncio.to_thread(_run)
