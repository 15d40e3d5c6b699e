"""
Document store module for propsync.

The store is the single boundary where propsync talks to the remote
database. The Firestore implementation lives in propsync.store.firestore
and is imported explicitly so the engine can run against the in-memory
store without Google credentials.
"""

from propsync.store.base import (
    Document,
    DocumentStore,
    Unsubscribe,
)
from propsync.store.memory import InMemoryDocumentStore

__all__ = [
    "Document",
    "DocumentStore",
    "Unsubscribe",
    "InMemoryDocumentStore",
]
