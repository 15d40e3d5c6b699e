"""
Write operation taxonomy for bucket commits.

A commit is a list of WriteOps submitted to the document store as one
all-or-nothing batch:
- create: write a new document at a freshly allocated identity
- upsert: merge fields into an existing document (absent fields untouched)
- delete: remove a document
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class WriteKind(str, Enum):
    """Kinds of document writes."""
    CREATE = "create"
    UPSERT = "upsert"
    DELETE = "delete"


class _ServerTimestamp:
    """Placeholder resolved to the commit time by the store."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"

    def __deepcopy__(self, memo):
        return self


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class WriteOp:
    """A single document write addressed by collection path and doc id."""
    kind: WriteKind
    path: str
    doc_id: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        d: dict = {
            "kind": self.kind.value,
            "path": self.path,
            "doc_id": self.doc_id,
        }
        if self.kind != WriteKind.DELETE:
            d["data"] = copy.deepcopy(self.data)
        return d
