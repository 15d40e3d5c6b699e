"""
OrderedItem - the unit the sync engine moves around.

The engine treats an item as an attribute bag plus three fields it owns:
- id: store identity, or a temporary identity (TEMP_PREFIX) pending commit
- order: position within its bucket (provisional while editing)
- active: soft-visibility flag
"""

import copy
import random
import string
import time
from dataclasses import dataclass, field
from typing import Any, Iterable


TEMP_PREFIX = "temp_"

# Newly inserted items sort after everything else until the next commit.
PROVISIONAL_ORDER = 9_999

# Sort position for documents whose order is missing or not numeric.
MISSING_ORDER = 999

_BASE36 = string.digits + string.ascii_lowercase


def make_temp_id() -> str:
    """Generate a temporary identity, e.g. temp_1718000000000_k3j9x0a."""
    suffix = "".join(random.choice(_BASE36) for _ in range(7))
    return f"{TEMP_PREFIX}{int(time.time() * 1000)}_{suffix}"


def is_temp_id(item_id: str) -> bool:
    return item_id.startswith(TEMP_PREFIX)


@dataclass
class OrderedItem:
    """
    One ordered element of a bucket.

    Instances held in a draft are the same objects handed to callers, so an
    id resolved at commit time is visible through every reference taken
    before the commit.
    """
    id: str
    order: int = PROVISIONAL_ORDER
    active: bool = True
    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def is_temporary(self) -> bool:
        return is_temp_id(self.id)

    def get(self, name: str, default: Any = None) -> Any:
        """Get a domain field value."""
        return self.fields.get(name, default)

    def copy(self) -> "OrderedItem":
        return OrderedItem(
            id=self.id,
            order=self.order,
            active=self.active,
            fields=copy.deepcopy(self.fields),
        )

    def to_dict(self) -> dict[str, Any]:
        return {**copy.deepcopy(self.fields), "id": self.id, "order": self.order, "active": self.active}


def copy_items(items: Iterable[OrderedItem]) -> list[OrderedItem]:
    """Deep copy a sequence of items."""
    return [item.copy() for item in items]


def dedupe_items(items: Iterable[OrderedItem]) -> list[OrderedItem]:
    """Drop items with an empty or repeated id, keeping the first occurrence."""
    seen: set[str] = set()
    out = []
    for item in items:
        if not item.id or item.id in seen:
            continue
        seen.add(item.id)
        out.append(item)
    return out
