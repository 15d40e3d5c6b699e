"""
Collection layouts - where a bucket lives and what its documents look like.

A layout maps (scope, bucket key) to a collection path and converts raw
documents to OrderedItems and back. Decoding never fails: every field the
editors read gets an explicit default.

Layouts:
- SCHEDULER: one bucket per weekday of task templates
- SECURITY_CHECKLIST: a single bucket of checklist places
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from .item import MISSING_ORDER, OrderedItem
from .ops import SERVER_TIMESTAMP


DAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")
DAY_LABELS = {
    "mon": "Mon",
    "tue": "Tue",
    "wed": "Wed",
    "thu": "Thu",
    "fri": "Fri",
    "sat": "Sat",
    "sun": "Sun",
}

CHECKLIST_KEY = "checklist"

UNTITLED = "Untitled"
DEFAULT_PRIORITY = 3


def priority_from_flags(urgent: bool, important: bool) -> int:
    """
    Map Eisenhower flags to a template priority.

    Returns:
        1 urgent and important, 2 important, 3 urgent, 4 neither
    """
    if urgent and important:
        return 1
    if important:
        return 2
    if urgent:
        return 3
    return 4


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def has_valid_order(data: dict[str, Any]) -> bool:
    return _is_number(data.get("order"))


def _text(value: Any, default: str) -> str:
    return value if isinstance(value, str) else default


def _title(value: Any) -> str:
    if isinstance(value, str) and value.strip():
        return value
    return UNTITLED


class CollectionLayout(ABC):
    """Mapping between a bucket and its remote collection."""

    name: str = ""
    keys: tuple[str, ...] = ()

    @abstractmethod
    def path(self, scope: str, key: str) -> str:
        """Collection path holding the documents of one bucket."""
        pass

    @abstractmethod
    def decode_fields(self, data: dict[str, Any]) -> dict[str, Any]:
        """Domain fields of a raw document, with defaults applied."""
        pass

    @abstractmethod
    def encode_fields(self, item: OrderedItem) -> dict[str, Any]:
        """Normalized domain fields written on commit."""
        pass

    def create_fields(self, scope: str, actor: Optional[dict[str, Any]]) -> dict[str, Any]:
        """Extra fields written only when a document is first created."""
        return {"createdAt": SERVER_TIMESTAMP}

    def decode(self, doc_id: str, data: Optional[dict[str, Any]]) -> OrderedItem:
        data = data or {}
        order = data.get("order")
        return OrderedItem(
            id=doc_id,
            order=int(order) if _is_number(order) else MISSING_ORDER,
            active=data.get("active") is not False,
            fields=self.decode_fields(data),
        )

    def encode(self, item: OrderedItem, doc_id: str, order: int) -> dict[str, Any]:
        return {
            **self.encode_fields(item),
            "id": doc_id,
            "order": order,
            "active": item.active is not False,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name}, keys={len(self.keys)})"


class SchedulerLayout(CollectionLayout):
    """Per-weekday task templates of a building."""

    name = "scheduler"
    keys = DAYS

    def path(self, scope: str, key: str) -> str:
        return f"buildings/{scope}/scheduler/{key}/items"

    def decode_fields(self, data: dict[str, Any]) -> dict[str, Any]:
        priority = data.get("defaultPriority")
        workers = data.get("assignedWorkerIds")
        room = data.get("roomNumber")
        return {
            "title": _title(data.get("title")),
            "description": _text(data.get("description"), ""),
            "defaultPriority": priority if _is_number(priority) else DEFAULT_PRIORITY,
            "roleNeeded": data.get("roleNeeded"),
            "assignedWorkerIds": list(workers) if isinstance(workers, list) else [],
            "roomNumber": room if isinstance(room, str) else None,
            # create audit, carried through untouched
            "createdBy": data.get("createdBy"),
            "createdAt": data.get("createdAt"),
        }

    def encode_fields(self, item: OrderedItem) -> dict[str, Any]:
        priority = item.get("defaultPriority")
        workers = item.get("assignedWorkerIds")
        room = item.get("roomNumber")
        return {
            "title": _title(item.get("title")),
            "description": _text(item.get("description"), ""),
            "defaultPriority": priority if _is_number(priority) else DEFAULT_PRIORITY,
            "roleNeeded": item.get("roleNeeded"),
            "assignedWorkerIds": list(workers) if isinstance(workers, list) else [],
            "roomNumber": room.strip() if isinstance(room, str) and room.strip() else None,
        }

    def create_fields(self, scope: str, actor: Optional[dict[str, Any]]) -> dict[str, Any]:
        return {"createdBy": dict(actor) if actor else None, "createdAt": SERVER_TIMESTAMP}


class SecurityChecklistLayout(CollectionLayout):
    """The single security checklist of a building."""

    name = "security_checklist"
    keys = (CHECKLIST_KEY,)

    def path(self, scope: str, key: str) -> str:
        return f"buildings/{scope}/security_checklist_scheduler"

    def decode_fields(self, data: dict[str, Any]) -> dict[str, Any]:
        return {
            "place": _title(data.get("place")),
            "description": _text(data.get("description"), ""),
        }

    def encode_fields(self, item: OrderedItem) -> dict[str, Any]:
        return {
            "place": _title(item.get("place")),
            "description": _text(item.get("description"), ""),
        }

    def create_fields(self, scope: str, actor: Optional[dict[str, Any]]) -> dict[str, Any]:
        return {"buildingId": scope, "createdAt": SERVER_TIMESTAMP}


SCHEDULER = SchedulerLayout()
SECURITY_CHECKLIST = SecurityChecklistLayout()

LAYOUTS = {
    SCHEDULER.name: SCHEDULER,
    SECURITY_CHECKLIST.name: SECURITY_CHECKLIST,
}


def get_layout(name: str) -> CollectionLayout:
    """Look up a layout by name."""
    try:
        return LAYOUTS[name]
    except KeyError:
        raise KeyError(f"Unknown layout: {name}. Available: {sorted(LAYOUTS)}") from None
