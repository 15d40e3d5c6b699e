"""
propsync.schemas - Entity model for the sync engine.

OrderedItem -> CollectionLayout -> WriteOp

- OrderedItem: one element of a bucket (id, order, active + opaque fields)
- CollectionLayout: bucket keys, collection paths, document decode/encode
- WriteOp: one document write inside an atomic bucket commit
"""

from .item import (
    OrderedItem,
    TEMP_PREFIX,
    PROVISIONAL_ORDER,
    MISSING_ORDER,
    make_temp_id,
    is_temp_id,
    copy_items,
    dedupe_items,
)
from .ops import (
    WriteKind,
    WriteOp,
    SERVER_TIMESTAMP,
)
from .layouts import (
    CollectionLayout,
    SchedulerLayout,
    SecurityChecklistLayout,
    SCHEDULER,
    SECURITY_CHECKLIST,
    DAYS,
    DAY_LABELS,
    CHECKLIST_KEY,
    get_layout,
    priority_from_flags,
)

__all__ = [
    # Items
    "OrderedItem",
    "TEMP_PREFIX",
    "PROVISIONAL_ORDER",
    "MISSING_ORDER",
    "make_temp_id",
    "is_temp_id",
    "copy_items",
    "dedupe_items",
    # Ops
    "WriteKind",
    "WriteOp",
    "SERVER_TIMESTAMP",
    # Layouts
    "CollectionLayout",
    "SchedulerLayout",
    "SecurityChecklistLayout",
    "SCHEDULER",
    "SECURITY_CHECKLIST",
    "DAYS",
    "DAY_LABELS",
    "CHECKLIST_KEY",
    "get_layout",
    "priority_from_flags",
]
