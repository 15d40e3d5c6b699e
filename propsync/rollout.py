"""
Template rollout - turn one weekday's templates into today's tasks.

Rollout reads the confirmed templates of a scheduler bucket (the original,
never the unsaved draft, so temporary ids cannot leak into tasks), then:
1. flags every task currently marked for today, or dated today, as
   forToday=false, in batches of CLEAR_CHUNK writes
2. creates one task per active template in a single batch

The two steps are separate batches; a failure in step 2 leaves step 1
applied.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

from propsync.commit import submit_ops
from propsync.engine import SyncEngine
from propsync.errors import InvariantViolation, NotReadyError
from propsync.schemas import SCHEDULER, SERVER_TIMESTAMP, OrderedItem, WriteKind, WriteOp
from propsync.schemas.layouts import DEFAULT_PRIORITY, UNTITLED
from propsync.store.base import DocumentStore

logger = logging.getLogger(__name__)


# Firestore caps a batch at 500 writes
CLEAR_CHUNK = 450


@dataclass(frozen=True)
class RolloutResult:
    """Outcome of a rollout."""
    day: str
    date: str
    cleared: int
    created: int


def tasks_path(scope: str) -> str:
    return f"buildings/{scope}/tasks"


def build_task(
    template: OrderedItem,
    scope: str,
    day: str,
    date_str: str,
    actor: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Task document created from a scheduler template."""
    workers = template.get("assignedWorkerIds")
    workers = list(workers) if isinstance(workers, list) else []
    priority = template.get("defaultPriority")
    return {
        "buildingId": scope,
        "title": template.get("title") or UNTITLED,
        "description": template.get("description") or "",
        "priority": priority if priority is not None else DEFAULT_PRIORITY,
        "dayKey": day,
        "dateYYYYMMDD": date_str,
        "templateId": template.id,
        "assignedWorkers": workers,
        "status": "assigned" if workers else "pending",
        "order": template.order,
        "createdAt": SERVER_TIMESTAMP,
        "createdBy": dict(actor) if actor else None,
        "forToday": True,
        "roomNumber": template.get("roomNumber"),
    }


async def clear_today(store: DocumentStore, scope: str, date_str: str) -> int:
    """
    Mark every task for today as not for today.

    Returns:
        Number of tasks updated
    """
    path = tasks_path(scope)
    ids: set[str] = set()
    for doc_id, _ in await store.fetch(path, "forToday", True):
        ids.add(doc_id)
    for doc_id, _ in await store.fetch(path, "dateYYYYMMDD", date_str):
        ids.add(doc_id)

    ordered = sorted(ids)
    for start in range(0, len(ordered), CLEAR_CHUNK):
        chunk = ordered[start:start + CLEAR_CHUNK]
        ops = [WriteOp(WriteKind.UPSERT, path, doc_id, {"forToday": False}) for doc_id in chunk]
        await submit_ops(store, path, ops)
    return len(ordered)


async def rollout_day(engine: SyncEngine, day: str, today: Optional[date] = None) -> RolloutResult:
    """
    Roll out the confirmed templates of one weekday as today's tasks.

    Args:
        engine: Scheduler engine with an open scope
        day: Weekday bucket key
        today: Date to roll out for (defaults to date.today())

    Returns:
        RolloutResult with cleared/created counts

    Raises:
        InvariantViolation: If the engine is not a scheduler engine or day is unknown
        NotReadyError: If no scope is open or the day is still loading
        CommitError: If a batch fails
    """
    if engine.layout.name != SCHEDULER.name:
        raise InvariantViolation(f"Rollout needs a scheduler engine, got {engine.layout.name}")
    view = engine.get_bucket(day)
    if not engine.scope:
        raise NotReadyError("Select a building first")
    if view.loading:
        raise NotReadyError(f"Scheduler for {day} is still loading")

    scope = engine.scope
    store = engine.store
    date_str = (today or date.today()).strftime("%Y-%m-%d")

    cleared = await clear_today(store, scope, date_str)

    path = tasks_path(scope)
    ops = [
        WriteOp(WriteKind.CREATE, path, store.new_id(path), build_task(tpl, scope, day, date_str, engine.actor))
        for tpl in engine.confirmed_items(day)
        if tpl.active
    ]
    if ops:
        await submit_ops(store, path, ops)

    logger.info(f"Rollout {day} for {scope} on {date_str}: cleared {cleared}, created {len(ops)}")
    return RolloutResult(day=day, date=date_str, cleared=cleared, created=len(ops))
