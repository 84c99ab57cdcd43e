"""Task automation: completion detection and scheduled due-date sweeps.

``handle_task_completion`` runs after every committed stage change and is
safe to call any number of times: a task is stamped complete at most once.
The sweeps are driven by Celery beat (see ``celery_app``) and suppress
repeats within their window, so re-running them is harmless too.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from ..config import settings
from ..models import Notification, Task, WorkflowStage
from ..timeutils import as_utc, now_utc, start_of_day
from .activity import append_activity
from .notifications import (
    dispatch_best_effort,
    notify,
    task_assigned_event,
    task_completed_event,
    task_due_soon_event,
    task_overdue_event,
    task_stage_changed_event,
)
from .stage_rules import find_stage

logger = logging.getLogger(__name__)

AUTO_COMPLETED_DETAILS = "Task automatically completed when moved to final stage"


def handle_task_completion(
    db: Session,
    task_id: UUID,
    acting_user_id: UUID,
    *,
    at: datetime | None = None,
) -> bool:
    """Stamp ``completed_at`` if the task sits in its workflow's final stage.

    Returns True only when this call stamped the task.
    """
    task = db.get(Task, task_id)
    if task is None:
        return False

    stage = find_stage(task.workflow.stages, task.current_stage_id)
    if stage is None or not stage.is_final or task.completed_at is not None:
        return False

    ts = at or now_utc()
    task.completed_at = ts
    append_activity(
        task,
        action="completed",
        performed_by_id=acting_user_id,
        details=AUTO_COMPLETED_DETAILS,
        at=ts,
    )
    db.commit()
    logger.info("task.completed task=%s stage=%s by=%s", task.id, stage.name, acting_user_id)

    dispatch_best_effort(db, "notify_task_completion", notify_task_completion, db, task, acting_user_id)
    return True


def notify_task_completion(db: Session, task: Task, completed_by_id: UUID) -> list[Notification]:
    return notify(db, task.assignee_ids, task_completed_event(task, completed_by_id=completed_by_id))


def notify_task_assignment(
    db: Session,
    task: Task,
    user_ids: Iterable[UUID],
    assigned_by_id: UUID,
) -> list[Notification]:
    return notify(db, list(user_ids), task_assigned_event(task, assigned_by_id=assigned_by_id))


def notify_stage_change(
    db: Session,
    task: Task,
    old_stage: str,
    new_stage: str,
    changed_by_id: UUID,
) -> list[Notification]:
    event = task_stage_changed_event(
        task,
        old_stage=old_stage,
        new_stage=new_stage,
        changed_by_id=changed_by_id,
    )
    return notify(db, task.assignee_ids, event)


def _already_notified(db: Session, *, task_id: UUID, notification_type: str, since: datetime) -> bool:
    return db.query(Notification.id).filter(
        Notification.task_id == task_id,
        Notification.type == notification_type,
        Notification.created_at >= since,
    ).first() is not None


def _open_tasks_due(db: Session, *, start: datetime | None, end: datetime, inclusive_end: bool):
    query = db.query(Task).options(selectinload(Task.assignees)).filter(
        Task.due_date.is_not(None),
        Task.completed_at.is_(None),
    )
    if start is not None:
        query = query.filter(Task.due_date >= start)
    query = query.filter(Task.due_date <= end if inclusive_end else Task.due_date < end)
    return query.order_by(Task.due_date).all()


def sweep_overdue_tasks(db: Session, *, now: datetime | None = None) -> dict[str, Any]:
    """Notify assignees of overdue open tasks, at most once per task per UTC day."""
    ts = as_utc(now) if now else now_utc()
    day_start = start_of_day(ts)
    results = {"checked": 0, "notified_tasks": 0, "notifications_created": 0}

    for task in _open_tasks_due(db, start=None, end=ts, inclusive_end=False):
        results["checked"] += 1
        if _already_notified(db, task_id=task.id, notification_type="task_overdue", since=day_start):
            continue
        event = task_overdue_event(task, due_date=as_utc(task.due_date), now=ts)
        created = notify(db, task.assignee_ids, event, at=ts, commit=False)
        if created:
            results["notified_tasks"] += 1
            results["notifications_created"] += len(created)

    db.commit()
    logger.info("sweep.overdue %s", results)
    return results


def sweep_due_soon_tasks(
    db: Session,
    *,
    now: datetime | None = None,
    window_hours: int | None = None,
) -> dict[str, Any]:
    """Notify assignees of open tasks due within the window, once per window."""
    ts = as_utc(now) if now else now_utc()
    hours = window_hours or settings.DUE_SOON_WINDOW_HOURS
    window = timedelta(hours=hours)
    results = {"checked": 0, "notified_tasks": 0, "notifications_created": 0}

    for task in _open_tasks_due(db, start=ts, end=ts + window, inclusive_end=True):
        results["checked"] += 1
        if _already_notified(db, task_id=task.id, notification_type="task_due_soon", since=ts - window):
            continue
        event = task_due_soon_event(task, due_date=as_utc(task.due_date), window_hours=hours)
        created = notify(db, task.assignee_ids, event, at=ts, commit=False)
        if created:
            results["notified_tasks"] += 1
            results["notifications_created"] += len(created)

    db.commit()
    logger.info("sweep.due_soon %s", results)
    return results


def reconcile_completions(db: Session) -> dict[str, int]:
    """Stamp tasks left in a final stage without ``completed_at``."""
    candidates = (
        db.query(Task.id, Task.created_by_id)
        .join(WorkflowStage, Task.current_stage_id == WorkflowStage.id)
        .filter(WorkflowStage.is_final.is_(True), Task.completed_at.is_(None))
        .all()
    )
    stamped = 0
    for task_id, created_by_id in candidates:
        if handle_task_completion(db, task_id, created_by_id):
            stamped += 1
    logger.info("reconcile.completions candidates=%d stamped=%d", len(candidates), stamped)
    return {"candidates": len(candidates), "stamped": stamped}
