"""Notification fan-out: one row per recipient for a triggering event."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from ..config import settings
from ..models import NOTIFICATION_TYPES, Notification
from ..timeutils import now_utc

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class NotificationEvent:
    type: str
    title: str
    message: str
    task_id: UUID | None = None
    workflow_id: UUID | None = None
    triggered_by_id: UUID | None = None
    metadata: dict[str, Any] | None = None


def notify(
    db: Session,
    recipients: Iterable[UUID],
    event: NotificationEvent,
    *,
    at: datetime | None = None,
    commit: bool = True,
) -> list[Notification]:
    """Create one notification per recipient.

    Recipients are not de-duplicated here; callers pass the exact set.
    """
    if event.type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {event.type}")

    ts = at or now_utc()
    rows = [
        Notification(
            recipient_id=recipient_id,
            type=event.type,
            title=event.title[:200],
            message=event.message[:1000],
            task_id=event.task_id,
            workflow_id=event.workflow_id,
            triggered_by_id=event.triggered_by_id,
            is_read=False,
            meta_data=event.metadata,
            created_at=ts,
            updated_at=ts,
        )
        for recipient_id in recipients
    ]
    if not rows:
        return []

    db.add_all(rows)
    if commit:
        db.commit()
    logger.info(
        "notification.fanout type=%s task=%s recipients=%d",
        event.type,
        event.task_id,
        len(rows),
    )
    return rows


def dispatch_best_effort(db: Session, label: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T | None:
    """Run a post-commit side effect; failures are logged and never raised."""
    try:
        return fn(*args, **kwargs)
    except Exception:
        db.rollback()
        logger.exception("automation.failed step=%s", label)
        return None


def task_assigned_event(task, *, assigned_by_id: UUID) -> NotificationEvent:
    return NotificationEvent(
        type="task_assigned",
        title="New Task Assigned",
        message=f'You have been assigned to task: "{task.title}"',
        task_id=task.id,
        workflow_id=task.workflow_id,
        triggered_by_id=assigned_by_id,
    )


def task_completed_event(task, *, completed_by_id: UUID) -> NotificationEvent:
    return NotificationEvent(
        type="task_completed",
        title="Task Completed",
        message=f'Task "{task.title}" has been completed',
        task_id=task.id,
        workflow_id=task.workflow_id,
        triggered_by_id=completed_by_id,
    )


def task_stage_changed_event(task, *, old_stage: str, new_stage: str, changed_by_id: UUID) -> NotificationEvent:
    return NotificationEvent(
        type="task_stage_changed",
        title="Task Stage Changed",
        message=f'Task "{task.title}" moved from "{old_stage}" to "{new_stage}"',
        task_id=task.id,
        workflow_id=task.workflow_id,
        triggered_by_id=changed_by_id,
        metadata={"oldStage": old_stage, "newStage": new_stage},
    )


def task_overdue_event(task, *, due_date: datetime, now: datetime) -> NotificationEvent:
    days_overdue = (now - due_date) // timedelta(days=1)
    return NotificationEvent(
        type="task_overdue",
        title="Task Overdue",
        message=f'Task "{task.title}" is overdue',
        task_id=task.id,
        workflow_id=task.workflow_id,
        metadata={"dueDate": due_date.isoformat(), "daysOverdue": days_overdue},
    )


def task_due_soon_event(task, *, due_date: datetime, window_hours: int) -> NotificationEvent:
    return NotificationEvent(
        type="task_due_soon",
        title="Task Due Soon",
        message=f'Task "{task.title}" is due within {window_hours} hours',
        task_id=task.id,
        workflow_id=task.workflow_id,
        metadata={"dueDate": due_date.isoformat()},
    )


def purge_expired_notifications(
    db: Session,
    *,
    now: datetime | None = None,
    retention_days: int | None = None,
) -> int:
    """Delete notifications older than the retention window; returns the count."""
    days = retention_days or settings.NOTIFICATION_RETENTION_DAYS
    cutoff = (now or now_utc()) - timedelta(days=days)
    deleted = (
        db.query(Notification)
        .filter(Notification.created_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.info("notification.purge cutoff=%s deleted=%d", cutoff.isoformat(), deleted)
    return deleted
