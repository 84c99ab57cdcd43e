"""Append-only task activity log."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from ..models import ACTIVITY_ACTIONS, Task, TaskActivity
from ..timeutils import now_utc


def append_activity(
    task: Task,
    *,
    action: str,
    performed_by_id: UUID,
    details: str | None = None,
    previous_value: str | None = None,
    new_value: str | None = None,
    at: datetime | None = None,
) -> TaskActivity:
    """Append one entry and touch the task row so the version check applies."""
    if action not in ACTIVITY_ACTIONS:
        raise ValueError(f"Unknown activity action: {action}")

    ts = at or now_utc()
    next_seq = max((entry.seq for entry in task.activity), default=0) + 1
    entry = TaskActivity(
        seq=next_seq,
        action=action,
        performed_by_id=performed_by_id,
        timestamp=ts,
        details=details[:500] if details else details,
        previous_value=previous_value,
        new_value=new_value,
    )
    task.activity.append(entry)
    task.updated_at = ts
    return entry
