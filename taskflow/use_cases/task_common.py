"""Lookups and commit helpers shared by the task and workflow use-cases."""
from __future__ import annotations

from typing import Iterable
from uuid import UUID

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..domain_errors import ConcurrentModificationError, DomainError, NotFoundError
from ..models import Task, User, Workflow


def get_task_or_404(*, db: Session, task_id: UUID) -> Task:
    task = db.get(Task, task_id)
    if not task:
        raise NotFoundError("Task not found", code="TASK_NOT_FOUND")
    return task


def get_workflow_or_404(*, db: Session, workflow_id: UUID) -> Workflow:
    workflow = db.get(Workflow, workflow_id)
    if not workflow:
        raise NotFoundError("Workflow not found", code="WORKFLOW_NOT_FOUND")
    return workflow


def commit_task_changes(db: Session) -> None:
    """Commit, mapping a failed version check to ConcurrentModificationError."""
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise ConcurrentModificationError()


def load_active_users(*, db: Session, user_ids: Iterable[UUID]) -> list[User]:
    """Resolve user ids (duplicates collapsed, request order kept) to active users."""
    unique_ids = list(dict.fromkeys(user_ids))
    if not unique_ids:
        return []

    users = db.query(User).filter(User.id.in_(unique_ids), User.is_active.is_(True)).all()
    users_by_id = {user.id: user for user in users}
    missing = [str(user_id) for user_id in unique_ids if user_id not in users_by_id]
    if missing:
        raise DomainError(
            code="INVALID_ASSIGNEES",
            http_status=400,
            message="One or more assigned users not found",
            details={"userIds": missing},
        )
    return [users_by_id[user_id] for user_id in unique_ids]
