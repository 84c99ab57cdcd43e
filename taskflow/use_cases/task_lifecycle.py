"""Task lifecycle use-cases: create, edit, assignment, deletion and queries."""
from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, selectinload

from ..auth import check_permission
from ..domain_errors import DomainError, InvariantViolationError, PermissionDeniedError
from ..models import PRIORITIES, Notification, Task, User, WorkflowStage
from ..schemas import TaskCreate, TaskUpdate
from ..security import can_delete_task, can_view_task, can_view_workflow, require_permission
from ..services.activity import append_activity
from ..services.automation import notify_task_assignment
from ..services.notifications import dispatch_best_effort
from ..services.stage_rules import initial_stage
from ..timeutils import as_utc, now_utc
from .task_common import commit_task_changes, get_task_or_404, get_workflow_or_404, load_active_users

logger = logging.getLogger(__name__)

MODIFY_DENIED = "Not authorized to modify this task"


def _isoformat(value) -> Optional[str]:
    return as_utc(value).isoformat() if value is not None else None


def create_task_use_case(*, db: Session, data: TaskCreate, current_user: User) -> Task:
    """Create a task in the initial stage of its workflow."""
    require_permission(current_user, "canCreateTasks", "Not authorized to create tasks")

    workflow = get_workflow_or_404(db=db, workflow_id=data.workflow_id)
    if not can_view_workflow(workflow, current_user):
        raise PermissionDeniedError("Access denied to this workflow")

    stage = initial_stage(workflow)
    if stage is None:
        raise InvariantViolationError("Workflow has no stages", code="WORKFLOW_HAS_NO_STAGES")

    assignees = load_active_users(db=db, user_ids=data.assignee_ids)

    ts = now_utc()
    task = Task(
        title=data.title,
        description=data.description,
        priority=data.priority,
        workflow=workflow,
        current_stage=stage,
        created_by_id=current_user.id,
        due_date=data.due_date,
        created_at=ts,
        updated_at=ts,
    )
    task.assignees = assignees
    append_activity(
        task,
        action="created",
        performed_by_id=current_user.id,
        details=f"Task created in stage: {stage.name}",
        at=ts,
    )
    db.add(task)
    db.commit()
    logger.info("task.created task=%s workflow=%s stage=%s by=%s", task.id, workflow.id, stage.name, current_user.id)

    if assignees:
        dispatch_best_effort(
            db,
            "notify_task_assignment",
            notify_task_assignment,
            db,
            task,
            [user.id for user in assignees],
            current_user.id,
        )
    return task


def update_task_use_case(*, db: Session, task_id: UUID, data: TaskUpdate, current_user: User) -> Task:
    """Edit title, description, priority or due date; one activity entry per changed field."""
    task = get_task_or_404(db=db, task_id=task_id)
    require_permission(current_user, "canModifyTasks", MODIFY_DENIED)

    fields = data.model_dump(exclude_unset=True)
    ts = now_utc()
    changes: list[str] = []

    if data.title and data.title != task.title:
        append_activity(
            task,
            action="updated",
            performed_by_id=current_user.id,
            details="Title updated",
            previous_value=task.title,
            new_value=data.title,
            at=ts,
        )
        task.title = data.title
        changes.append("title")

    if "description" in fields and data.description != task.description:
        append_activity(task, action="updated", performed_by_id=current_user.id, details="Description updated", at=ts)
        task.description = data.description
        changes.append("description")

    if data.priority and data.priority != task.priority:
        append_activity(
            task,
            action="priority_changed",
            performed_by_id=current_user.id,
            details="Priority changed",
            previous_value=task.priority,
            new_value=data.priority,
            at=ts,
        )
        task.priority = data.priority
        changes.append("priority")

    if "due_date" in fields and _isoformat(data.due_date) != _isoformat(task.due_date):
        append_activity(
            task,
            action="due_date_changed",
            performed_by_id=current_user.id,
            details="Due date changed",
            previous_value=_isoformat(task.due_date),
            new_value=_isoformat(data.due_date),
            at=ts,
        )
        task.due_date = data.due_date
        changes.append("due_date")

    if not changes:
        raise DomainError(code="NO_CHANGES", http_status=400, message="No changes provided")

    commit_task_changes(db)
    logger.info("task.updated task=%s fields=%s by=%s", task.id, changes, current_user.id)
    return task


def assign_users_use_case(*, db: Session, task_id: UUID, user_ids: list[UUID], current_user: User) -> Task:
    """Add assignees; users already on the task are skipped and not re-notified."""
    task = get_task_or_404(db=db, task_id=task_id)
    require_permission(current_user, "canModifyTasks", MODIFY_DENIED)

    users = load_active_users(db=db, user_ids=user_ids)
    current_ids = set(task.assignee_ids)
    new_users = [user for user in users if user.id not in current_ids]

    # Idempotent: nothing new to assign.
    if not new_users:
        return task

    task.assignees.extend(new_users)
    append_activity(
        task,
        action="assigned",
        performed_by_id=current_user.id,
        details=f"{len(new_users)} user(s) assigned to task",
        new_value=",".join(str(user.id) for user in new_users),
    )
    commit_task_changes(db)
    logger.info("task.assigned task=%s users=%d by=%s", task.id, len(new_users), current_user.id)

    dispatch_best_effort(
        db,
        "notify_task_assignment",
        notify_task_assignment,
        db,
        task,
        [user.id for user in new_users],
        current_user.id,
    )
    return task


def unassign_user_use_case(*, db: Session, task_id: UUID, user_id: UUID, current_user: User) -> Task:
    task = get_task_or_404(db=db, task_id=task_id)
    require_permission(current_user, "canModifyTasks", MODIFY_DENIED)

    user = next((assignee for assignee in task.assignees if assignee.id == user_id), None)
    if user is None:
        raise DomainError(
            code="USER_NOT_ASSIGNED",
            http_status=400,
            message="User not assigned to this task",
        )

    task.assignees.remove(user)
    append_activity(
        task,
        action="unassigned",
        performed_by_id=current_user.id,
        details="User unassigned from task",
        previous_value=str(user.id),
    )
    commit_task_changes(db)
    logger.info("task.unassigned task=%s user=%s by=%s", task.id, user.id, current_user.id)
    return task


def delete_task_use_case(*, db: Session, task_id: UUID, current_user: User) -> None:
    task = get_task_or_404(db=db, task_id=task_id)
    if not can_delete_task(task, current_user):
        raise PermissionDeniedError("Not authorized to delete this task")

    # Notifications outlive the task; detach them the way ON DELETE SET NULL would.
    db.query(Notification).filter(Notification.task_id == task.id).update(
        {Notification.task_id: None},
        synchronize_session=False,
    )
    db.delete(task)
    commit_task_changes(db)
    logger.info("task.deleted task=%s by=%s", task_id, current_user.id)


def get_task_use_case(*, db: Session, task_id: UUID, current_user: User) -> Task:
    task = get_task_or_404(db=db, task_id=task_id)
    if not can_view_task(task, current_user):
        raise PermissionDeniedError("Access denied to this task")
    return task


def list_tasks_use_case(
    *,
    db: Session,
    current_user: User,
    workflow_id: Optional[UUID] = None,
    stage_id: Optional[UUID] = None,
    assignee_id: Optional[UUID] = None,
    priority: Optional[str] = None,
    overdue: Optional[bool] = None,
    search: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Task], int]:
    """Filtered task page, newest first; members only see tasks assigned to them."""
    query = db.query(Task)

    if not check_permission(current_user, "canViewAllTasks"):
        query = query.filter(Task.assignees.any(User.id == current_user.id))
    if workflow_id:
        query = query.filter(Task.workflow_id == workflow_id)
    if stage_id:
        query = query.filter(Task.current_stage_id == stage_id)
    if assignee_id:
        query = query.filter(Task.assignees.any(User.id == assignee_id))
    if priority:
        query = query.filter(Task.priority == priority)
    if overdue:
        query = query.filter(Task.due_date < now_utc(), Task.completed_at.is_(None))
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Task.title.ilike(pattern), Task.description.ilike(pattern)))

    total = query.count()
    tasks = (
        query.options(
            selectinload(Task.workflow),
            selectinload(Task.current_stage),
            selectinload(Task.assignees),
        )
        .order_by(Task.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return tasks, total


def _stats_conditions(
    current_user: User,
    *,
    workflow_id: Optional[UUID],
    assignee_id: Optional[UUID],
    created_by_id: Optional[UUID],
) -> list:
    conditions = []
    if not check_permission(current_user, "canViewAllTasks"):
        conditions.append(Task.assignees.any(User.id == current_user.id))
    if workflow_id:
        conditions.append(Task.workflow_id == workflow_id)
    if assignee_id:
        conditions.append(Task.assignees.any(User.id == assignee_id))
    if created_by_id:
        conditions.append(Task.created_by_id == created_by_id)
    return conditions


def task_stats_use_case(
    *,
    db: Session,
    current_user: User,
    workflow_id: Optional[UUID] = None,
    assignee_id: Optional[UUID] = None,
    created_by_id: Optional[UUID] = None,
) -> dict:
    """Task totals by priority and stage, plus overdue and completed counts.

    Members are limited to the tasks assigned to them, as in ``list_tasks_use_case``.
    """
    conditions = _stats_conditions(
        current_user,
        workflow_id=workflow_id,
        assignee_id=assignee_id,
        created_by_id=created_by_id,
    )

    def count(*extra) -> int:
        return db.query(func.count(Task.id)).filter(*conditions, *extra).scalar() or 0

    by_priority = dict.fromkeys(PRIORITIES, 0)
    rows = db.query(Task.priority, func.count(Task.id)).filter(*conditions).group_by(Task.priority).all()
    for priority, amount in rows:
        by_priority[priority] = amount

    stage_rows = (
        db.query(
            WorkflowStage.id,
            WorkflowStage.name,
            WorkflowStage.order,
            WorkflowStage.workflow_id,
            func.count(Task.id),
        )
        .join(Task, Task.current_stage_id == WorkflowStage.id)
        .filter(*conditions)
        .group_by(WorkflowStage.id, WorkflowStage.name, WorkflowStage.order, WorkflowStage.workflow_id)
        .order_by(WorkflowStage.workflow_id, WorkflowStage.order)
        .all()
    )

    return {
        "total": count(),
        "completed": count(Task.completed_at.is_not(None)),
        "overdue": count(Task.due_date < now_utc(), Task.completed_at.is_(None)),
        "by_priority": by_priority,
        "by_stage": [
            {"stage_id": stage_id, "name": name, "order": order, "workflow_id": stage_workflow_id, "task_count": amount}
            for stage_id, name, order, stage_workflow_id, amount in stage_rows
        ],
    }
