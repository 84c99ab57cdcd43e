"""Task response serialization helpers with batched relation loading."""
from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from ..models import Task, User
from ..schemas import StageBrief, TaskActivityResponse, TaskResponse, UserBrief, WorkflowBrief


def build_task_response_context(db: Session, tasks: list[Task], *, include_activity: bool) -> dict:
    """Preload the users referenced by a page of tasks in one query."""
    user_ids: set[UUID] = set()
    for task in tasks:
        if task.created_by_id:
            user_ids.add(task.created_by_id)
        if include_activity:
            user_ids.update(entry.performed_by_id for entry in task.activity)

    users_by_id: dict[UUID, User] = {}
    if user_ids:
        users = db.query(User).filter(User.id.in_(user_ids)).all()
        users_by_id = {user.id: user for user in users}
    return {"users_by_id": users_by_id, "include_activity": include_activity}


def task_to_response_from_context(task: Task, context: dict) -> TaskResponse:
    users_by_id: dict[UUID, User] = context["users_by_id"]

    creator = users_by_id.get(task.created_by_id)
    activity = []
    if context["include_activity"]:
        for entry in task.activity:
            performer = users_by_id.get(entry.performed_by_id)
            activity.append(
                TaskActivityResponse(
                    id=entry.id,
                    seq=entry.seq,
                    action=entry.action,
                    performed_by=UserBrief.model_validate(performer) if performer else None,
                    timestamp=entry.timestamp,
                    details=entry.details,
                    previous_value=entry.previous_value,
                    new_value=entry.new_value,
                )
            )

    return TaskResponse(
        id=task.id,
        title=task.title,
        description=task.description,
        priority=task.priority,
        workflow=WorkflowBrief.model_validate(task.workflow),
        current_stage=StageBrief.model_validate(task.current_stage),
        assignees=[UserBrief.model_validate(user) for user in task.assignees],
        creator=UserBrief.model_validate(creator) if creator else None,
        due_date=task.due_date,
        completed_at=task.completed_at,
        is_overdue=task.is_overdue,
        version=task.version,
        activity=activity,
        created_at=task.created_at,
        updated_at=task.updated_at,
    )


def tasks_to_response(db: Session, tasks: list[Task], *, include_activity: bool = False) -> list[TaskResponse]:
    context = build_task_response_context(db, tasks, include_activity=include_activity)
    return [task_to_response_from_context(task, context) for task in tasks]


def task_to_response(db: Session, task: Task) -> TaskResponse:
    return tasks_to_response(db, [task], include_activity=True)[0]
