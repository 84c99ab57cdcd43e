"""Task endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from uuid import UUID
from typing import Optional
from ..database import get_db
from ..models import User
from ..schemas import (
    AssignUsersRequest, PaginatedResponse, PaginationResponse, StageChangeRequest,
    TaskCreate, TaskResponse, TaskStatsResponse, TaskUpdate,
)
from ..auth import get_current_user, PermissionChecker
from ..services.task_response_builder import task_to_response, tasks_to_response
from ..use_cases.task_lifecycle import (
    assign_users_use_case,
    create_task_use_case,
    delete_task_use_case,
    get_task_use_case,
    list_tasks_use_case,
    task_stats_use_case,
    unassign_user_use_case,
    update_task_use_case,
)
from ..use_cases.task_transitions import change_task_stage_use_case

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.get("", response_model=PaginatedResponse)
def get_tasks(
    workflow_id: Optional[UUID] = None,
    stage_id: Optional[UUID] = None,
    assignee_id: Optional[UUID] = None,
    priority: Optional[str] = Query(None, pattern="^(low|medium|high)$"),
    overdue: Optional[bool] = None,
    search: Optional[str] = Query(None, max_length=200),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get tasks with filters."""
    tasks, total = list_tasks_use_case(
        db=db,
        current_user=current_user,
        workflow_id=workflow_id,
        stage_id=stage_id,
        assignee_id=assignee_id,
        priority=priority,
        overdue=overdue,
        search=search,
        limit=limit,
        offset=offset,
    )
    return PaginatedResponse(
        data=tasks_to_response(db, tasks),
        pagination=PaginationResponse(total=total, limit=limit, offset=offset),
    )


@router.get("/stats", response_model=TaskStatsResponse)
def get_task_stats(
    workflow_id: Optional[UUID] = None,
    assignee_id: Optional[UUID] = None,
    created_by_id: Optional[UUID] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Task counts by priority and stage; members only count their own tasks."""
    stats = task_stats_use_case(
        db=db,
        current_user=current_user,
        workflow_id=workflow_id,
        assignee_id=assignee_id,
        created_by_id=created_by_id,
    )
    return TaskStatsResponse(**stats)


@router.get("/{task_id}", response_model=TaskResponse)
def get_task(
    task_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get task by ID, including its activity log."""
    task = get_task_use_case(db=db, task_id=task_id, current_user=current_user)
    return task_to_response(db, task)


@router.post(
    "",
    response_model=TaskResponse,
    status_code=201,
    dependencies=[Depends(PermissionChecker("canCreateTasks"))],
)
def create_task(
    data: TaskCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create task in the initial stage of its workflow."""
    task = create_task_use_case(db=db, data=data, current_user=current_user)
    return task_to_response(db, task)


@router.patch("/{task_id}", response_model=TaskResponse)
def update_task(
    task_id: UUID,
    data: TaskUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Update task fields."""
    task = update_task_use_case(db=db, task_id=task_id, data=data, current_user=current_user)
    return task_to_response(db, task)


@router.post("/{task_id}/stage", response_model=TaskResponse)
def change_stage(
    task_id: UUID,
    data: StageChangeRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Move task to another stage."""
    task = change_task_stage_use_case(
        db=db,
        task_id=task_id,
        to_stage_id=data.stage_id,
        current_user=current_user,
    )
    return task_to_response(db, task)


@router.post("/{task_id}/assign", response_model=TaskResponse)
def assign_users(
    task_id: UUID,
    data: AssignUsersRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Assign users to task."""
    task = assign_users_use_case(db=db, task_id=task_id, user_ids=data.user_ids, current_user=current_user)
    return task_to_response(db, task)


@router.delete("/{task_id}/assignees/{user_id}", response_model=TaskResponse)
def unassign_user(
    task_id: UUID,
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Remove an assignee from task."""
    task = unassign_user_use_case(db=db, task_id=task_id, user_id=user_id, current_user=current_user)
    return task_to_response(db, task)


@router.delete("/{task_id}", status_code=204)
def delete_task(
    task_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Delete task."""
    delete_task_use_case(db=db, task_id=task_id, current_user=current_user)
