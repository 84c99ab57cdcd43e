"""Workflow use-cases: definition, stage list maintenance and transition checks."""
from __future__ import annotations

import logging
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from ..auth import check_permission
from ..domain_errors import (
    DomainError,
    DuplicateNameError,
    InvariantViolationError,
    NotFoundError,
    PermissionDeniedError,
)
from ..models import DEFAULT_STAGE_COLOR, Task, User, Workflow, WorkflowStage
from ..schemas import WorkflowCreate, WorkflowUpdate
from ..security import can_modify_workflow, can_view_workflow, require_permission
from ..services.stage_rules import (
    TransitionResult,
    find_stage,
    is_valid_color,
    next_stage,
    normalize_stages,
    previous_stage,
    validate_transition,
)
from ..timeutils import now_utc
from .task_common import get_workflow_or_404

logger = logging.getLogger(__name__)

WORKFLOW_NOT_FOUND_REASON = "Workflow not found"


def _ensure_name_available(db: Session, name: str, *, exclude_id: UUID | None = None) -> None:
    query = db.query(Workflow.id).filter(Workflow.name == name)
    if exclude_id is not None:
        query = query.filter(Workflow.id != exclude_id)
    if query.first() is not None:
        raise DuplicateNameError("Workflow with this name already exists", details={"name": name})


def _ensure_may_set_default(current_user: User, is_default: Optional[bool]) -> None:
    if is_default and not check_permission(current_user, "canModifyAnyWorkflow"):
        raise PermissionDeniedError("Only administrators can mark a workflow as default")


def _apply_stage_fields(stage: WorkflowStage, item: Any) -> WorkflowStage:
    color = item.color or DEFAULT_STAGE_COLOR
    if not is_valid_color(color):
        raise InvariantViolationError(f"Invalid hex color: {color}", code="INVALID_STAGE_COLOR")
    stage.name = item.name
    stage.description = item.description
    stage.order = item.order
    stage.color = color
    return stage


def _commit_workflow(db: Session, name: str) -> None:
    try:
        db.commit()
    except IntegrityError:
        # Lost a race on the unique name.
        db.rollback()
        raise DuplicateNameError("Workflow with this name already exists", details={"name": name})


def create_workflow_use_case(*, db: Session, data: WorkflowCreate, current_user: User) -> Workflow:
    """Create a workflow with its ordered stages."""
    require_permission(current_user, "canManageWorkflows", "Not authorized to create workflows")
    _ensure_may_set_default(current_user, data.is_default)

    if not data.stages:
        raise InvariantViolationError("At least one stage is required", code="WORKFLOW_HAS_NO_STAGES")
    _ensure_name_available(db, data.name)

    stages = normalize_stages([_apply_stage_fields(WorkflowStage(), item) for item in data.stages])
    workflow = Workflow(
        name=data.name,
        description=data.description,
        is_default=bool(data.is_default),
        created_by_id=current_user.id,
        stages=stages,
    )
    db.add(workflow)
    _commit_workflow(db, data.name)

    logger.info("workflow.created workflow=%s stages=%d by=%s", workflow.id, len(stages), current_user.id)
    return workflow


def _replace_stages(db: Session, workflow: Workflow, items: list[Any]) -> None:
    if not items:
        raise InvariantViolationError("At least one stage is required", code="WORKFLOW_HAS_NO_STAGES")

    existing = {str(stage.id): stage for stage in workflow.stages}
    kept_ids = {str(item.id) for item in items if item.id is not None}
    unknown = kept_ids - existing.keys()
    if unknown:
        raise NotFoundError(
            "Stage does not belong to this workflow",
            code="STAGE_NOT_FOUND",
            details={"stageIds": sorted(unknown)},
        )

    removed_ids = [stage.id for key, stage in existing.items() if key not in kept_ids]
    if removed_ids:
        in_use = db.query(Task.current_stage_id).filter(Task.current_stage_id.in_(removed_ids)).first()
        if in_use is not None:
            raise InvariantViolationError(
                "Cannot remove a stage that still has tasks",
                code="STAGE_IN_USE",
                http_status=409,
                details={"stageId": str(in_use[0])},
            )

    stages = []
    for item in items:
        stage = existing[str(item.id)] if item.id is not None else WorkflowStage()
        stages.append(_apply_stage_fields(stage, item))
    workflow.stages = normalize_stages(stages)


def update_workflow_use_case(
    *,
    db: Session,
    workflow_id: UUID,
    data: WorkflowUpdate,
    current_user: User,
) -> Workflow:
    """Apply a partial update; a supplied stage list replaces the current one."""
    workflow = get_workflow_or_404(db=db, workflow_id=workflow_id)
    if not can_modify_workflow(workflow, current_user):
        raise PermissionDeniedError("Not authorized to modify this workflow")

    fields = data.model_dump(exclude_unset=True)
    if fields.get("is_default") is not None and fields["is_default"] != workflow.is_default:
        _ensure_may_set_default(current_user, True)

    name = fields.get("name")
    if name and name != workflow.name:
        _ensure_name_available(db, name, exclude_id=workflow.id)

    try:
        if name:
            workflow.name = name
        if "description" in fields:
            workflow.description = data.description
        if fields.get("is_default") is not None:
            workflow.is_default = data.is_default
        if data.stages is not None:
            _replace_stages(db, workflow, data.stages)
    except DomainError:
        db.rollback()
        raise

    workflow.updated_at = now_utc()
    _commit_workflow(db, workflow.name)
    logger.info("workflow.updated workflow=%s fields=%s by=%s", workflow.id, sorted(fields), current_user.id)
    return workflow


def delete_workflow_use_case(*, db: Session, workflow_id: UUID, current_user: User) -> None:
    workflow = get_workflow_or_404(db=db, workflow_id=workflow_id)
    if not can_modify_workflow(workflow, current_user):
        raise PermissionDeniedError("Not authorized to delete this workflow")
    if workflow.is_default:
        raise InvariantViolationError("Cannot delete default workflow", code="DEFAULT_WORKFLOW_PROTECTED")

    if db.query(Task.id).filter(Task.workflow_id == workflow.id).first() is not None:
        raise InvariantViolationError(
            "Cannot delete a workflow that still has tasks",
            code="WORKFLOW_IN_USE",
            http_status=409,
        )

    db.delete(workflow)
    db.commit()
    logger.info("workflow.deleted workflow=%s by=%s", workflow_id, current_user.id)


def get_workflow_use_case(*, db: Session, workflow_id: UUID, current_user: User) -> Workflow:
    workflow = get_workflow_or_404(db=db, workflow_id=workflow_id)
    if not can_view_workflow(workflow, current_user):
        raise PermissionDeniedError("Access denied to this workflow")
    return workflow


def list_workflows_use_case(
    *,
    db: Session,
    current_user: User,
    search: Optional[str] = None,
    is_default: Optional[bool] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Workflow], int]:
    """Visible workflows, newest first: admins see all, others defaults plus their own."""
    query = db.query(Workflow)
    if not check_permission(current_user, "canViewAllWorkflows"):
        query = query.filter(
            (Workflow.is_default.is_(True)) | (Workflow.created_by_id == current_user.id)
        )
    if search:
        query = query.filter(Workflow.name.ilike(f"%{search}%"))
    if is_default is not None:
        query = query.filter(Workflow.is_default.is_(is_default))

    total = query.count()
    workflows = (
        query.options(selectinload(Workflow.stages), selectinload(Workflow.creator))
        .order_by(Workflow.created_at.desc(), Workflow.name)
        .offset(offset)
        .limit(limit)
        .all()
    )
    return workflows, total


def validate_transition_use_case(
    *,
    db: Session,
    workflow_id: UUID,
    from_stage_id: UUID,
    to_stage_id: UUID,
    current_user: User,
) -> TransitionResult:
    workflow = db.get(Workflow, workflow_id)
    if workflow is None:
        return TransitionResult(valid=False, reason=WORKFLOW_NOT_FOUND_REASON)
    if not can_view_workflow(workflow, current_user):
        raise PermissionDeniedError("Access denied to this workflow")
    return validate_transition(workflow, from_stage_id, to_stage_id)


def get_adjacent_stages(workflow: Workflow, stage_id: UUID) -> dict[str, Optional[WorkflowStage]]:
    """Previous and next stage around ``stage_id`` (None at either end)."""
    if find_stage(workflow.stages, stage_id) is None:
        raise NotFoundError("Stage does not belong to this workflow", code="STAGE_NOT_FOUND")
    return {
        "previous": previous_stage(workflow, stage_id),
        "next": next_stage(workflow, stage_id),
    }


def tasks_per_stage_use_case(*, db: Session, workflow_id: UUID, current_user: User) -> dict[str, Any]:
    """Task count of every stage of a workflow, in stage order; empty stages report 0."""
    workflow = get_workflow_use_case(db=db, workflow_id=workflow_id, current_user=current_user)

    query = db.query(Task.current_stage_id, func.count(Task.id)).filter(Task.workflow_id == workflow.id)
    if not check_permission(current_user, "canViewAllTasks"):
        query = query.filter(Task.assignees.any(User.id == current_user.id))
    counts = {str(stage_id): amount for stage_id, amount in query.group_by(Task.current_stage_id).all()}

    return {
        "workflow_id": workflow.id,
        "workflow_name": workflow.name,
        "stages": [
            {
                "stage_id": stage.id,
                "name": stage.name,
                "order": stage.order,
                "task_count": counts.get(str(stage.id), 0),
            }
            for stage in workflow.stages
        ],
    }
