"""Workflow endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from uuid import UUID
from typing import Optional
from ..database import get_db
from ..models import User
from ..schemas import (
    AdjacentStagesResponse, PaginatedResponse, PaginationResponse, StageResponse,
    TransitionValidateRequest, TransitionValidateResponse,
    WorkflowCreate, WorkflowResponse, WorkflowStageCountsResponse, WorkflowUpdate,
)
from ..auth import get_current_user, PermissionChecker
from ..use_cases.workflow_use_cases import (
    create_workflow_use_case,
    delete_workflow_use_case,
    get_adjacent_stages,
    get_workflow_use_case,
    list_workflows_use_case,
    tasks_per_stage_use_case,
    update_workflow_use_case,
    validate_transition_use_case,
)

router = APIRouter(prefix="/workflows", tags=["workflows"])


@router.get("", response_model=PaginatedResponse)
def get_workflows(
    search: Optional[str] = Query(None, max_length=100),
    is_default: Optional[bool] = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get workflows visible to the current user."""
    workflows, total = list_workflows_use_case(
        db=db,
        current_user=current_user,
        search=search,
        is_default=is_default,
        limit=limit,
        offset=offset,
    )
    return PaginatedResponse(
        data=[WorkflowResponse.model_validate(workflow) for workflow in workflows],
        pagination=PaginationResponse(total=total, limit=limit, offset=offset),
    )


@router.get("/{workflow_id}", response_model=WorkflowResponse)
def get_workflow(
    workflow_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    workflow = get_workflow_use_case(db=db, workflow_id=workflow_id, current_user=current_user)
    return WorkflowResponse.model_validate(workflow)


@router.post(
    "",
    response_model=WorkflowResponse,
    status_code=201,
    dependencies=[Depends(PermissionChecker("canManageWorkflows"))],
)
def create_workflow(
    data: WorkflowCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create workflow."""
    workflow = create_workflow_use_case(db=db, data=data, current_user=current_user)
    return WorkflowResponse.model_validate(workflow)


@router.patch(
    "/{workflow_id}",
    response_model=WorkflowResponse,
    dependencies=[Depends(PermissionChecker("canManageWorkflows"))],
)
def update_workflow(
    workflow_id: UUID,
    data: WorkflowUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Update workflow; a supplied stage list replaces the current stages."""
    workflow = update_workflow_use_case(db=db, workflow_id=workflow_id, data=data, current_user=current_user)
    return WorkflowResponse.model_validate(workflow)


@router.delete(
    "/{workflow_id}",
    status_code=204,
    dependencies=[Depends(PermissionChecker("canManageWorkflows"))],
)
def delete_workflow(
    workflow_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    delete_workflow_use_case(db=db, workflow_id=workflow_id, current_user=current_user)


@router.post("/{workflow_id}/validate-transition", response_model=TransitionValidateResponse)
def validate_stage_transition(
    workflow_id: UUID,
    data: TransitionValidateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Check whether a move between two stages would be accepted."""
    result = validate_transition_use_case(
        db=db,
        workflow_id=workflow_id,
        from_stage_id=data.from_stage_id,
        to_stage_id=data.to_stage_id,
        current_user=current_user,
    )
    return TransitionValidateResponse.model_validate(result)


@router.get("/{workflow_id}/stages/{stage_id}/adjacent", response_model=AdjacentStagesResponse)
def get_stage_neighbours(
    workflow_id: UUID,
    stage_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Previous and next stage around the given stage."""
    workflow = get_workflow_use_case(db=db, workflow_id=workflow_id, current_user=current_user)
    adjacent = get_adjacent_stages(workflow, stage_id)
    return AdjacentStagesResponse(
        previous=StageResponse.model_validate(adjacent["previous"]) if adjacent["previous"] else None,
        next=StageResponse.model_validate(adjacent["next"]) if adjacent["next"] else None,
    )


@router.get("/{workflow_id}/stage-counts", response_model=WorkflowStageCountsResponse)
def get_stage_counts(
    workflow_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Number of tasks currently in each stage of the workflow."""
    counts = tasks_per_stage_use_case(db=db, workflow_id=workflow_id, current_user=current_user)
    return WorkflowStageCountsResponse(**counts)
