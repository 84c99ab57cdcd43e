"""Stage-change use-case: moves a task through its workflow."""
from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from ..domain_errors import InvalidTransitionError, NotFoundError
from ..models import Task, User
from ..security import require_permission
from ..services.activity import append_activity
from ..services.automation import handle_task_completion, notify_stage_change
from ..services.notifications import dispatch_best_effort
from ..services.stage_rules import find_stage, validate_transition
from .task_common import commit_task_changes, get_task_or_404

logger = logging.getLogger(__name__)


def change_task_stage_use_case(
    *,
    db: Session,
    task_id: UUID,
    to_stage_id: UUID,
    current_user: User,
) -> Task:
    """Move a task to another stage of its workflow.

    The move is committed on its own. Completion detection and the
    stage-change notifications run afterwards and never fail the call.
    """
    task = get_task_or_404(db=db, task_id=task_id)
    workflow = task.workflow
    if workflow is None:
        raise NotFoundError("Workflow not found", code="WORKFLOW_NOT_FOUND")

    require_permission(current_user, "canModifyTasks", "Not authorized to modify this task")

    to_stage = find_stage(workflow.stages, to_stage_id)
    if to_stage is None:
        raise InvalidTransitionError(
            "Invalid stage for this workflow",
            code="INVALID_STAGE",
            details={"stageId": str(to_stage_id)},
        )

    # Idempotent: already in the requested stage.
    if to_stage.id == task.current_stage_id:
        return task

    result = validate_transition(workflow, task.current_stage_id, to_stage.id)
    if not result.valid:
        raise InvalidTransitionError(
            result.reason or "Invalid stage transition",
            details={"fromStageId": str(task.current_stage_id), "toStageId": str(to_stage.id)},
        )

    from_stage = find_stage(workflow.stages, task.current_stage_id)
    old_name = from_stage.name if from_stage else "Unknown"

    task.current_stage = to_stage
    append_activity(
        task,
        action="stage_changed",
        performed_by_id=current_user.id,
        details=f'Stage changed from "{old_name}" to "{to_stage.name}"',
        previous_value=old_name,
        new_value=to_stage.name,
    )
    commit_task_changes(db)
    logger.info(
        "task.stage_changed task=%s from=%s to=%s by=%s",
        task.id,
        old_name,
        to_stage.name,
        current_user.id,
    )

    dispatch_best_effort(db, "handle_task_completion", handle_task_completion, db, task.id, current_user.id)
    dispatch_best_effort(
        db,
        "notify_stage_change",
        notify_stage_change,
        db,
        task,
        old_name,
        to_stage.name,
        current_user.id,
    )
    return task
