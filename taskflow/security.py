"""Security helpers (RBAC and object-level access checks)."""

from __future__ import annotations

from typing import Any

from .auth import check_permission
from .domain_errors import PermissionDeniedError
from .models import Task, Workflow


def require_permission(user: Any, permission: str, message: str | None = None) -> None:
    """Enforce a role permission inside a use case."""
    if not check_permission(user, permission):
        raise PermissionDeniedError(
            message or f"Permission denied: {permission} required",
            details={"permission": permission},
        )


def _is_same_user(user_id: Any, user: Any) -> bool:
    return user_id is not None and str(user_id) == str(user.id)


def is_task_assigned_to_user(task: Task, user: Any) -> bool:
    return any(_is_same_user(assignee_id, user) for assignee_id in task.assignee_ids)


def can_view_task(task: Task, user: Any) -> bool:
    """Members only see tasks assigned to them; other roles see every task."""
    if check_permission(user, "canViewAllTasks"):
        return True
    return is_task_assigned_to_user(task, user)


def can_delete_task(task: Task, user: Any) -> bool:
    return check_permission(user, "canDeleteAnyTask") or _is_same_user(task.created_by_id, user)


def can_view_workflow(workflow: Workflow, user: Any) -> bool:
    if check_permission(user, "canViewAllWorkflows") or workflow.is_default:
        return True
    return _is_same_user(workflow.created_by_id, user)


def can_modify_workflow(workflow: Workflow, user: Any) -> bool:
    """Admins modify any workflow; managers only the ones they created."""
    if check_permission(user, "canModifyAnyWorkflow"):
        return True
    return check_permission(user, "canManageWorkflows") and _is_same_user(workflow.created_by_id, user)
