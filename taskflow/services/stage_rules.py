"""Workflow stage ordering and transition rules."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from ..domain_errors import InvariantViolationError

STAGE_COLOR_RE = re.compile(r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$")

INVALID_STAGE_REASON = "Invalid stage"
NOT_ADJACENT_REASON = "Can only move to adjacent stages (or final stage)"
BACKWARD_FROM_FINAL_REASON = "Cannot move backwards from final stage"


@dataclass(frozen=True)
class TransitionResult:
    valid: bool
    reason: str | None = None


def is_valid_color(color: str | None) -> bool:
    return bool(color) and STAGE_COLOR_RE.match(color) is not None


def _same_id(left: Any, right: Any) -> bool:
    return left is not None and right is not None and str(left) == str(right)


def find_stage(stages: Iterable[Any], stage_id: Any) -> Any | None:
    for stage in stages:
        if _same_id(stage.id, stage_id):
            return stage
    return None


def normalize_stages(stages: Sequence[Any]) -> list[Any]:
    """Sort stages by order and recompute the derived initial/final flags.

    Caller-supplied ``is_initial``/``is_final`` values are always overwritten.
    """
    seen: set[int] = set()
    for stage in stages:
        if stage.order is None or stage.order < 0:
            raise InvariantViolationError(
                f"Stage order must be a non-negative integer: {stage.order}",
                code="INVALID_STAGE_ORDER",
            )
        if stage.order in seen:
            raise InvariantViolationError(
                f"Duplicate order value: {stage.order}",
                code="DUPLICATE_STAGE_ORDER",
                details={"order": stage.order},
            )
        seen.add(stage.order)

    ordered = sorted(stages, key=lambda stage: stage.order)
    last_index = len(ordered) - 1
    for index, stage in enumerate(ordered):
        stage.is_initial = index == 0
        stage.is_final = index == last_index
    return ordered


def initial_stage(workflow: Any) -> Any | None:
    stages = list(workflow.stages)
    if not stages:
        return None
    for stage in stages:
        if stage.is_initial:
            return stage
    return min(stages, key=lambda stage: stage.order)


def final_stage(workflow: Any) -> Any | None:
    stages = list(workflow.stages)
    if not stages:
        return None
    for stage in stages:
        if stage.is_final:
            return stage
    return max(stages, key=lambda stage: stage.order)


def next_stage(workflow: Any, current_stage_id: Any) -> Any | None:
    current = find_stage(workflow.stages, current_stage_id)
    if current is None or current.is_final:
        return None
    later = [stage for stage in workflow.stages if stage.order > current.order]
    return min(later, key=lambda stage: stage.order) if later else None


def previous_stage(workflow: Any, current_stage_id: Any) -> Any | None:
    current = find_stage(workflow.stages, current_stage_id)
    if current is None or current.is_initial:
        return None
    earlier = [stage for stage in workflow.stages if stage.order < current.order]
    return max(earlier, key=lambda stage: stage.order) if earlier else None


def validate_transition(workflow: Any, from_stage_id: Any, to_stage_id: Any) -> TransitionResult:
    """Decide whether a task may move between two stages of ``workflow``.

    Moves of distance 1 in either direction are allowed, any distance is
    allowed when the destination is the final stage, and nothing may move
    to a lower order out of the final stage.
    """
    from_stage = find_stage(workflow.stages, from_stage_id)
    to_stage = find_stage(workflow.stages, to_stage_id)
    if from_stage is None or to_stage is None:
        return TransitionResult(valid=False, reason=INVALID_STAGE_REASON)

    # Adjacency is checked first, so a long backward jump out of the final
    # stage reports the adjacency reason.
    order_diff = abs(from_stage.order - to_stage.order)
    if order_diff > 1 and not to_stage.is_final:
        return TransitionResult(valid=False, reason=NOT_ADJACENT_REASON)

    if from_stage.is_final and to_stage.order < from_stage.order:
        return TransitionResult(valid=False, reason=BACKWARD_FROM_FINAL_REASON)

    return TransitionResult(valid=True)
