from __future__ import annotations

from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from taskflow.database import Base
from taskflow.domain_errors import (
    ConcurrentModificationError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
)
from taskflow.models import Notification, Task, User
from taskflow.schemas import TaskCreate
from taskflow.seed import seed_default_workflows
from taskflow.services.stage_rules import BACKWARD_FROM_FINAL_REASON, NOT_ADJACENT_REASON
from taskflow.use_cases.task_lifecycle import create_task_use_case
from taskflow.use_cases.task_transitions import change_task_stage_use_case


def _notifications(db, task, notification_type):
    return db.query(Notification).filter(
        Notification.task_id == task.id,
        Notification.type == notification_type,
    ).all()


def test_bug_fixing_scenario(db, bug_fixing, make_task, manager, member, make_user) -> None:
    second_member = make_user("member")
    reported, triaged = bug_fixing.stages[0], bug_fixing.stages[1]
    verified, deployed = bug_fixing.stages[-2], bug_fixing.stages[-1]
    task = make_task(bug_fixing, assignees=[member, second_member])
    assert task.current_stage_id == reported.id

    change_task_stage_use_case(db=db, task_id=task.id, to_stage_id=triaged.id, current_user=manager)

    assert task.current_stage_id == triaged.id
    assert task.completed_at is None
    entry = task.activity[-1]
    assert entry.action == "stage_changed"
    assert entry.previous_value == "Reported"
    assert entry.new_value == "Triaged"
    assert entry.details == 'Stage changed from "Reported" to "Triaged"'
    assert len(_notifications(db, task, "task_stage_changed")) == 2

    change_task_stage_use_case(db=db, task_id=task.id, to_stage_id=deployed.id, current_user=manager)

    assert task.current_stage_id == deployed.id
    assert task.completed_at is not None
    assert [entry.action for entry in task.activity] == ["created", "stage_changed", "stage_changed", "completed"]
    completed = _notifications(db, task, "task_completed")
    assert {n.recipient_id for n in completed} == {member.id, second_member.id}
    assert all(n.triggered_by_id == manager.id for n in completed)
    stage_changes = _notifications(db, task, "task_stage_changed")
    assert len(stage_changes) == 4
    assert {"oldStage": "Triaged", "newStage": "Deployed"} in [n.meta_data for n in stage_changes]

    with pytest.raises(InvalidTransitionError) as far_back:
        change_task_stage_use_case(db=db, task_id=task.id, to_stage_id=reported.id, current_user=manager)
    with pytest.raises(InvalidTransitionError) as one_back:
        change_task_stage_use_case(db=db, task_id=task.id, to_stage_id=verified.id, current_user=manager)

    assert far_back.value.message == NOT_ADJACENT_REASON
    assert one_back.value.message == BACKWARD_FROM_FINAL_REASON
    assert task.current_stage_id == deployed.id
    assert len(task.activity) == 4


def test_same_stage_is_a_no_op(db, bug_fixing, make_task, manager, member) -> None:
    task = make_task(bug_fixing, assignees=[member])
    version = task.version

    result = change_task_stage_use_case(
        db=db, task_id=task.id, to_stage_id=task.current_stage_id, current_user=manager
    )

    assert result is task
    assert task.version == version
    assert [entry.action for entry in task.activity] == ["created"]
    assert _notifications(db, task, "task_stage_changed") == []


def test_member_cannot_change_stage(db, bug_fixing, make_task, member) -> None:
    task = make_task(bug_fixing, assignees=[member])

    with pytest.raises(PermissionDeniedError):
        change_task_stage_use_case(
            db=db, task_id=task.id, to_stage_id=bug_fixing.stages[1].id, current_user=member
        )
    assert task.current_stage_id == bug_fixing.stages[0].id


def test_stage_of_another_workflow_is_rejected(db, default_workflows, make_task, manager) -> None:
    task = make_task(default_workflows["Bug Fixing"])
    foreign_stage = default_workflows["Simple Task"].stages[1]

    with pytest.raises(InvalidTransitionError, match="Invalid stage for this workflow") as exc_info:
        change_task_stage_use_case(db=db, task_id=task.id, to_stage_id=foreign_stage.id, current_user=manager)
    assert exc_info.value.code == "INVALID_STAGE"


def test_skipping_stages_is_rejected(db, bug_fixing, make_task, manager) -> None:
    task = make_task(bug_fixing)

    with pytest.raises(InvalidTransitionError, match=r"adjacent stages") as exc_info:
        change_task_stage_use_case(
            db=db, task_id=task.id, to_stage_id=bug_fixing.stages[3].id, current_user=manager
        )
    assert exc_info.value.message == NOT_ADJACENT_REASON
    assert exc_info.value.http_status == 400


def test_missing_task_is_not_found(db, manager) -> None:
    with pytest.raises(NotFoundError) as exc_info:
        change_task_stage_use_case(db=db, task_id=uuid4(), to_stage_id=uuid4(), current_user=manager)
    assert exc_info.value.code == "TASK_NOT_FOUND"


def test_notification_failure_does_not_undo_stage_change(db, bug_fixing, make_task, manager, member, monkeypatch) -> None:
    task = make_task(bug_fixing, assignees=[member])

    def _broken(*_args, **_kwargs):
        raise RuntimeError("mail relay down")

    monkeypatch.setattr("taskflow.use_cases.task_transitions.notify_stage_change", _broken)

    change_task_stage_use_case(db=db, task_id=task.id, to_stage_id=bug_fixing.stages[1].id, current_user=manager)

    stored = db.get(Task, task.id)
    assert stored.current_stage_id == bug_fixing.stages[1].id
    assert stored.activity[-1].action == "stage_changed"
    assert _notifications(db, stored, "task_stage_changed") == []


def test_completion_failure_does_not_fail_the_move(db, bug_fixing, make_task, manager, monkeypatch) -> None:
    task = make_task(bug_fixing)

    def _broken(*_args, **_kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr("taskflow.use_cases.task_transitions.handle_task_completion", _broken)

    change_task_stage_use_case(db=db, task_id=task.id, to_stage_id=bug_fixing.stages[-1].id, current_user=manager)

    stored = db.get(Task, task.id)
    assert stored.current_stage_id == bug_fixing.stages[-1].id
    assert stored.completed_at is None


def test_concurrent_stage_changes_are_detected(tmp_path) -> None:
    engine = create_engine(f"sqlite:///{tmp_path / 'concurrency.db'}")
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    with factory() as setup:
        admin = User(name="Avery Admin", email="admin@example.com", role="admin")
        setup.add(admin)
        setup.flush()
        workflow = seed_default_workflows(setup, creator=admin)[3]
        setup.commit()
        task = create_task_use_case(
            db=setup,
            data=TaskCreate(title="Race", workflow_id=workflow.id),
            current_user=admin,
        )
        task_id, admin_id = task.id, admin.id
        todo, in_progress = workflow.stages[0].id, workflow.stages[1].id

    first, second = factory(), factory()
    try:
        first_admin = first.get(User, admin_id)
        second_admin = second.get(User, admin_id)
        assert first.get(Task, task_id).version == 1
        stale = second.get(Task, task_id)
        assert stale.current_stage_id == todo

        change_task_stage_use_case(db=first, task_id=task_id, to_stage_id=in_progress, current_user=first_admin)

        with pytest.raises(ConcurrentModificationError):
            # The second session still believes the task is in "Todo".
            change_task_stage_use_case(db=second, task_id=task_id, to_stage_id=in_progress, current_user=second_admin)

        assert second.get(Task, task_id).current_stage_id == in_progress
    finally:
        first.close()
        second.close()
        engine.dispose()
