from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from taskflow.database import Base
from taskflow.models import User, Workflow
from taskflow.schemas import TaskCreate
from taskflow.seed import seed_default_workflows
from taskflow.use_cases.task_lifecycle import create_task_use_case


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def make_user(db):
    counter = {"n": 0}

    def _make(role: str = "member", *, name: str | None = None, is_active: bool = True) -> User:
        counter["n"] += 1
        n = counter["n"]
        user = User(
            name=name or f"{role.title()} {n}",
            email=f"{role}{n}@example.com",
            role=role,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture()
def admin(make_user):
    return make_user("admin", name="Avery Admin")


@pytest.fixture()
def manager(make_user):
    return make_user("manager", name="Morgan Manager")


@pytest.fixture()
def member(make_user):
    return make_user("member", name="Riley Member")


@pytest.fixture()
def default_workflows(db, admin) -> dict[str, Workflow]:
    workflows = seed_default_workflows(db, creator=admin)
    db.commit()
    return {workflow.name: workflow for workflow in workflows}


@pytest.fixture()
def bug_fixing(default_workflows) -> Workflow:
    return default_workflows["Bug Fixing"]


@pytest.fixture()
def make_task(db, manager):
    def _make(workflow: Workflow, *, assignees=(), actor=None, **fields):
        data = TaskCreate(
            title=fields.pop("title", "Login page crashes"),
            workflow_id=workflow.id,
            assignee_ids=[user.id for user in assignees],
            **fields,
        )
        return create_task_use_case(db=db, data=data, current_user=actor or manager)

    return _make
