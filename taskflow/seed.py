"""Default users and workflow templates."""
from __future__ import annotations

import logging
import uuid

from sqlalchemy.orm import Session

from .models import User, Workflow, WorkflowStage
from .services.stage_rules import normalize_stages

logger = logging.getLogger(__name__)

DEFAULT_USERS = [
    {
        "id": uuid.UUID("00000000-0000-0000-0000-000000000101"),
        "name": "Admin User",
        "email": "admin@taskflow.local",
        "role": "admin",
    },
    {
        "id": uuid.UUID("00000000-0000-0000-0000-000000000102"),
        "name": "Morgan Manager",
        "email": "manager@taskflow.local",
        "role": "manager",
    },
    {
        "id": uuid.UUID("00000000-0000-0000-0000-000000000103"),
        "name": "Riley Member",
        "email": "member@taskflow.local",
        "role": "member",
    },
]

DEFAULT_WORKFLOWS = [
    {
        "name": "Software Development",
        "description": "Standard software development lifecycle workflow",
        "stages": [
            ("Backlog", "#6B7280"),
            ("Analysis", "#3B82F6"),
            ("Development", "#8B5CF6"),
            ("Code Review", "#F59E0B"),
            ("QA Testing", "#10B981"),
            ("Deployment", "#EF4444"),
            ("Done", "#64748B"),
        ],
    },
    {
        "name": "Bug Fixing",
        "description": "Bug resolution workflow for tracking and fixing issues",
        "stages": [
            ("Reported", "#DC2626"),
            ("Triaged", "#F59E0B"),
            ("Investigating", "#8B5CF6"),
            ("Fix Ready", "#3B82F6"),
            ("Testing", "#10B981"),
            ("Verified", "#059669"),
            ("Deployed", "#6366F1"),
        ],
    },
    {
        "name": "Content Creation",
        "description": "Workflow for creating and publishing content",
        "stages": [
            ("Ideation", "#7C3AED"),
            ("Research", "#5B21B6"),
            ("Drafting", "#1E40AF"),
            ("Editing", "#0D9488"),
            ("SEO Review", "#059669"),
            ("Approval", "#D97706"),
            ("Published", "#DC2626"),
        ],
    },
    {
        "name": "Simple Task",
        "description": "Simple task management workflow",
        "stages": [
            ("Todo", "#6B7280"),
            ("In Progress", "#3B82F6"),
            ("Review", "#F59E0B"),
            ("Done", "#10B981"),
        ],
    },
]


def seed_default_users(db: Session) -> list[User]:
    users = []
    for data in DEFAULT_USERS:
        user = db.get(User, data["id"])
        if user is None:
            user = User(**data)
            db.add(user)
        users.append(user)
    db.flush()
    return users


def seed_default_workflows(db: Session, creator: User) -> list[Workflow]:
    """Create the default templates; existing workflows with the same name are kept."""
    workflows = []
    for data in DEFAULT_WORKFLOWS:
        workflow = db.query(Workflow).filter(Workflow.name == data["name"]).first()
        if workflow is not None:
            logger.info("seed.workflow_exists name=%s", data["name"])
            workflows.append(workflow)
            continue

        stages = normalize_stages([
            WorkflowStage(name=name, order=index, color=color)
            for index, (name, color) in enumerate(data["stages"])
        ])
        workflow = Workflow(
            name=data["name"],
            description=data["description"],
            is_default=True,
            created_by_id=creator.id,
            stages=stages,
        )
        db.add(workflow)
        workflows.append(workflow)
        logger.info("seed.workflow_created name=%s stages=%d", data["name"], len(stages))
    db.flush()
    return workflows
