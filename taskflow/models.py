"""SQLAlchemy models for workflows, tasks, activity and notifications."""
from sqlalchemy import (
    JSON, Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index,
    Integer, String, Table, Text, UniqueConstraint, Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from .database import Base
from .timeutils import as_utc, now_utc

ROLES = ("admin", "manager", "member")
PRIORITIES = ("low", "medium", "high")
ACTIVITY_ACTIONS = (
    "created",
    "updated",
    "stage_changed",
    "assigned",
    "unassigned",
    "priority_changed",
    "due_date_changed",
    "completed",
    "reopened",
)
NOTIFICATION_TYPES = (
    "task_assigned",
    "task_completed",
    "task_stage_changed",
    "task_due_soon",
    "task_overdue",
    "mention",
    "comment",
)
DEFAULT_STAGE_COLOR = "#6B7280"

JSONType = JSON().with_variant(JSONB(), "postgresql")


class User(Base):
    """User record as supplied by the identity service."""
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    role = Column(String(20), nullable=False, default="member", index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=now_utc, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=now_utc, server_default=func.now(), onupdate=now_utc)

    __table_args__ = (
        CheckConstraint(role.in_(ROLES), name="chk_user_role"),
    )


task_assignees = Table(
    "task_assignees",
    Base.metadata,
    Column("task_id", Uuid, ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True),
)


class Workflow(Base):
    """Named ordered pipeline of stages."""
    __tablename__ = "workflows"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), unique=True, nullable=False, index=True)
    description = Column(String(500), nullable=True)
    is_default = Column(Boolean, default=False, nullable=False, index=True)
    created_by_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=now_utc, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=now_utc, server_default=func.now(), onupdate=now_utc)

    # Relationships
    creator = relationship("User")
    stages = relationship(
        "WorkflowStage",
        back_populates="workflow",
        cascade="all, delete-orphan",
        order_by="WorkflowStage.order",
    )


class WorkflowStage(Base):
    """Stage owned by a workflow; ``is_initial``/``is_final`` are derived on save."""
    __tablename__ = "workflow_stages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    workflow_id = Column(Uuid, ForeignKey("workflows.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(String(500), nullable=True)
    order = Column("stage_order", Integer, nullable=False)
    color = Column(String(7), nullable=False, default=DEFAULT_STAGE_COLOR)
    is_initial = Column(Boolean, nullable=False, default=False)
    is_final = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint("stage_order >= 0", name="chk_stage_order_non_negative"),
    )

    workflow = relationship("Workflow", back_populates="stages")


class Task(Base):
    """Work item moving through the stages of its workflow."""
    __tablename__ = "tasks"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    priority = Column(String(10), nullable=False, default="medium", index=True)
    workflow_id = Column(Uuid, ForeignKey("workflows.id"), nullable=False)
    current_stage_id = Column(Uuid, ForeignKey("workflow_stages.id"), nullable=False)
    created_by_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    due_date = Column(DateTime(timezone=True), nullable=True, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True, index=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=now_utc, server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), default=now_utc, server_default=func.now(), onupdate=now_utc)

    __table_args__ = (
        CheckConstraint(priority.in_(PRIORITIES), name="chk_task_priority"),
        Index("idx_tasks_workflow_stage", "workflow_id", "current_stage_id"),
    )
    # Stale concurrent saves raise StaleDataError instead of silently overwriting.
    __mapper_args__ = {"version_id_col": version}

    # Relationships
    workflow = relationship("Workflow")
    current_stage = relationship("WorkflowStage")
    creator = relationship("User", foreign_keys=[created_by_id])
    assignees = relationship("User", secondary=task_assignees, order_by="User.name")
    activity = relationship(
        "TaskActivity",
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="TaskActivity.seq",
    )

    @property
    def assignee_ids(self) -> list:
        return [user.id for user in self.assignees]

    @property
    def is_overdue(self) -> bool:
        if self.due_date is None or self.completed_at is not None:
            return False
        return now_utc() > as_utc(self.due_date)


class TaskActivity(Base):
    """Append-only activity entry of a task."""
    __tablename__ = "task_activity"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    task_id = Column(Uuid, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    seq = Column(Integer, nullable=False)
    action = Column(String(30), nullable=False)
    performed_by_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=now_utc)
    details = Column(String(500), nullable=True)
    previous_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(action.in_(ACTIVITY_ACTIONS), name="chk_activity_action"),
        UniqueConstraint("task_id", "seq", name="uq_task_activity_seq"),
    )

    task = relationship("Task", back_populates="activity")
    performed_by = relationship("User")


class Notification(Base):
    """Per-recipient notification, pulled by the client."""
    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    recipient_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(30), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(String(1000), nullable=False)
    task_id = Column(Uuid, ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True)
    workflow_id = Column(Uuid, ForeignKey("workflows.id", ondelete="SET NULL"), nullable=True)
    triggered_by_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False, index=True)
    read_at = Column(DateTime(timezone=True), nullable=True)
    meta_data = Column(JSONType, nullable=True)  # 'metadata' is reserved by SQLAlchemy
    created_at = Column(DateTime(timezone=True), default=now_utc, server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), default=now_utc, server_default=func.now(), onupdate=now_utc)

    __table_args__ = (
        CheckConstraint(type.in_(NOTIFICATION_TYPES), name="chk_notification_type"),
        Index("idx_notifications_recipient_read", "recipient_id", "is_read"),
        Index("idx_notifications_recipient_created", "recipient_id", "created_at"),
        Index("idx_notifications_task_type_created", "task_id", "type", "created_at"),
    )

    task = relationship("Task")
    workflow = relationship("Workflow")
    triggered_by = relationship("User", foreign_keys=[triggered_by_id])
