"""Pydantic schemas for API."""
from pydantic import AliasChoices, BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime
from uuid import UUID

HEX_COLOR_PATTERN = r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$"
PRIORITY_PATTERN = "^(low|medium|high)$"


class UserBrief(BaseModel):
    """Brief user info for nested responses."""
    id: UUID
    name: str
    email: str
    model_config = ConfigDict(from_attributes=True)


# Workflow schemas
class StageCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    order: int = Field(ge=0)
    color: str = Field(default="#6B7280", pattern=HEX_COLOR_PATTERN)


class StageUpdate(StageCreate):
    # Existing stages are matched by id; stages without one are created.
    id: Optional[UUID] = None


class StageResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    order: int
    color: str
    is_initial: bool
    is_final: bool
    model_config = ConfigDict(from_attributes=True)


class WorkflowCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    stages: list[StageCreate] = Field(min_length=1)
    is_default: bool = False


class WorkflowUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    stages: Optional[list[StageUpdate]] = None
    is_default: Optional[bool] = None


class WorkflowBrief(BaseModel):
    id: UUID
    name: str
    model_config = ConfigDict(from_attributes=True)


class WorkflowResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    is_default: bool
    stages: list[StageResponse]
    creator: Optional[UserBrief] = None
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class TransitionValidateRequest(BaseModel):
    from_stage_id: UUID
    to_stage_id: UUID


class TransitionValidateResponse(BaseModel):
    valid: bool
    reason: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class AdjacentStagesResponse(BaseModel):
    previous: Optional[StageResponse] = None
    next: Optional[StageResponse] = None


# Task schemas
class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    priority: str = Field(default="medium", pattern=PRIORITY_PATTERN)
    workflow_id: UUID
    assignee_ids: list[UUID] = []
    due_date: Optional[datetime] = None


class TaskUpdate(BaseModel):
    """Partial update; only fields present in the request are applied."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    priority: Optional[str] = Field(default=None, pattern=PRIORITY_PATTERN)
    due_date: Optional[datetime] = None


class StageChangeRequest(BaseModel):
    stage_id: UUID


class AssignUsersRequest(BaseModel):
    user_ids: list[UUID] = Field(min_length=1)


class StageBrief(BaseModel):
    id: UUID
    name: str
    order: int
    color: str
    is_final: bool
    model_config = ConfigDict(from_attributes=True)


class TaskActivityResponse(BaseModel):
    id: UUID
    seq: int
    action: str
    performed_by: Optional[UserBrief] = None
    timestamp: datetime
    details: Optional[str] = None
    previous_value: Optional[str] = None
    new_value: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class TaskResponse(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = None
    priority: str
    workflow: WorkflowBrief
    current_stage: StageBrief
    assignees: list[UserBrief] = []
    creator: Optional[UserBrief] = None
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    is_overdue: bool
    version: int
    activity: list[TaskActivityResponse] = []
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


# Notifications
class NotificationResponse(BaseModel):
    id: UUID
    type: str
    title: str
    message: str
    task_id: Optional[UUID] = None
    workflow_id: Optional[UUID] = None
    triggered_by: Optional[UserBrief] = None
    is_read: bool
    read_at: Optional[datetime] = None
    metadata: Optional[dict] = Field(default=None, validation_alias=AliasChoices("meta_data", "metadata"))
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class UnreadCountResponse(BaseModel):
    unread_count: int


class MarkAllReadResponse(BaseModel):
    updated: int


# Reports
class StageTaskCount(BaseModel):
    stage_id: UUID
    name: str
    order: int
    task_count: int


class StatsStageCount(StageTaskCount):
    workflow_id: UUID


class TaskStatsResponse(BaseModel):
    total: int
    completed: int
    overdue: int
    by_priority: dict[str, int]
    by_stage: list[StatsStageCount]


class WorkflowStageCountsResponse(BaseModel):
    workflow_id: UUID
    workflow_name: str
    stages: list[StageTaskCount]


# Pagination
class PaginationResponse(BaseModel):
    total: int
    limit: int
    offset: int


class PaginatedResponse(BaseModel):
    data: list
    pagination: PaginationResponse


class NotificationListResponse(PaginatedResponse):
    unread_count: int


# System
class HealthCheckResponse(BaseModel):
    status: str
    database: str
    version: str
