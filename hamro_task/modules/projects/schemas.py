"""
Project, status and task schemas.

Update schemas never expose ``project_id`` or ``workspace_id``: a task stays in
its project and a project in its workspace. Task status, completion and start
timestamps are derived from the custom status and are not writable either.
"""
from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, validator

from hamro_task.core.validators import CommonValidators

from .models import DEFAULT_PROJECT_COLOR, StatusCategory, TaskPriority


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    color: str = Field(DEFAULT_PROJECT_COLOR, description="Hex color")

    @validator('name')
    def validate_name(cls, v):
        return CommonValidators.validate_name(v)

    @validator('color')
    def validate_color(cls, v):
        return CommonValidators.validate_hex_color(v)


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    color: Optional[str] = None

    @validator('name')
    def validate_name(cls, v):
        if v is not None:
            return CommonValidators.validate_name(v)
        return v

    @validator('color')
    def validate_color(cls, v):
        if v is not None:
            return CommonValidators.validate_hex_color(v)
        return v


class ProjectResponse(BaseModel):
    id: UUID
    workspace_id: UUID
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    is_archived: bool
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class StatusCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: str = Field("#94A3B8")
    is_completed: bool = False
    is_default: bool = False
    category: Optional[StatusCategory] = Field(
        None, description="Derived from is_completed when omitted"
    )

    @validator('name')
    def validate_name(cls, v):
        return CommonValidators.validate_name(v)

    @validator('color')
    def validate_color(cls, v):
        return CommonValidators.validate_hex_color(v)


class StatusUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    color: Optional[str] = None
    is_default: Optional[bool] = None
    category: Optional[StatusCategory] = None

    @validator('name')
    def validate_name(cls, v):
        if v is not None:
            return CommonValidators.validate_name(v)
        return v

    @validator('color')
    def validate_color(cls, v):
        if v is not None:
            return CommonValidators.validate_hex_color(v)
        return v


class StatusResponse(BaseModel):
    id: UUID
    project_id: UUID
    name: str
    color: str
    position: int
    is_default: bool
    is_completed: bool
    category: StatusCategory

    class Config:
        from_attributes = True


class ReorderRequest(BaseModel):
    """Ids in their new order; positions are assigned 0..n-1."""

    ids: List[UUID] = Field(..., min_length=1)


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    assigned_to: Optional[UUID] = None
    due_date: Optional[date] = None
    custom_status_id: Optional[UUID] = Field(
        None, description="Defaults to the project's default status"
    )

    @validator('title')
    def validate_title(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Title cannot be empty or only whitespace')
        return v


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None
    assigned_to: Optional[UUID] = None
    due_date: Optional[date] = None

    @validator('title')
    def validate_title(cls, v):
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError('Title cannot be empty or only whitespace')
        return v


class TaskMove(BaseModel):
    custom_status_id: UUID


class TaskResponse(BaseModel):
    id: UUID
    project_id: UUID
    title: str
    description: Optional[str] = None
    status: str
    custom_status_id: Optional[UUID] = None
    priority: TaskPriority
    assigned_to: Optional[UUID] = None
    created_by: Optional[UUID] = None
    due_date: Optional[date] = None
    completed_at: Optional[datetime] = None
    first_started_at: Optional[datetime] = None
    position: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CommentCreate(BaseModel):
    content: str = Field(..., max_length=5000)
    parent_id: Optional[UUID] = Field(None, description="Comment being replied to")

    @validator('content')
    def validate_content(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Comment cannot be empty')
        return v


class CommentResponse(BaseModel):
    id: UUID
    task_id: UUID
    user_id: UUID
    content: str
    parent_id: Optional[UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ActivityResponse(BaseModel):
    id: UUID
    workspace_id: UUID
    actor_id: Optional[UUID] = None
    project_id: Optional[UUID] = None
    task_id: Optional[UUID] = None
    action_type: str
    entity_type: str
    description: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
