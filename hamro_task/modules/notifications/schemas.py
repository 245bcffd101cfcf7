"""
Notification schemas.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, validator

from hamro_task.core.validators import CommonValidators


class NotificationResponse(BaseModel):
    id: UUID
    workspace_id: UUID
    user_id: UUID
    actor_id: Optional[UUID] = None
    type: str
    title: str
    body: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[UUID] = None
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="extra")
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime
    url: Optional[str] = None

    class Config:
        from_attributes = True
        populate_by_name = True


class NotificationFeedResponse(BaseModel):
    notifications: List[NotificationResponse]
    unread_count: int
    has_more: bool


class NotificationPage(BaseModel):
    notifications: List[NotificationResponse]
    has_more: bool


class UnreadCountResponse(BaseModel):
    unread_count: int


class PreferencesResponse(BaseModel):
    id: UUID
    user_id: UUID
    workspace_id: UUID
    task_assigned: bool
    task_status_changed: bool
    task_completed: bool
    comment_added: bool
    comment_reply: bool
    project_updates: bool
    member_updates: bool
    chat_mentions: bool
    due_date_reminders: bool
    push_enabled: bool
    quiet_hours_enabled: bool
    quiet_hours_start: int
    quiet_hours_end: int
    timezone: str

    class Config:
        from_attributes = True


class PreferencesUpdate(BaseModel):
    """Partial update; omitted fields keep their value."""

    task_assigned: Optional[bool] = None
    task_status_changed: Optional[bool] = None
    task_completed: Optional[bool] = None
    comment_added: Optional[bool] = None
    comment_reply: Optional[bool] = None
    project_updates: Optional[bool] = None
    member_updates: Optional[bool] = None
    chat_mentions: Optional[bool] = None
    due_date_reminders: Optional[bool] = None
    quiet_hours_enabled: Optional[bool] = None
    quiet_hours_start: Optional[int] = None
    quiet_hours_end: Optional[int] = None
    timezone: Optional[str] = None

    @validator('quiet_hours_start', 'quiet_hours_end')
    def validate_hour(cls, v):
        return CommonValidators.validate_hour(v)

    @validator('timezone')
    def validate_timezone(cls, v):
        if v is None:
            return v
        return CommonValidators.validate_timezone(v)


class PushSubscriptionCreate(BaseModel):
    endpoint: str = Field(..., min_length=1, max_length=1000, description="Device token or web push endpoint")
    platform: str = Field("expo", max_length=20)


class PushSubscriptionResponse(BaseModel):
    id: UUID
    endpoint: str
    platform: str
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True
