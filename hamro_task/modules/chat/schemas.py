"""
Chat schemas.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, validator

from hamro_task.core.validators import CommonValidators

from .models import ChannelMemberRole


def _message_content(v: str) -> str:
    if v is None or not v.strip():
        raise ValueError('Message cannot be empty')
    return v.strip()


class ChannelCreate(BaseModel):
    name: str = Field(..., description="Channel name; stored lowercase and hyphenated")
    description: Optional[str] = Field(None, max_length=1000)
    is_private: bool = False
    member_ids: List[UUID] = Field(default_factory=list, description="Members added alongside the creator")

    @validator('name')
    def validate_name(cls, v):
        return CommonValidators.slugify_channel_name(v)


class ChannelResponse(BaseModel):
    id: UUID
    workspace_id: UUID
    name: str
    description: Optional[str] = None
    is_private: bool
    created_by: Optional[UUID] = None
    created_at: datetime
    unread_count: int = 0

    class Config:
        from_attributes = True


class ChannelListResponse(BaseModel):
    channels: List[ChannelResponse]
    total_unread: int


class ChannelMemberCreate(BaseModel):
    user_id: UUID
    role: ChannelMemberRole = ChannelMemberRole.MEMBER


class ChannelMemberResponse(BaseModel):
    id: UUID
    channel_id: UUID
    user_id: UUID
    role: ChannelMemberRole
    added_by: Optional[UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True


class MessageCreate(BaseModel):
    content: str = Field(..., max_length=10000)
    reply_to_id: Optional[UUID] = None

    @validator('content')
    def validate_content(cls, v):
        return _message_content(v)


class MessageUpdate(BaseModel):
    content: str = Field(..., max_length=10000)

    @validator('content')
    def validate_content(cls, v):
        return _message_content(v)


class MessageResponse(BaseModel):
    id: UUID
    sender_id: UUID
    content: str
    channel_id: Optional[UUID] = None
    conversation_id: Optional[UUID] = None
    reply_to_id: Optional[UUID] = None
    is_edited: bool = False
    edited_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class MessagePageResponse(BaseModel):
    messages: List[MessageResponse]
    has_more: bool


class ConversationCreate(BaseModel):
    user_id: UUID = Field(..., description="The other participant")


class ConversationResponse(BaseModel):
    id: UUID
    workspace_id: UUID
    participant_1: UUID
    participant_2: UUID
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
