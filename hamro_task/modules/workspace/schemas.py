"""
Workspace schemas.

This module defines Pydantic models for workspace requests and responses.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, validator

from hamro_task.core.validators import CommonValidators

from .models import WorkspaceRoleEnum


class WorkspaceCreate(BaseModel):
    """Schema for workspace creation."""

    name: str = Field(..., min_length=1, max_length=255, description="Workspace name")
    description: Optional[str] = Field(None, max_length=1000, description="Workspace description")

    @validator('name')
    def validate_name(cls, v):
        return CommonValidators.validate_name(v)


class WorkspaceUpdate(BaseModel):
    """Schema for workspace updates."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)

    @validator('name')
    def validate_name(cls, v):
        if v is not None:
            return CommonValidators.validate_name(v)
        return v


class WorkspaceResponse(BaseModel):
    """Workspace as seen by one of its members."""

    id: UUID
    name: str
    description: Optional[str] = None
    logo_url: Optional[str] = None
    created_by: UUID
    created_at: datetime
    role: Optional[WorkspaceRoleEnum] = Field(None, description="Caller's role in the workspace")

    class Config:
        from_attributes = True


class MemberResponse(BaseModel):
    """A member with profile fields joined in."""

    user_id: UUID
    email: str
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    role: WorkspaceRoleEnum
    last_active_at: Optional[datetime] = None
    joined_at: datetime


class MemberListResponse(BaseModel):
    members: List[MemberResponse]
    total: int


class InvitationCreate(BaseModel):
    """Invite someone by e-mail."""

    email: str = Field(..., description="Address to invite")
    role: WorkspaceRoleEnum = Field(WorkspaceRoleEnum.MEMBER, description="Role granted on acceptance")

    @validator('email')
    def validate_email(cls, v):
        return CommonValidators.validate_email(v)

    @validator('role')
    def validate_role(cls, v):
        if v == WorkspaceRoleEnum.OWNER:
            raise ValueError("Ownership cannot be granted by invitation")
        return v


class InvitationResponse(BaseModel):
    id: UUID
    workspace_id: UUID
    email: str
    role: WorkspaceRoleEnum
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


class MemberRoleUpdate(BaseModel):
    role: WorkspaceRoleEnum

    @validator('role')
    def validate_role(cls, v):
        if v == WorkspaceRoleEnum.OWNER:
            raise ValueError("Ownership cannot be assigned through a role change")
        return v


class PresenceResponse(BaseModel):
    online_user_ids: List[UUID]
