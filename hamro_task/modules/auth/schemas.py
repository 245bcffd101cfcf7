"""
Profile schemas.
"""
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, validator


class UserResponse(BaseModel):
    """Public profile."""

    id: UUID
    email: str
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    is_superuser: bool = False
    created_at: datetime

    class Config:
        from_attributes = True


class ProfileUpdate(BaseModel):
    """Fields a user may change on their own profile."""

    full_name: Optional[str] = Field(None, min_length=1, max_length=255)

    @validator("full_name")
    def strip_name(cls, v):
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Name cannot be empty or only whitespace")
        return v
