"""
Storage module schemas.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class UploadResult(BaseModel):
    """Result of an upload."""

    bucket: str = Field(..., description="Bucket the object was written to")
    file_key: str = Field(..., description="Object key inside the bucket")
    content_type: str = Field(..., description="MIME type")
    size: int = Field(..., description="Object size in bytes")
    url: Optional[str] = Field(None, description="Public URL when the bucket is public")


class SignedUrlResult(BaseModel):
    """Time-limited URL for a private object."""

    url: str = Field(..., description="Signed URL")
    expires_at: datetime = Field(..., description="URL expiration timestamp")
