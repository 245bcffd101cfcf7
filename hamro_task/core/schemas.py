"""
Response shapes shared by every module.
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class OperationResult(BaseModel):
    """
    Outcome of an operation that can be refused without being an error.

    Expected refusals such as "already a member" or "plan limit reached" are
    reported with ``success=False`` and a machine-readable ``code`` instead of
    an exception, so callers can branch on them.
    """

    success: bool = Field(..., description="Whether the operation took effect")
    error: Optional[str] = Field(None, description="Human readable reason when refused")
    code: Optional[str] = Field(None, description="Machine readable refusal code")
    data: Optional[Dict[str, Any]] = Field(None, description="Payload on success")

    @classmethod
    def ok(cls, **data: Any) -> "OperationResult":
        return cls(success=True, data=data or None)

    @classmethod
    def refused(cls, error: str, code: str) -> "OperationResult":
        return cls(success=False, error=error, code=code)


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str = Field(..., description="Response message")
