"""
Subscription and billing schemas.
"""
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field, validator

from .models import PaymentStatus


class PlanResponse(BaseModel):
    id: UUID
    name: str
    price_npr: int
    max_members: Optional[int] = None
    max_projects: Optional[int] = None
    features: Optional[Dict[str, Any]] = None
    position: int

    class Config:
        from_attributes = True


class SubscriptionResponse(BaseModel):
    id: UUID
    workspace_id: UUID
    plan_id: UUID
    status: str
    starts_at: datetime
    expires_at: Optional[datetime] = None
    trial_ends_at: Optional[datetime] = None
    member_count: int

    class Config:
        from_attributes = True


class LimitsResponse(BaseModel):
    plan_name: str
    status: Optional[str] = None
    max_members: Optional[int] = None
    max_projects: Optional[int] = None
    member_count: int
    project_count: int
    expires_at: Optional[datetime] = None
    days_until_expiry: Optional[int] = None
    is_expired: bool
    is_trialing: bool
    can_add_member: bool
    can_create_project: bool
    features: Dict[str, Any] = {}


class PaymentCreate(BaseModel):
    """Form fields sent with the screenshot upload."""

    plan_id: UUID
    months_paid: int = Field(1, ge=1, le=12)
    payment_method: str = Field(..., min_length=1, max_length=50)
    transaction_reference: Optional[str] = Field(None, max_length=255)

    @validator('payment_method')
    def validate_payment_method(cls, v):
        if not v.strip():
            raise ValueError('Payment method is required')
        return v.strip()


class PaymentReview(BaseModel):
    notes: Optional[str] = Field(None, max_length=2000)


class PaymentResponse(BaseModel):
    id: UUID
    workspace_id: UUID
    plan_id: UUID
    amount_npr: int
    months_paid: int
    payment_method: str
    transaction_reference: Optional[str] = None
    status: PaymentStatus
    submitted_by: UUID
    verified_by: Optional[UUID] = None
    verified_at: Optional[datetime] = None
    admin_notes: Optional[str] = None
    created_at: datetime
    screenshot_url: Optional[str] = None

    class Config:
        from_attributes = True
