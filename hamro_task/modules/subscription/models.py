"""
Subscription plan, workspace subscription and payment submission models.
"""
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from hamro_task.core.models import BaseModel


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    TRIAL = "trial"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    GRACE_PERIOD = "grace_period"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class SubscriptionPlan(BaseModel):
    """A purchasable plan; a null limit means unlimited."""

    __tablename__ = "subscription_plans"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    price_npr: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_members: Mapped[Optional[int]] = mapped_column(Integer)
    max_projects: Mapped[Optional[int]] = mapped_column(Integer)
    features: Mapped[Optional[dict]] = mapped_column(JSON)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class WorkspaceSubscription(BaseModel):
    """Billing state of one workspace."""

    __tablename__ = "workspace_subscriptions"

    workspace_id: Mapped[UUID] = mapped_column(
        ForeignKey("workspaces.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    plan_id: Mapped[UUID] = mapped_column(
        ForeignKey("subscription_plans.id"), nullable=False
    )
    status: Mapped[SubscriptionStatus] = mapped_column(
        String(20), default=SubscriptionStatus.TRIAL, nullable=False
    )
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    trial_ends_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    member_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)


class PaymentSubmission(BaseModel):
    """A manual payment proof waiting for review."""

    __tablename__ = "payment_submissions"

    workspace_id: Mapped[UUID] = mapped_column(
        ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True
    )
    plan_id: Mapped[UUID] = mapped_column(
        ForeignKey("subscription_plans.id"), nullable=False
    )
    amount_npr: Mapped[int] = mapped_column(Integer, nullable=False)
    months_paid: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    payment_method: Mapped[str] = mapped_column(String(50), nullable=False)
    transaction_reference: Mapped[Optional[str]] = mapped_column(String(255))
    screenshot_path: Mapped[str] = mapped_column(
        String(1000), nullable=False, comment="Object key in the payment screenshot bucket"
    )
    status: Mapped[PaymentStatus] = mapped_column(
        String(20), default=PaymentStatus.PENDING, nullable=False, index=True
    )
    submitted_by: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    verified_by: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    admin_notes: Mapped[Optional[str]] = mapped_column(Text)
