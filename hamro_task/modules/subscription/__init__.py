"""
Subscription module.

Plans, workspace subscriptions, plan limits and manual payment review.
"""

from .models import PaymentSubmission, SubscriptionPlan, WorkspaceSubscription

__all__ = [
    "SubscriptionPlan",
    "WorkspaceSubscription",
    "PaymentSubmission",
]
