"""
Notifications module.
"""

from .models import Notification, NotificationPreferences, PushSubscription

__all__ = [
    "Notification",
    "NotificationPreferences",
    "PushSubscription",
]
