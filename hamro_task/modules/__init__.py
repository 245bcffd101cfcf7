"""
Application modules package.

This package contains all the feature modules of the application.
"""

# Import all models to ensure they are registered with SQLAlchemy
from hamro_task.modules.auth.models import User
from hamro_task.modules.chat.models import (
    Channel,
    ChannelMember,
    ChannelReadStatus,
    DMConversation,
    DMMessage,
    Message,
)
from hamro_task.modules.notifications.models import Notification, NotificationPreferences, PushSubscription
from hamro_task.modules.projects.models import (
    ActivityLog,
    Project,
    ProjectStatus,
    Task,
    TaskComment,
    TaskWorkSession,
)
from hamro_task.modules.subscription.models import PaymentSubmission, SubscriptionPlan, WorkspaceSubscription
from hamro_task.modules.workspace.models import Workspace, WorkspaceInvitation, WorkspaceMember

__all__ = [
    "User",
    "Workspace",
    "WorkspaceMember",
    "WorkspaceInvitation",
    "Project",
    "ProjectStatus",
    "Task",
    "TaskWorkSession",
    "TaskComment",
    "ActivityLog",
    "Channel",
    "ChannelMember",
    "ChannelReadStatus",
    "Message",
    "DMConversation",
    "DMMessage",
    "Notification",
    "NotificationPreferences",
    "PushSubscription",
    "SubscriptionPlan",
    "WorkspaceSubscription",
    "PaymentSubmission",
]
