"""
Projects module.

Projects, their status columns, tasks, time tracking and the activity log.
"""

from .models import ActivityLog, Project, ProjectStatus, Task, TaskComment, TaskWorkSession

__all__ = [
    "Project",
    "ProjectStatus",
    "Task",
    "TaskWorkSession",
    "TaskComment",
    "ActivityLog",
]
