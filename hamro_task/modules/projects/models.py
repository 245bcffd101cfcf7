"""
Project, status, task and activity models.
"""
from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hamro_task.core.models import BaseModel


class TaskStatus(str, Enum):
    """Built-in task status used when a project has no custom status set."""
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    DONE = "done"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class StatusCategory(str, Enum):
    TODO = "todo"
    ACTIVE = "active"
    DONE = "done"
    CANCELLED = "cancelled"


DEFAULT_PROJECT_COLOR = "#6366F1"

# Seeded for every new project: (name, color, is_default, is_completed, category)
DEFAULT_STATUSES = (
    ("Todo", "#94A3B8", True, False, StatusCategory.TODO),
    ("In Progress", "#3B82F6", False, False, StatusCategory.ACTIVE),
    ("Done", "#22C55E", False, True, StatusCategory.DONE),
)


class Project(BaseModel):
    """A project inside a workspace."""

    __tablename__ = "projects"

    workspace_id: Mapped[UUID] = mapped_column(
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    color: Mapped[Optional[str]] = mapped_column(String(20), default=DEFAULT_PROJECT_COLOR)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_by: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )

    statuses = relationship(
        "ProjectStatus",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="ProjectStatus.position",
        passive_deletes=True,
    )
    tasks = relationship(
        "Task", back_populates="project", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, name='{self.name}')>"


class ProjectStatus(BaseModel):
    """Custom status column of a project board."""

    __tablename__ = "project_statuses"

    project_id: Mapped[UUID] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str] = mapped_column(String(20), default="#94A3B8", nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    category: Mapped[StatusCategory] = mapped_column(
        String(20), default=StatusCategory.TODO, nullable=False
    )

    project = relationship("Project", back_populates="statuses")


class Task(BaseModel):
    """A unit of work on a project board."""

    __tablename__ = "tasks"

    project_id: Mapped[UUID] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(100), default=TaskStatus.TODO, nullable=False)
    custom_status_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("project_statuses.id", ondelete="SET NULL")
    )
    priority: Mapped[TaskPriority] = mapped_column(
        String(20), default=TaskPriority.MEDIUM, nullable=False
    )
    assigned_to: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), index=True
    )
    created_by: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    due_date: Mapped[Optional[date]] = mapped_column(Date)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    first_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    project = relationship("Project", back_populates="tasks")

    def __repr__(self) -> str:
        return f"<Task(id={self.id}, title='{self.title}', status='{self.status}')>"


class TaskWorkSession(BaseModel):
    """Time tracked against a task by one user."""

    __tablename__ = "task_work_sessions"

    task_id: Mapped[UUID] = mapped_column(
        ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    duration_seconds: Mapped[Optional[int]] = mapped_column(Integer)


class TaskComment(BaseModel):
    """A comment on a task; replies point at their parent comment."""

    __tablename__ = "task_comments"

    task_id: Mapped[UUID] = mapped_column(
        ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    parent_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("task_comments.id", ondelete="CASCADE"), index=True
    )


class ActivityLog(BaseModel):
    """Audit trail rendered as the workspace activity feed."""

    __tablename__ = "activity_logs"

    workspace_id: Mapped[UUID] = mapped_column(
        ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True
    )
    actor_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    project_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), index=True
    )
    task_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("tasks.id", ondelete="SET NULL")
    )
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
