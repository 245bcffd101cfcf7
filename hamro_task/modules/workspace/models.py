"""
Workspace models.

This module defines the database models for workspaces, their members and
pending invitations.
"""
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hamro_task.core.models import BaseModel


class WorkspaceRoleEnum(str, Enum):
    """Workspace role enumeration, highest first."""
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"

    @property
    def rank(self) -> int:
        return ROLE_RANK[self]

    def at_least(self, other: "WorkspaceRoleEnum") -> bool:
        """True when this role is ``other`` or above it."""
        return self.rank >= WorkspaceRoleEnum(other).rank

    @property
    def is_manager(self) -> bool:
        """Owners and admins manage members, statuses and billing views."""
        return self.at_least(WorkspaceRoleEnum.ADMIN)


ROLE_RANK = {
    WorkspaceRoleEnum.OWNER: 40,
    WorkspaceRoleEnum.ADMIN: 30,
    WorkspaceRoleEnum.MEMBER: 20,
    WorkspaceRoleEnum.VIEWER: 10,
}


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REVOKED = "revoked"


class Workspace(BaseModel):
    """Tenant boundary: owns projects, members, chat and the subscription."""

    __tablename__ = "workspaces"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Workspace name"
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Workspace description"
    )

    logo_url: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
    )

    created_by: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        comment="User who created the workspace"
    )

    members = relationship(
        "WorkspaceMember", back_populates="workspace", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Workspace(id={self.id}, name='{self.name}')>"


class WorkspaceMember(BaseModel):
    """Membership of a user in a workspace with a single role."""

    __tablename__ = "workspace_members"

    workspace_id: Mapped[UUID] = mapped_column(
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    role: Mapped[WorkspaceRoleEnum] = mapped_column(
        String(20),
        default=WorkspaceRoleEnum.MEMBER,
        nullable=False,
    )

    last_active_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Last heartbeat from any client of this member"
    )

    workspace = relationship("Workspace", back_populates="members")
    user = relationship("User", back_populates="workspace_memberships")

    __table_args__ = (
        UniqueConstraint("workspace_id", "user_id", name="uq_workspace_member"),
    )

    @property
    def role_enum(self) -> WorkspaceRoleEnum:
        return WorkspaceRoleEnum(self.role)

    def __repr__(self) -> str:
        return f"<WorkspaceMember(workspace_id={self.workspace_id}, user_id={self.user_id}, role='{self.role}')>"


class WorkspaceInvitation(BaseModel):
    """E-mail invitation waiting to be accepted."""

    __tablename__ = "workspace_invitations"

    workspace_id: Mapped[UUID] = mapped_column(
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    role: Mapped[WorkspaceRoleEnum] = mapped_column(String(20), nullable=False)
    invited_by: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    status: Mapped[InvitationStatus] = mapped_column(
        String(20), default=InvitationStatus.PENDING, nullable=False
    )
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint("workspace_id", "email", name="uq_workspace_invitation_email"),
    )
