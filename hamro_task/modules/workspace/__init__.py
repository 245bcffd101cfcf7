"""
Workspace module.

This module handles workspaces, member roles, invitations and presence.
"""

from .models import Workspace, WorkspaceInvitation, WorkspaceMember, WorkspaceRoleEnum
from .schemas import (
    MemberResponse,
    WorkspaceCreate,
    WorkspaceResponse,
    WorkspaceUpdate,
)

__all__ = [
    "Workspace",
    "WorkspaceMember",
    "WorkspaceInvitation",
    "WorkspaceRoleEnum",
    "WorkspaceCreate",
    "WorkspaceResponse",
    "WorkspaceUpdate",
    "MemberResponse",
]
