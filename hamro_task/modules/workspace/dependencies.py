"""
Workspace dependencies.

Every workspace-scoped endpoint receives a ``WorkspaceContext`` built from
the ``X-Workspace-ID`` header and the caller's membership in it.
"""
from dataclasses import dataclass
from typing import Callable, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hamro_task.core.database import get_db_session
from hamro_task.modules.auth.dependencies import get_current_user
from hamro_task.modules.auth.models import User

from .models import Workspace, WorkspaceMember, WorkspaceRoleEnum


@dataclass(frozen=True)
class WorkspaceContext:
    """Who is acting, in which workspace, with which role."""

    workspace: Workspace
    user: User
    member: WorkspaceMember

    @property
    def workspace_id(self) -> UUID:
        return self.workspace.id

    @property
    def user_id(self) -> UUID:
        return self.user.id

    @property
    def role(self) -> WorkspaceRoleEnum:
        return WorkspaceRoleEnum(self.member.role)


async def get_workspace_id_from_header(request: Request) -> Optional[UUID]:
    """
    Extract workspace ID from X-Workspace-ID header.

    Raises:
        HTTPException: If the header is not a UUID
    """
    workspace_id_str = request.headers.get("X-Workspace-ID")
    if not workspace_id_str:
        return None

    try:
        return UUID(workspace_id_str)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid workspace ID format in X-Workspace-ID header"
        )


async def load_workspace_context(
    db: AsyncSession, workspace_id: UUID, user: User
) -> WorkspaceContext:
    """
    Build the context for a user in a workspace.

    Raises:
        HTTPException: 404 if the workspace does not exist, 403 if the user
            is not a member
    """
    workspace = await db.get(Workspace, workspace_id)
    if workspace is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Workspace not found"
        )

    result = await db.execute(
        select(WorkspaceMember).where(
            WorkspaceMember.workspace_id == workspace_id,
            WorkspaceMember.user_id == user.id,
        )
    )
    member = result.scalar_one_or_none()
    if member is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied: You are not a member of this workspace"
        )
    return WorkspaceContext(workspace=workspace, user=user, member=member)


async def get_workspace_context(
    workspace_id: Optional[UUID] = Depends(get_workspace_id_from_header),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> WorkspaceContext:
    """
    Require the X-Workspace-ID header and membership in that workspace.
    """
    if workspace_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Workspace-ID header is required for this operation"
        )
    return await load_workspace_context(db, workspace_id, current_user)


def require_role(minimum: WorkspaceRoleEnum) -> Callable:
    """
    Dependency factory gating an endpoint on the role hierarchy.

    Usage:
        @router.post("/projects")
        async def create(ctx: WorkspaceContext = Depends(require_role(WorkspaceRoleEnum.MEMBER))):
            ...
    """

    async def dependency(
        ctx: WorkspaceContext = Depends(get_workspace_context),
    ) -> WorkspaceContext:
        if not ctx.role.at_least(minimum):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied: requires {minimum.value} role or higher"
            )
        return ctx

    return dependency


require_member = require_role(WorkspaceRoleEnum.MEMBER)
require_admin = require_role(WorkspaceRoleEnum.ADMIN)
require_owner = require_role(WorkspaceRoleEnum.OWNER)
