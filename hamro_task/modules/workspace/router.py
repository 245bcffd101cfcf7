"""
Workspace router.

This module provides API endpoints for workspace management. Endpoints
under ``/workspace`` act on the workspace named by the ``X-Workspace-ID``
header.
"""
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from hamro_task.core.database import get_db_session
from hamro_task.core.exceptions import BaseAPIException
from hamro_task.core.logger import get_logger
from hamro_task.core.schemas import OperationResult
from hamro_task.integrations.functions import FunctionsClient, get_functions_client
from hamro_task.modules.auth.dependencies import get_current_user
from hamro_task.modules.auth.models import User

from .dependencies import WorkspaceContext, get_workspace_context, require_admin
from .models import WorkspaceRoleEnum
from .presence import presence
from .schemas import (
    InvitationCreate,
    InvitationResponse,
    MemberListResponse,
    MemberRoleUpdate,
    PresenceResponse,
    WorkspaceCreate,
    WorkspaceResponse,
    WorkspaceUpdate,
)
from .service import WorkspaceService

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    "/workspaces",
    response_model=WorkspaceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create new workspace",
    description="Create a new workspace. The creator becomes the owner.",
)
async def create_workspace(
    workspace_data: WorkspaceCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Create a new workspace."""
    service = WorkspaceService(db)

    try:
        workspace = await service.create_workspace(workspace_data, current_user)
    except BaseAPIException:
        raise
    except Exception as e:
        logger.error("Failed to create workspace", error=str(e), user_id=str(current_user.id))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create workspace"
        )

    response = WorkspaceResponse.from_orm(workspace)
    response.role = WorkspaceRoleEnum.OWNER
    return response


@router.get(
    "/workspaces",
    response_model=List[WorkspaceResponse],
    summary="List my workspaces",
    description="Workspaces the caller belongs to, with the caller's role in each.",
)
async def list_workspaces(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    service = WorkspaceService(db)
    rows = await service.list_user_workspaces(current_user)

    responses = []
    for workspace, role in rows:
        response = WorkspaceResponse.from_orm(workspace)
        response.role = role
        responses.append(response)

    logger.info("Workspaces listed via API", user_id=str(current_user.id), count=len(responses))
    return responses


@router.get("/workspace", response_model=WorkspaceResponse, summary="Current workspace")
async def get_workspace(ctx: WorkspaceContext = Depends(get_workspace_context)):
    response = WorkspaceResponse.from_orm(ctx.workspace)
    response.role = ctx.role
    return response


@router.patch(
    "/workspace",
    response_model=WorkspaceResponse,
    summary="Update workspace",
    description="Rename or describe the workspace. Requires admin access.",
)
async def update_workspace(
    workspace_data: WorkspaceUpdate,
    ctx: WorkspaceContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    workspace = await WorkspaceService(db).update_workspace(ctx.workspace, workspace_data)
    response = WorkspaceResponse.from_orm(workspace)
    response.role = ctx.role
    return response


@router.get("/workspace/members", response_model=MemberListResponse, summary="List workspace members")
async def list_members(
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    members = await WorkspaceService(db).list_members(ctx.workspace_id)
    return MemberListResponse(members=members, total=len(members))


@router.post(
    "/workspace/invitations",
    response_model=OperationResult,
    summary="Invite member",
    description=(
        "Invite someone by e-mail. Requires admin access. Answers success=false with "
        "code ALREADY_MEMBER or LIMIT_REACHED instead of an error for expected refusals."
    ),
)
async def invite_member(
    invitation: InvitationCreate,
    ctx: WorkspaceContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    functions: FunctionsClient = Depends(get_functions_client),
):
    return await WorkspaceService(db).invite_member(
        ctx.workspace_id, invitation, ctx.user, functions, actor_role=ctx.role
    )


@router.get(
    "/invitations",
    response_model=List[InvitationResponse],
    summary="My pending invitations",
)
async def list_my_invitations(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return await WorkspaceService(db).list_pending_invitations(current_user)


@router.post("/invitations/{invitation_id}/accept", response_model=OperationResult)
async def accept_invitation(
    invitation_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    member = await WorkspaceService(db).accept_invitation(invitation_id, current_user)
    return OperationResult.ok(workspace_id=str(member.workspace_id), role=member.role)


@router.post("/invitations/{invitation_id}/decline", response_model=OperationResult)
async def decline_invitation(
    invitation_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await WorkspaceService(db).decline_invitation(invitation_id, current_user)
    return OperationResult.ok()


@router.patch(
    "/workspace/members/{user_id}",
    response_model=OperationResult,
    summary="Change member role",
    description="Requires admin access; only the owner may grant or revoke admin.",
)
async def update_member_role(
    user_id: UUID,
    data: MemberRoleUpdate,
    ctx: WorkspaceContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    member = await WorkspaceService(db).update_member_role(
        ctx.workspace_id, user_id, data.role, actor_role=ctx.role
    )
    logger.info(
        "Workspace member updated via API",
        workspace_id=str(ctx.workspace_id),
        member_id=str(user_id),
        updated_by=str(ctx.user_id),
    )
    return OperationResult.ok(user_id=str(user_id), role=member.role)


@router.delete(
    "/workspace/members/{user_id}",
    response_model=OperationResult,
    summary="Remove workspace member",
    description="Requires admin access and confirm=true. The owner cannot be removed.",
)
async def remove_member(
    user_id: UUID,
    confirm: bool = Query(False, description="Must be true to remove the member"),
    ctx: WorkspaceContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    functions: FunctionsClient = Depends(get_functions_client),
):
    result = await WorkspaceService(db).remove_member(ctx.workspace_id, user_id, functions, confirm=confirm)
    if result.success:
        presence.leave(ctx.workspace_id, user_id)
    return result


@router.post(
    "/workspace/members/{user_id}/reset-password",
    response_model=OperationResult,
    summary="Reset member password",
)
async def reset_member_password(
    user_id: UUID,
    ctx: WorkspaceContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    functions: FunctionsClient = Depends(get_functions_client),
):
    return await WorkspaceService(db).reset_member_password(ctx.workspace_id, user_id, functions)


@router.post("/workspace/presence", response_model=PresenceResponse, summary="Presence heartbeat")
async def heartbeat(
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    presence.heartbeat(ctx.workspace_id, ctx.user_id)
    await WorkspaceService(db).heartbeat(ctx.member)
    return PresenceResponse(online_user_ids=presence.online_users(ctx.workspace_id))


@router.get("/workspace/presence", response_model=PresenceResponse, summary="Online members")
async def online_members(ctx: WorkspaceContext = Depends(get_workspace_context)):
    return PresenceResponse(online_user_ids=presence.online_users(ctx.workspace_id))
