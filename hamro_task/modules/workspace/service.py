"""
Workspace service.

This module provides business logic for workspaces, their members and
e-mail invitations.
"""
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from hamro_task.core.exceptions import (
    AuthorizationException,
    BusinessRuleException,
    ConfirmationRequiredException,
    ResourceNotFoundException,
)
from hamro_task.core.logger import get_logger
from hamro_task.core.models import enum_value, utcnow
from hamro_task.core.schemas import OperationResult
from hamro_task.integrations.functions import FunctionsClient
from hamro_task.modules.auth.models import User
from hamro_task.modules.chat.models import Channel, ChannelMember
from hamro_task.modules.subscription.limits import LIMIT_REACHED
from hamro_task.modules.subscription.service import SubscriptionService

from .models import (
    InvitationStatus,
    Workspace,
    WorkspaceInvitation,
    WorkspaceMember,
    WorkspaceRoleEnum,
)
from .schemas import InvitationCreate, MemberResponse, WorkspaceCreate, WorkspaceUpdate

logger = get_logger(__name__)

ALREADY_MEMBER = "ALREADY_MEMBER"
INVITATION_NOT_SENT = "INVITATION_NOT_SENT"


def _check_grant(role: WorkspaceRoleEnum, actor_role: WorkspaceRoleEnum) -> None:
    """Ownership is never handed out; only the owner hands out admin."""
    if role == WorkspaceRoleEnum.OWNER:
        raise AuthorizationException("Ownership cannot be granted to another member")
    if role == WorkspaceRoleEnum.ADMIN and actor_role != WorkspaceRoleEnum.OWNER:
        raise AuthorizationException("Only the owner can grant or revoke the admin role")


class WorkspaceService:
    """Service class for workspace operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_workspace(self, workspace_data: WorkspaceCreate, owner: User) -> Workspace:
        """
        Create a new workspace.

        The creator becomes its owner and the workspace starts on the Free
        plan when one is configured.

        Args:
            workspace_data: Workspace creation data
            owner: Creating user

        Returns:
            Created workspace
        """
        workspace = Workspace(
            name=workspace_data.name,
            description=workspace_data.description,
            created_by=owner.id,
        )
        self.db.add(workspace)
        await self.db.flush()  # Get the workspace ID

        self.db.add(WorkspaceMember(
            workspace_id=workspace.id,
            user_id=owner.id,
            role=WorkspaceRoleEnum.OWNER.value,
            last_active_at=utcnow(),
        ))
        await SubscriptionService(self.db).start_free_plan(workspace.id)

        await self.db.commit()
        await self.db.refresh(workspace)

        logger.info("Workspace created", workspace_id=str(workspace.id), owner_id=str(owner.id))
        return workspace

    async def list_user_workspaces(self, user: User) -> List[Tuple[Workspace, WorkspaceRoleEnum]]:
        """
        Get the workspaces a user belongs to, with the user's role in each.

        Returns:
            (workspace, role) pairs, oldest membership first
        """
        result = await self.db.execute(
            select(Workspace, WorkspaceMember.role)
            .join(WorkspaceMember, WorkspaceMember.workspace_id == Workspace.id)
            .where(WorkspaceMember.user_id == user.id)
            .order_by(WorkspaceMember.created_at)
        )
        return [(workspace, WorkspaceRoleEnum(role)) for workspace, role in result.all()]

    async def update_workspace(self, workspace: Workspace, workspace_data: WorkspaceUpdate) -> Workspace:
        """
        Update workspace.

        Args:
            workspace: Workspace to update
            workspace_data: Update data

        Returns:
            Updated workspace
        """
        workspace.update_from_dict(workspace_data.dict(exclude_unset=True))
        await self.db.commit()
        await self.db.refresh(workspace)

        logger.info("Workspace updated", workspace_id=str(workspace.id))
        return workspace

    async def get_member(self, workspace_id: UUID, user_id: UUID) -> Optional[WorkspaceMember]:
        result = await self.db.execute(
            select(WorkspaceMember).where(
                WorkspaceMember.workspace_id == workspace_id,
                WorkspaceMember.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def require_member(self, workspace_id: UUID, user_id: UUID) -> WorkspaceMember:
        member = await self.get_member(workspace_id, user_id)
        if member is None:
            raise ResourceNotFoundException("WorkspaceMember", str(user_id))
        return member

    async def list_members(self, workspace_id: UUID) -> List[MemberResponse]:
        """
        Members of a workspace joined with their profiles.

        Returns:
            Members ordered owner first, then by join time
        """
        result = await self.db.execute(
            select(WorkspaceMember, User)
            .join(User, User.id == WorkspaceMember.user_id)
            .where(WorkspaceMember.workspace_id == workspace_id)
            .order_by(WorkspaceMember.created_at)
        )
        members = [
            MemberResponse(
                user_id=user.id,
                email=user.email,
                full_name=user.full_name,
                avatar_url=user.avatar_url,
                role=WorkspaceRoleEnum(member.role),
                last_active_at=member.last_active_at,
                joined_at=member.created_at,
            )
            for member, user in result.all()
        ]
        members.sort(key=lambda m: -m.role.rank)
        return members

    async def invite_member(
        self,
        workspace_id: UUID,
        data: InvitationCreate,
        invited_by: User,
        functions: FunctionsClient,
        actor_role: WorkspaceRoleEnum,
    ) -> OperationResult:
        """
        Invite someone to the workspace by e-mail.

        Refusals are reported as soft outcomes: ``ALREADY_MEMBER`` when the
        address already belongs to a member and ``LIMIT_REACHED`` when the
        plan has no room for another member.

        Args:
            workspace_id: Workspace to invite into
            data: Address and role
            invited_by: Inviting user
            functions: Client used to send the invitation e-mail
            actor_role: Inviting user's role in the workspace

        Returns:
            OperationResult with the invitation id on success

        Raises:
            AuthorizationException: If the role offered is one the inviting
                user may not grant
        """
        _check_grant(data.role, actor_role)

        existing = await self.db.execute(
            select(WorkspaceMember.id)
            .join(User, User.id == WorkspaceMember.user_id)
            .where(WorkspaceMember.workspace_id == workspace_id, User.email == data.email)
        )
        if existing.first() is not None:
            return OperationResult.refused(f"{data.email} is already a member of this workspace", ALREADY_MEMBER)

        limits = await SubscriptionService(self.db).get_limits(workspace_id)
        if not limits.can_add_member:
            return OperationResult.refused(
                f"Your {limits.plan_name} plan allows up to {limits.max_members} members. "
                "Upgrade to invite more people.",
                LIMIT_REACHED,
            )

        result = await self.db.execute(
            select(WorkspaceInvitation).where(
                WorkspaceInvitation.workspace_id == workspace_id,
                WorkspaceInvitation.email == data.email,
            )
        )
        invitation = result.scalar_one_or_none()
        if invitation is None:
            invitation = WorkspaceInvitation(workspace_id=workspace_id, email=data.email)
            self.db.add(invitation)
        invitation.role = data.role.value
        invitation.invited_by = invited_by.id
        invitation.status = InvitationStatus.PENDING.value
        invitation.accepted_at = None
        await self.db.commit()

        sent = await functions.send_invitation(
            email=data.email,
            workspace_id=workspace_id,
            role=data.role.value,
            invited_by=invited_by.id,
        )
        if not sent.success:
            return OperationResult.refused(sent.error or "Invitation e-mail could not be sent", INVITATION_NOT_SENT)

        logger.info("Member invited", workspace_id=str(workspace_id), role=data.role.value)
        return OperationResult.ok(invitation_id=str(invitation.id))

    async def list_pending_invitations(self, user: User) -> List[WorkspaceInvitation]:
        result = await self.db.execute(
            select(WorkspaceInvitation)
            .where(
                WorkspaceInvitation.email == user.email.lower(),
                WorkspaceInvitation.status == InvitationStatus.PENDING.value,
            )
            .order_by(WorkspaceInvitation.created_at.desc())
        )
        return list(result.scalars().all())

    async def accept_invitation(self, invitation_id: UUID, user: User) -> WorkspaceMember:
        """
        Join the workspace an invitation was sent for.

        Raises:
            ResourceNotFoundException: If there is no pending invitation for
                the user's address
        """
        invitation = await self.db.get(WorkspaceInvitation, invitation_id)
        if (
            invitation is None
            or invitation.email != user.email.lower()
            or invitation.status != InvitationStatus.PENDING
        ):
            raise ResourceNotFoundException("WorkspaceInvitation", str(invitation_id))

        member = await self.get_member(invitation.workspace_id, user.id)
        if member is None:
            member = WorkspaceMember(
                workspace_id=invitation.workspace_id,
                user_id=user.id,
                role=enum_value(invitation.role),
                last_active_at=utcnow(),
            )
            self.db.add(member)

        invitation.status = InvitationStatus.ACCEPTED.value
        invitation.accepted_at = utcnow()
        await self.db.commit()

        logger.info("Invitation accepted", workspace_id=str(invitation.workspace_id), user_id=str(user.id))
        return member

    async def decline_invitation(self, invitation_id: UUID, user: User) -> None:
        invitation = await self.db.get(WorkspaceInvitation, invitation_id)
        if invitation is None or invitation.email != user.email.lower():
            raise ResourceNotFoundException("WorkspaceInvitation", str(invitation_id))
        invitation.status = InvitationStatus.REVOKED.value
        await self.db.commit()

    async def update_member_role(
        self,
        workspace_id: UUID,
        user_id: UUID,
        new_role: WorkspaceRoleEnum,
        actor_role: WorkspaceRoleEnum,
    ) -> WorkspaceMember:
        """
        Change a member's role.

        Only an owner may grant the admin role or take it away. The owner's
        own role never changes here.

        Raises:
            ResourceNotFoundException: If the user is not a member
            AuthorizationException: If the actor may not make this change
        """
        member = await self.require_member(workspace_id, user_id)
        current = WorkspaceRoleEnum(member.role)

        if current == WorkspaceRoleEnum.OWNER:
            raise AuthorizationException("The workspace owner's role cannot be changed")
        _check_grant(new_role, actor_role)
        if current == WorkspaceRoleEnum.ADMIN and actor_role != WorkspaceRoleEnum.OWNER:
            raise AuthorizationException("Only the owner can grant or revoke the admin role")

        member.role = new_role.value
        await self.db.commit()

        logger.info(
            "Member role updated",
            workspace_id=str(workspace_id),
            user_id=str(user_id),
            old_role=current.value,
            new_role=new_role.value,
        )
        return member

    async def remove_member(
        self,
        workspace_id: UUID,
        user_id: UUID,
        functions: FunctionsClient,
        confirm: bool = False,
    ) -> OperationResult:
        """
        Remove a member from the workspace.

        The member also leaves every channel of the workspace.

        Args:
            workspace_id: Workspace to remove from
            user_id: Member to remove
            functions: Client for the ``remove-member`` function
            confirm: Must be True

        Raises:
            ConfirmationRequiredException: If ``confirm`` is not set
            BusinessRuleException: When removing the owner
        """
        if not confirm:
            raise ConfirmationRequiredException("remove member")

        member = await self.require_member(workspace_id, user_id)
        if member.role == WorkspaceRoleEnum.OWNER:
            raise BusinessRuleException("The workspace owner cannot be removed", code="OWNER_NOT_REMOVABLE")

        result = await functions.remove_member(workspace_id=workspace_id, user_id=user_id)
        if not result.success:
            return OperationResult.refused(result.error or "Member could not be removed", "REMOVE_FAILED")

        await self.db.execute(
            delete(ChannelMember).where(
                ChannelMember.user_id == user_id,
                ChannelMember.channel_id.in_(select(Channel.id).where(Channel.workspace_id == workspace_id)),
            )
        )
        await self.db.delete(member)
        await self.db.commit()

        logger.info("Member removed from workspace", workspace_id=str(workspace_id), user_id=str(user_id))
        return OperationResult.ok(user_id=str(user_id))

    async def reset_member_password(
        self, workspace_id: UUID, user_id: UUID, functions: FunctionsClient
    ) -> OperationResult:
        """Ask the identity provider to send the member a password reset."""
        await self.require_member(workspace_id, user_id)
        result = await functions.reset_member_password(workspace_id=workspace_id, user_id=user_id)
        if not result.success:
            return OperationResult.refused(result.error or "Password reset failed", "RESET_FAILED")
        logger.info("Member password reset requested", workspace_id=str(workspace_id), user_id=str(user_id))
        return OperationResult.ok()

    async def heartbeat(self, member: WorkspaceMember) -> None:
        """Record member activity."""
        member.last_active_at = utcnow()
        await self.db.commit()
