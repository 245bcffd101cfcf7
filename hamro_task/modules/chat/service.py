"""
Chat service.

This module provides channel management with per-user unread counts,
cursor-paged channel messages and direct conversations. Message edits and
deletes only ever match the caller's own rows.
"""
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Set
from uuid import UUID

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hamro_task.core.config import settings
from hamro_task.core.exceptions import (
    AuthorizationException,
    BusinessRuleException,
    ConflictException,
    ResourceNotFoundException,
)
from hamro_task.core.logger import get_logger
from hamro_task.core.metrics import record_chat_message
from hamro_task.core.models import as_utc, enum_value, utcnow
from hamro_task.core.realtime import ChangeType, change_feed
from hamro_task.modules.auth.models import User
from hamro_task.modules.notifications.models import EntityType, NotificationType
from hamro_task.modules.notifications.service import NotificationService
from hamro_task.modules.workspace.models import WorkspaceMember, WorkspaceRoleEnum

from .models import (
    Channel,
    ChannelMember,
    ChannelMemberRole,
    ChannelReadStatus,
    DMConversation,
    DMMessage,
    Message,
)
from .schemas import ChannelCreate

logger = get_logger(__name__)

MENTION_PATTERN = re.compile(r'(?<![\w@])@([\w.\-]+)')


def extract_mentions(content: str) -> Set[str]:
    """Lowercased handles mentioned as ``@handle``."""
    return {m.lower().rstrip('.') for m in MENTION_PATTERN.findall(content or "")}


@dataclass
class MessagePage:
    """One page of messages, newest first."""

    messages: List = field(default_factory=list)
    has_more: bool = False


def _clean_content(content: str) -> str:
    content = (content or "").strip()
    if not content:
        raise BusinessRuleException("Message cannot be empty", code="EMPTY_MESSAGE")
    return content


class ChannelService:
    """Service class for chat channels."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_channel(self, workspace_id: UUID, channel_id: UUID) -> Channel:
        channel = await self.db.get(Channel, channel_id)
        if channel is None or channel.workspace_id != workspace_id:
            raise ResourceNotFoundException("Channel", str(channel_id))
        return channel

    async def get_visible_channel(self, workspace_id: UUID, channel_id: UUID, user_id: UUID) -> Channel:
        """
        A channel the user may read and post in.

        Private channels of which the user is not a member are reported as
        missing, the same as channels of another workspace.
        """
        channel = await self.get_channel(workspace_id, channel_id)
        if channel.is_private and await self._membership(channel_id, user_id) is None:
            raise ResourceNotFoundException("Channel", str(channel_id))
        return channel

    async def list_channels(self, workspace_id: UUID, user_id: UUID) -> List[Dict]:
        """
        Channels of a workspace visible to the user, with unread counts.

        Public channels are listed for every member, private ones only for
        their members. A message is unread when someone else sent it after
        the user's ``last_read_at`` for that channel; with no read status
        every message from others counts.
        """
        result = await self.db.execute(
            select(Channel)
            .where(
                Channel.workspace_id == workspace_id,
                or_(
                    Channel.is_private.is_(False),
                    Channel.id.in_(
                        select(ChannelMember.channel_id).where(ChannelMember.user_id == user_id)
                    ),
                ),
            )
            .order_by(Channel.name)
        )
        channels = list(result.scalars().all())
        counts = await self._unread_counts(workspace_id, user_id)
        return [
            {**channel.to_dict(), "unread_count": counts.get(channel.id, 0)}
            for channel in channels
        ]

    async def _unread_counts(self, workspace_id: UUID, user_id: UUID) -> Dict[UUID, int]:
        result = await self.db.execute(
            select(Message.channel_id, func.count(Message.id))
            .join(Channel, Channel.id == Message.channel_id)
            .outerjoin(
                ChannelReadStatus,
                and_(
                    ChannelReadStatus.channel_id == Message.channel_id,
                    ChannelReadStatus.user_id == user_id,
                ),
            )
            .where(
                Channel.workspace_id == workspace_id,
                Message.sender_id != user_id,
                or_(
                    ChannelReadStatus.last_read_at.is_(None),
                    Message.created_at > ChannelReadStatus.last_read_at,
                ),
            )
            .group_by(Message.channel_id)
        )
        return {channel_id: count for channel_id, count in result.all()}

    async def create_channel(self, workspace_id: UUID, data: ChannelCreate, creator_id: UUID) -> Channel:
        """
        Create a channel; the creator becomes its first admin.

        Raises:
            ConflictException: If the workspace already has a channel of that name
            BusinessRuleException: If an initial member is not in the workspace
        """
        existing = await self.db.scalar(
            select(Channel.id).where(Channel.workspace_id == workspace_id, Channel.name == data.name)
        )
        if existing is not None:
            raise ConflictException(f"Channel '{data.name}' already exists")
        member_ids = [user_id for user_id in dict.fromkeys(data.member_ids) if user_id != creator_id]
        for user_id in member_ids:
            await self._require_workspace_member(workspace_id, user_id)

        channel = Channel(
            workspace_id=workspace_id,
            name=data.name,
            description=data.description,
            is_private=data.is_private,
            created_by=creator_id,
        )
        self.db.add(channel)
        await self.db.flush()
        self.db.add(ChannelMember(
            channel_id=channel.id,
            user_id=creator_id,
            role=ChannelMemberRole.ADMIN.value,
            added_by=creator_id,
        ))
        for user_id in member_ids:
            self.db.add(ChannelMember(channel_id=channel.id, user_id=user_id, added_by=creator_id))
        await self.db.commit()
        await self._publish(channel, ChangeType.INSERT)
        logger.info("Channel created", channel_id=str(channel.id), name=channel.name,
                    is_private=channel.is_private)
        return channel

    async def delete_channel(
        self, workspace_id: UUID, channel_id: UUID, actor_id: UUID, actor_role: WorkspaceRoleEnum
    ) -> None:
        """Only the channel's creator or a workspace manager may delete it."""
        channel = await self.get_channel(workspace_id, channel_id)
        if channel.created_by != actor_id and not WorkspaceRoleEnum(actor_role).is_manager:
            raise AuthorizationException("Only the channel creator or an admin can delete it")

        old = await self._payload(channel)
        await self.db.execute(delete(ChannelReadStatus).where(ChannelReadStatus.channel_id == channel_id))
        await self.db.execute(delete(ChannelMember).where(ChannelMember.channel_id == channel_id))
        await self.db.execute(delete(Message).where(Message.channel_id == channel_id))
        await self.db.delete(channel)
        await self.db.commit()
        change_feed.publish_row("channels", ChangeType.DELETE, old=old)
        logger.info("Channel deleted", channel_id=str(channel_id))

    async def list_members(self, workspace_id: UUID, channel_id: UUID, user_id: UUID) -> List[ChannelMember]:
        await self.get_visible_channel(workspace_id, channel_id, user_id)
        result = await self.db.execute(
            select(ChannelMember)
            .where(ChannelMember.channel_id == channel_id)
            .order_by(ChannelMember.created_at)
        )
        return list(result.scalars().all())

    async def add_member(
        self,
        workspace_id: UUID,
        channel_id: UUID,
        user_id: UUID,
        actor_id: UUID,
        actor_role: WorkspaceRoleEnum,
        role: ChannelMemberRole = ChannelMemberRole.MEMBER,
    ) -> ChannelMember:
        """
        Add a workspace member to a channel.

        Raises:
            AuthorizationException: Unless the actor administers the channel
                or manages the workspace
            BusinessRuleException: If the user is not in the workspace
            ConflictException: If the user is already a member
        """
        channel = await self.get_channel(workspace_id, channel_id)
        await self._require_channel_manager(channel, actor_id, actor_role)
        await self._require_workspace_member(workspace_id, user_id)
        if await self._membership(channel_id, user_id) is not None:
            raise ConflictException("User is already a member of this channel")

        membership = ChannelMember(
            channel_id=channel_id,
            user_id=user_id,
            role=enum_value(role),
            added_by=actor_id,
        )
        self.db.add(membership)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictException("User is already a member of this channel")

        await self._publish(channel, ChangeType.UPDATE)
        logger.info("Channel member added", channel_id=str(channel_id), user_id=str(user_id))
        return membership

    async def remove_member(
        self,
        workspace_id: UUID,
        channel_id: UUID,
        user_id: UUID,
        actor_id: UUID,
        actor_role: WorkspaceRoleEnum,
    ) -> None:
        """Remove a member from a channel. Anyone may leave a channel they are in."""
        channel = await self.get_channel(workspace_id, channel_id)
        if user_id != actor_id:
            await self._require_channel_manager(channel, actor_id, actor_role)
        membership = await self._membership(channel_id, user_id)
        if membership is None:
            raise ResourceNotFoundException("Channel member", str(user_id))

        await self.db.delete(membership)
        await self.db.execute(
            delete(ChannelReadStatus).where(
                ChannelReadStatus.channel_id == channel_id,
                ChannelReadStatus.user_id == user_id,
            )
        )
        await self.db.commit()
        await self._publish(channel, ChangeType.UPDATE)
        logger.info("Channel member removed", channel_id=str(channel_id), user_id=str(user_id))

    async def _membership(self, channel_id: UUID, user_id: UUID) -> Optional[ChannelMember]:
        result = await self.db.execute(
            select(ChannelMember).where(
                ChannelMember.channel_id == channel_id,
                ChannelMember.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def _require_channel_manager(
        self, channel: Channel, actor_id: UUID, actor_role: WorkspaceRoleEnum
    ) -> None:
        if WorkspaceRoleEnum(actor_role).is_manager:
            return
        membership = await self._membership(channel.id, actor_id)
        if membership is None or membership.role != ChannelMemberRole.ADMIN.value:
            raise AuthorizationException("Only channel admins can manage its members")

    async def _require_workspace_member(self, workspace_id: UUID, user_id: UUID) -> None:
        is_member = await self.db.scalar(
            select(WorkspaceMember.id).where(
                WorkspaceMember.workspace_id == workspace_id,
                WorkspaceMember.user_id == user_id,
            )
        )
        if is_member is None:
            raise BusinessRuleException("That user is not a member of this workspace", code="NOT_A_MEMBER")

    async def _payload(self, channel: Channel) -> Dict:
        """Row payload for the change feed; private channels carry their member ids."""
        row = channel.to_dict()
        if channel.is_private:
            result = await self.db.execute(
                select(ChannelMember.user_id).where(ChannelMember.channel_id == channel.id)
            )
            row["member_ids"] = [str(user_id) for user_id in result.scalars().all()]
        return row

    async def _publish(self, channel: Channel, change_type: ChangeType) -> None:
        change_feed.publish_row("channels", change_type, new=await self._payload(channel))

    async def mark_read(self, workspace_id: UUID, channel_id: UUID, user_id: UUID,
                        now: Optional[datetime] = None) -> ChannelReadStatus:
        """Upsert the user's read marker for a channel."""
        await self.get_visible_channel(workspace_id, channel_id, user_id)
        now = now or utcnow()
        marker = await self._read_status(channel_id, user_id)
        if marker is None:
            marker = ChannelReadStatus(channel_id=channel_id, user_id=user_id, last_read_at=now)
            self.db.add(marker)
            try:
                await self.db.commit()
                return marker
            except IntegrityError:
                await self.db.rollback()
                marker = await self._read_status(channel_id, user_id)
        marker.last_read_at = now
        await self.db.commit()
        return marker

    async def _read_status(self, channel_id: UUID, user_id: UUID) -> Optional[ChannelReadStatus]:
        result = await self.db.execute(
            select(ChannelReadStatus).where(
                ChannelReadStatus.channel_id == channel_id,
                ChannelReadStatus.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()


class MessageService:
    """Service class for channel messages."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def fetch_page(
        self,
        workspace_id: UUID,
        channel_id: UUID,
        reader_id: UUID,
        before: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> MessagePage:
        """
        Up to one page of messages, newest first.

        Args:
            reader_id: Member reading the channel; private channels need membership
            before: Only messages created strictly before this instant
            limit: Page size, defaults to the configured chat page size

        Returns:
            MessagePage; ``has_more`` is set when the page came back full
        """
        await ChannelService(self.db).get_visible_channel(workspace_id, channel_id, reader_id)
        limit = limit or settings.chat_page_size
        query = select(Message).where(Message.channel_id == channel_id)
        if before is not None:
            query = query.where(Message.created_at < as_utc(before))
        result = await self.db.execute(
            query.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit)
        )
        rows = list(result.scalars().all())
        return MessagePage(messages=rows, has_more=len(rows) == limit)

    async def send(
        self,
        workspace_id: UUID,
        channel_id: UUID,
        sender_id: UUID,
        content: str,
        reply_to_id: Optional[UUID] = None,
    ) -> Message:
        channel = await ChannelService(self.db).get_visible_channel(workspace_id, channel_id, sender_id)
        content = _clean_content(content)
        if reply_to_id is not None:
            parent = await self.db.get(Message, reply_to_id)
            if parent is None or parent.channel_id != channel_id:
                raise ResourceNotFoundException("Message", str(reply_to_id))

        message = Message(
            channel_id=channel_id,
            sender_id=sender_id,
            content=content,
            reply_to_id=reply_to_id,
        )
        self.db.add(message)
        await self.db.commit()

        record_chat_message("channel")
        change_feed.publish_row("messages", ChangeType.INSERT, new=message.to_dict())
        await self._notify_mentions(channel, message)
        return message

    async def edit(self, workspace_id: UUID, message_id: UUID, sender_id: UUID, content: str) -> Message:
        """
        Replace the text of one of the caller's messages.

        Raises:
            ResourceNotFoundException: If no message of the caller has that id
        """
        message = await self._own_message(workspace_id, message_id, sender_id)
        message.content = _clean_content(content)
        message.is_edited = True
        message.edited_at = utcnow()
        await self.db.commit()
        change_feed.publish_row("messages", ChangeType.UPDATE, new=message.to_dict())
        return message

    async def delete(self, workspace_id: UUID, message_id: UUID, sender_id: UUID) -> None:
        message = await self._own_message(workspace_id, message_id, sender_id)
        old = message.to_dict()
        await self.db.delete(message)
        await self.db.commit()
        change_feed.publish_row("messages", ChangeType.DELETE, old=old)

    async def _own_message(self, workspace_id: UUID, message_id: UUID, sender_id: UUID) -> Message:
        result = await self.db.execute(
            select(Message)
            .join(Channel, Channel.id == Message.channel_id)
            .where(
                Message.id == message_id,
                Message.sender_id == sender_id,
                Channel.workspace_id == workspace_id,
            )
        )
        message = result.scalar_one_or_none()
        if message is None:
            raise ResourceNotFoundException("Message", str(message_id))
        return message

    async def _notify_mentions(self, channel: Channel, message: Message) -> None:
        handles = extract_mentions(message.content)
        if not handles:
            return
        query = (
            select(User)
            .join(WorkspaceMember, WorkspaceMember.user_id == User.id)
            .where(WorkspaceMember.workspace_id == channel.workspace_id)
        )
        if channel.is_private:
            query = query.join(
                ChannelMember,
                and_(ChannelMember.user_id == User.id, ChannelMember.channel_id == channel.id),
            )
        result = await self.db.execute(query)
        notifications = NotificationService(self.db)
        for user in result.scalars().all():
            if user.email.split("@")[0].lower() not in handles:
                continue
            await notifications.notify(
                workspace_id=channel.workspace_id,
                user_id=user.id,
                actor_id=message.sender_id,
                notification_type=NotificationType.CHAT_MENTION,
                title=f"You were mentioned in #{channel.name}",
                body=message.content[:200],
                entity_type=EntityType.CHAT,
                entity_id=message.id,
                metadata={"channel_id": str(channel.id), "is_dm": False},
            )


class DirectMessageService:
    """Service class for direct conversations between two members."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_or_create_conversation(self, workspace_id: UUID, user_id: UUID, other_id: UUID) -> DMConversation:
        """
        The conversation between two members, created on first use.

        Participants are stored in a fixed order so a pair maps to one row.
        """
        if user_id == other_id:
            raise BusinessRuleException("Cannot start a conversation with yourself", code="SELF_CONVERSATION")
        is_member = await self.db.scalar(
            select(WorkspaceMember.id).where(
                WorkspaceMember.workspace_id == workspace_id,
                WorkspaceMember.user_id == other_id,
            )
        )
        if is_member is None:
            raise BusinessRuleException("That user is not a member of this workspace", code="NOT_A_MEMBER")

        first, second = sorted((user_id, other_id), key=str)
        conversation = await self._find(workspace_id, first, second)
        if conversation is not None:
            return conversation

        conversation = DMConversation(workspace_id=workspace_id, participant_1=first, participant_2=second)
        self.db.add(conversation)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            return await self._find(workspace_id, first, second)
        change_feed.publish_row("dm_conversations", ChangeType.INSERT, new=conversation.to_dict())
        return conversation

    async def _find(self, workspace_id: UUID, first: UUID, second: UUID) -> Optional[DMConversation]:
        result = await self.db.execute(
            select(DMConversation).where(
                DMConversation.workspace_id == workspace_id,
                DMConversation.participant_1 == first,
                DMConversation.participant_2 == second,
            )
        )
        return result.scalar_one_or_none()

    async def list_conversations(self, workspace_id: UUID, user_id: UUID) -> List[DMConversation]:
        """The user's conversations, most recently active first."""
        result = await self.db.execute(
            select(DMConversation)
            .where(
                DMConversation.workspace_id == workspace_id,
                or_(DMConversation.participant_1 == user_id, DMConversation.participant_2 == user_id),
            )
            .order_by(DMConversation.updated_at.desc())
        )
        return list(result.scalars().all())

    async def get_conversation(self, workspace_id: UUID, conversation_id: UUID, user_id: UUID) -> DMConversation:
        conversation = await self.db.get(DMConversation, conversation_id)
        if (
            conversation is None
            or conversation.workspace_id != workspace_id
            or user_id not in (conversation.participant_1, conversation.participant_2)
        ):
            raise ResourceNotFoundException("Conversation", str(conversation_id))
        return conversation

    async def fetch_page(
        self,
        workspace_id: UUID,
        conversation_id: UUID,
        user_id: UUID,
        before: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> MessagePage:
        await self.get_conversation(workspace_id, conversation_id, user_id)
        limit = limit or settings.chat_page_size
        query = select(DMMessage).where(DMMessage.conversation_id == conversation_id)
        if before is not None:
            query = query.where(DMMessage.created_at < as_utc(before))
        result = await self.db.execute(
            query.order_by(DMMessage.created_at.desc(), DMMessage.id.desc()).limit(limit)
        )
        rows = list(result.scalars().all())
        return MessagePage(messages=rows, has_more=len(rows) == limit)

    async def send(
        self,
        workspace_id: UUID,
        conversation_id: UUID,
        sender_id: UUID,
        content: str,
        reply_to_id: Optional[UUID] = None,
    ) -> DMMessage:
        """Post a message and move the conversation to the top of both lists."""
        conversation = await self.get_conversation(workspace_id, conversation_id, sender_id)
        content = _clean_content(content)
        if reply_to_id is not None:
            parent = await self.db.get(DMMessage, reply_to_id)
            if parent is None or parent.conversation_id != conversation_id:
                raise ResourceNotFoundException("Message", str(reply_to_id))

        message = DMMessage(
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=content,
            reply_to_id=reply_to_id,
        )
        self.db.add(message)
        conversation.updated_at = utcnow()
        await self.db.commit()

        record_chat_message("dm")
        change_feed.publish_row("dm_messages", ChangeType.INSERT, new=message.to_dict())
        change_feed.publish_row("dm_conversations", ChangeType.UPDATE, new=conversation.to_dict())
        return message

    async def edit(self, workspace_id: UUID, message_id: UUID, sender_id: UUID, content: str) -> DMMessage:
        message = await self._own_message(workspace_id, message_id, sender_id)
        message.content = _clean_content(content)
        message.is_edited = True
        message.edited_at = utcnow()
        await self.db.commit()
        change_feed.publish_row("dm_messages", ChangeType.UPDATE, new=message.to_dict())
        return message

    async def delete(self, workspace_id: UUID, message_id: UUID, sender_id: UUID) -> None:
        message = await self._own_message(workspace_id, message_id, sender_id)
        old = message.to_dict()
        await self.db.delete(message)
        await self.db.commit()
        change_feed.publish_row("dm_messages", ChangeType.DELETE, old=old)

    async def mark_read(self, workspace_id: UUID, conversation_id: UUID, user_id: UUID) -> int:
        """Mark the other participant's messages as read; returns how many changed."""
        await self.get_conversation(workspace_id, conversation_id, user_id)
        result = await self.db.execute(
            select(DMMessage).where(
                DMMessage.conversation_id == conversation_id,
                DMMessage.sender_id != user_id,
                DMMessage.is_read.is_(False),
            )
        )
        rows = list(result.scalars().all())
        for message in rows:
            message.is_read = True
        await self.db.commit()
        return len(rows)

    async def _own_message(self, workspace_id: UUID, message_id: UUID, sender_id: UUID) -> DMMessage:
        result = await self.db.execute(
            select(DMMessage)
            .join(DMConversation, DMConversation.id == DMMessage.conversation_id)
            .where(
                DMMessage.id == message_id,
                DMMessage.sender_id == sender_id,
                DMConversation.workspace_id == workspace_id,
            )
        )
        message = result.scalar_one_or_none()
        if message is None:
            raise ResourceNotFoundException("Message", str(message_id))
        return message
