"""
Chat models: channels, channel messages and direct conversations.
"""
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from hamro_task.core.models import BaseModel


class Channel(BaseModel):
    """A named chat room inside a workspace."""

    __tablename__ = "channels"

    workspace_id: Mapped[UUID] = mapped_column(
        ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    is_private: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_by: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )

    __table_args__ = (
        UniqueConstraint("workspace_id", "name", name="uq_channel_workspace_name"),
    )


class ChannelMemberRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


class ChannelMember(BaseModel):
    """
    Membership of a channel.

    Private channels are only visible to their members; in public channels
    the rows record who administers the channel.
    """

    __tablename__ = "channel_members"

    channel_id: Mapped[UUID] = mapped_column(
        ForeignKey("channels.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[str] = mapped_column(String(20), default=ChannelMemberRole.MEMBER.value, nullable=False)
    added_by: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )

    __table_args__ = (
        UniqueConstraint("channel_id", "user_id", name="uq_channel_member"),
    )


class ChannelReadStatus(BaseModel):
    """How far a user has read a channel."""

    __tablename__ = "channel_read_status"

    channel_id: Mapped[UUID] = mapped_column(
        ForeignKey("channels.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    last_read_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("channel_id", "user_id", name="uq_channel_read_status"),
    )


class Message(BaseModel):
    """A message posted in a channel."""

    __tablename__ = "messages"

    channel_id: Mapped[UUID] = mapped_column(
        ForeignKey("channels.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sender_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    reply_to_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("messages.id", ondelete="SET NULL")
    )
    is_edited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    edited_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class DMConversation(BaseModel):
    """A private conversation between two workspace members."""

    __tablename__ = "dm_conversations"

    workspace_id: Mapped[UUID] = mapped_column(
        ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True
    )
    participant_1: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    participant_2: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "workspace_id", "participant_1", "participant_2", name="uq_dm_participants"
        ),
    )

    def other_participant(self, user_id: UUID) -> UUID:
        return self.participant_2 if self.participant_1 == user_id else self.participant_1


class DMMessage(BaseModel):
    """A message in a direct conversation."""

    __tablename__ = "dm_messages"

    conversation_id: Mapped[UUID] = mapped_column(
        ForeignKey("dm_conversations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sender_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    reply_to_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("dm_messages.id", ondelete="SET NULL")
    )
    is_edited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    edited_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
