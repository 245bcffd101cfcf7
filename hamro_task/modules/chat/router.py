"""
Chat router: channels, channel messages and direct conversations.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from hamro_task.core.database import get_db_session
from hamro_task.core.exceptions import BaseAPIException
from hamro_task.core.logger import get_logger
from hamro_task.core.schemas import MessageResponse as AckResponse
from hamro_task.modules.workspace.dependencies import (
    WorkspaceContext,
    get_workspace_context,
    require_member,
)

from .schemas import (
    ChannelCreate,
    ChannelListResponse,
    ChannelMemberCreate,
    ChannelMemberResponse,
    ChannelResponse,
    ConversationCreate,
    ConversationResponse,
    MessageCreate,
    MessagePageResponse,
    MessageResponse,
    MessageUpdate,
)
from .service import ChannelService, DirectMessageService, MessageService

logger = get_logger(__name__)

router = APIRouter()


# Channels

@router.get("/channels", response_model=ChannelListResponse, summary="List channels with unread counts")
async def list_channels(
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    channels = await ChannelService(db).list_channels(ctx.workspace_id, ctx.user_id)
    return ChannelListResponse(
        channels=channels,
        total_unread=sum(c["unread_count"] for c in channels),
    )


@router.post("/channels", response_model=ChannelResponse, status_code=status.HTTP_201_CREATED)
async def create_channel(
    data: ChannelCreate,
    ctx: WorkspaceContext = Depends(require_member),
    db: AsyncSession = Depends(get_db_session),
):
    try:
        return await ChannelService(db).create_channel(ctx.workspace_id, data, ctx.user_id)
    except BaseAPIException:
        raise
    except Exception as e:
        logger.error("Failed to create channel", error=str(e), workspace_id=str(ctx.workspace_id))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create channel"
        )


@router.delete("/channels/{channel_id}", response_model=AckResponse)
async def delete_channel(
    channel_id: UUID,
    ctx: WorkspaceContext = Depends(require_member),
    db: AsyncSession = Depends(get_db_session),
):
    await ChannelService(db).delete_channel(ctx.workspace_id, channel_id, ctx.user_id, ctx.role)
    return AckResponse(message="Channel deleted")


@router.post("/channels/{channel_id}/read", response_model=AckResponse)
async def mark_channel_read(
    channel_id: UUID,
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    await ChannelService(db).mark_read(ctx.workspace_id, channel_id, ctx.user_id)
    return AckResponse(message="Channel marked as read")


@router.get("/channels/{channel_id}/members", response_model=List[ChannelMemberResponse])
async def list_channel_members(
    channel_id: UUID,
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    return await ChannelService(db).list_members(ctx.workspace_id, channel_id, ctx.user_id)


@router.post("/channels/{channel_id}/members", response_model=ChannelMemberResponse,
             status_code=status.HTTP_201_CREATED)
async def add_channel_member(
    channel_id: UUID,
    data: ChannelMemberCreate,
    ctx: WorkspaceContext = Depends(require_member),
    db: AsyncSession = Depends(get_db_session),
):
    return await ChannelService(db).add_member(
        ctx.workspace_id, channel_id, data.user_id, ctx.user_id, ctx.role, data.role
    )


@router.delete("/channels/{channel_id}/members/{user_id}", response_model=AckResponse,
               summary="Remove a channel member", description="Members may remove themselves to leave.")
async def remove_channel_member(
    channel_id: UUID,
    user_id: UUID,
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    await ChannelService(db).remove_member(ctx.workspace_id, channel_id, user_id, ctx.user_id, ctx.role)
    return AckResponse(message="Member removed from channel")


@router.get("/channels/{channel_id}/messages", response_model=MessagePageResponse)
async def list_channel_messages(
    channel_id: UUID,
    before: Optional[datetime] = Query(None, description="Only messages created before this instant"),
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    page = await MessageService(db).fetch_page(ctx.workspace_id, channel_id, ctx.user_id, before=before)
    return MessagePageResponse(messages=page.messages, has_more=page.has_more)


@router.post("/channels/{channel_id}/messages", response_model=MessageResponse,
             status_code=status.HTTP_201_CREATED)
async def send_channel_message(
    channel_id: UUID,
    data: MessageCreate,
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    return await MessageService(db).send(
        ctx.workspace_id, channel_id, ctx.user_id, data.content, data.reply_to_id
    )


@router.patch("/messages/{message_id}", response_model=MessageResponse)
async def edit_channel_message(
    message_id: UUID,
    data: MessageUpdate,
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    return await MessageService(db).edit(ctx.workspace_id, message_id, ctx.user_id, data.content)


@router.delete("/messages/{message_id}", response_model=AckResponse)
async def delete_channel_message(
    message_id: UUID,
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    await MessageService(db).delete(ctx.workspace_id, message_id, ctx.user_id)
    return AckResponse(message="Message deleted")


# Direct messages

@router.get("/conversations", response_model=List[ConversationResponse])
async def list_conversations(
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    return await DirectMessageService(db).list_conversations(ctx.workspace_id, ctx.user_id)


@router.post("/conversations", response_model=ConversationResponse,
             summary="Open a direct conversation", description="Returns the existing conversation when there is one.")
async def open_conversation(
    data: ConversationCreate,
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    return await DirectMessageService(db).get_or_create_conversation(
        ctx.workspace_id, ctx.user_id, data.user_id
    )


@router.get("/conversations/{conversation_id}/messages", response_model=MessagePageResponse)
async def list_direct_messages(
    conversation_id: UUID,
    before: Optional[datetime] = Query(None),
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    page = await DirectMessageService(db).fetch_page(
        ctx.workspace_id, conversation_id, ctx.user_id, before=before
    )
    return MessagePageResponse(messages=page.messages, has_more=page.has_more)


@router.post("/conversations/{conversation_id}/messages", response_model=MessageResponse,
             status_code=status.HTTP_201_CREATED)
async def send_direct_message(
    conversation_id: UUID,
    data: MessageCreate,
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    return await DirectMessageService(db).send(
        ctx.workspace_id, conversation_id, ctx.user_id, data.content, data.reply_to_id
    )


@router.post("/conversations/{conversation_id}/read", response_model=AckResponse)
async def mark_conversation_read(
    conversation_id: UUID,
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    count = await DirectMessageService(db).mark_read(ctx.workspace_id, conversation_id, ctx.user_id)
    return AckResponse(message=f"{count} messages marked as read")


@router.patch("/direct-messages/{message_id}", response_model=MessageResponse)
async def edit_direct_message(
    message_id: UUID,
    data: MessageUpdate,
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    return await DirectMessageService(db).edit(ctx.workspace_id, message_id, ctx.user_id, data.content)


@router.delete("/direct-messages/{message_id}", response_model=AckResponse)
async def delete_direct_message(
    message_id: UUID,
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    await DirectMessageService(db).delete(ctx.workspace_id, message_id, ctx.user_id)
    return AckResponse(message="Message deleted")
