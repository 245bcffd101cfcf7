"""
Websocket bridge to the change feed.

A client connects to ``/realtime?token=...&workspace_id=...&table=...`` with
an optional ``filter=column=eq.value`` and receives every committed change to
matching rows as JSON. The server narrows each subscription to what the
caller may see in the workspace.
"""
import asyncio
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hamro_task.core.database import get_db_session_context
from hamro_task.core.exceptions import (
    AuthenticationException,
    AuthorizationException,
    BaseAPIException,
    ResourceNotFoundException,
    ValidationException,
)
from hamro_task.core.logger import get_logger
from hamro_task.core.metrics import update_realtime_subscribers
from hamro_task.core.realtime import ChangeEvent, Subscription, change_feed, parse_filter
from hamro_task.modules.auth.dependencies import authenticate_token
from hamro_task.modules.chat.models import DMConversation
from hamro_task.modules.chat.service import ChannelService
from hamro_task.modules.projects.models import Project
from hamro_task.modules.projects.tasks import TaskService
from hamro_task.modules.workspace.dependencies import WorkspaceContext, load_workspace_context

logger = get_logger(__name__)

router = APIRouter()

# Tables scoped directly by their workspace_id column
WORKSPACE_TABLES = {"projects", "channels", "dm_conversations"}
# Tables scoped through a project of the workspace
PROJECT_TABLES = {"tasks", "project_statuses"}
STREAMABLE_TABLES = WORKSPACE_TABLES | PROJECT_TABLES | {"messages", "dm_messages", "notifications", "task_comments"}

# Close codes in the application range
CLOSE_UNAUTHORIZED = 4401
CLOSE_FORBIDDEN = 4403


@dataclass(frozen=True)
class StreamScope:
    """Effective subscription for one socket."""

    table: str
    row_filter: str
    user_id: UUID

    def visible(self, event: ChangeEvent) -> bool:
        record = event.record
        if self.table == "dm_conversations":
            return str(self.user_id) in (str(record.get("participant_1")), str(record.get("participant_2")))
        if self.table == "channels" and record.get("is_private"):
            return str(self.user_id) in record.get("member_ids", ())
        return True


def _required_id(table: str, requested: Optional[str], column: str) -> UUID:
    row_filter = parse_filter(requested)
    if row_filter is None or row_filter.column != column:
        raise ValidationException(f"Subscriptions to {table} need a {column}=eq.<id> filter")
    try:
        return UUID(row_filter.value)
    except ValueError:
        raise ValidationException(f"Invalid {column} in filter")


async def resolve_scope(
    db: AsyncSession, ctx: WorkspaceContext, table: str, requested: Optional[str] = None
) -> StreamScope:
    """
    Turn a requested subscription into one the caller is allowed to hold.

    Workspace tables are pinned to the caller's workspace, notifications to
    the caller. Messages, direct messages, comments, tasks and statuses must
    name their parent, which is checked against the workspace. Private
    channels and direct conversations are further limited to their members.

    Raises:
        ValidationException: For unknown tables or malformed filters
        AuthorizationException: When the parent is outside the caller's reach
    """
    if table not in STREAMABLE_TABLES:
        raise ValidationException(f"Table {table!r} cannot be streamed")
    try:
        parse_filter(requested)
    except ValueError as e:
        raise ValidationException(str(e))

    if table in WORKSPACE_TABLES:
        row_filter = f"workspace_id=eq.{ctx.workspace_id}"
    elif table == "notifications":
        row_filter = f"user_id=eq.{ctx.user_id}"
    elif table in PROJECT_TABLES:
        project_id = _required_id(table, requested, "project_id")
        project = await db.scalar(
            select(Project.id).where(Project.id == project_id, Project.workspace_id == ctx.workspace_id)
        )
        if project is None:
            raise AuthorizationException("Project is not part of this workspace")
        row_filter = f"project_id=eq.{project_id}"
    elif table == "task_comments":
        task_id = _required_id(table, requested, "task_id")
        try:
            await TaskService(db).get_task(ctx.workspace_id, task_id)
        except ResourceNotFoundException:
            raise AuthorizationException("Task is not part of this workspace")
        row_filter = f"task_id=eq.{task_id}"
    elif table == "messages":
        channel_id = _required_id(table, requested, "channel_id")
        try:
            await ChannelService(db).get_visible_channel(ctx.workspace_id, channel_id, ctx.user_id)
        except ResourceNotFoundException:
            raise AuthorizationException("Channel is not visible in this workspace")
        row_filter = f"channel_id=eq.{channel_id}"
    else:
        conversation_id = _required_id(table, requested, "conversation_id")
        conversation = await db.get(DMConversation, conversation_id)
        if (
            conversation is None
            or conversation.workspace_id != ctx.workspace_id
            or ctx.user_id not in (conversation.participant_1, conversation.participant_2)
        ):
            raise AuthorizationException("Not a participant of this conversation")
        row_filter = f"conversation_id=eq.{conversation_id}"

    return StreamScope(table=table, row_filter=row_filter, user_id=ctx.user_id)


async def _close_on_disconnect(websocket: WebSocket, subscription: Subscription) -> None:
    """Drain client frames; a disconnect ends the stream."""
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        subscription.close()


@router.websocket("/realtime")
async def realtime_stream(
    websocket: WebSocket,
    token: str = Query(...),
    workspace_id: UUID = Query(...),
    table: str = Query(...),
    filter: Optional[str] = Query(None),
):
    """Stream change events for one table until the client disconnects."""
    try:
        async with get_db_session_context() as db:
            user = await authenticate_token(token, db)
            ctx = await load_workspace_context(db, workspace_id, user)
            scope = await resolve_scope(db, ctx, table, filter)
    except HTTPException as e:
        code = CLOSE_UNAUTHORIZED if e.status_code == status.HTTP_401_UNAUTHORIZED else CLOSE_FORBIDDEN
        await websocket.close(code=code, reason=str(e.detail))
        return
    except BaseAPIException as e:
        code = CLOSE_UNAUTHORIZED if isinstance(e, AuthenticationException) else CLOSE_FORBIDDEN
        await websocket.close(code=code, reason=e.message)
        return

    await websocket.accept()
    subscription = change_feed.subscribe(scope.table, scope.row_filter)
    update_realtime_subscribers(change_feed.subscriber_count)
    watcher = asyncio.create_task(_close_on_disconnect(websocket, subscription))
    logger.info(
        "Realtime stream opened",
        user_id=str(ctx.user_id),
        workspace_id=str(ctx.workspace_id),
        table=scope.table,
        filter=scope.row_filter,
    )
    try:
        async for event in subscription:
            if scope.visible(event):
                await websocket.send_json(event.to_dict())
    except WebSocketDisconnect:
        pass
    finally:
        watcher.cancel()
        change_feed.unsubscribe(subscription)
        update_realtime_subscribers(change_feed.subscriber_count)
        logger.info("Realtime stream closed", user_id=str(ctx.user_id), table=scope.table)
