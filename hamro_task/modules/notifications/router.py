"""
Notification router: feed, read state, preferences and push tokens.
"""
from datetime import datetime
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hamro_task.core.config import settings
from hamro_task.core.database import get_db_session
from hamro_task.core.schemas import MessageResponse
from hamro_task.modules.auth.dependencies import get_current_user
from hamro_task.modules.auth.models import User
from hamro_task.modules.workspace.dependencies import WorkspaceContext, get_workspace_context

from .links import notification_url
from .models import Notification
from .preferences import PreferencesService
from .push import PushSubscriptionService
from .schemas import (
    NotificationFeedResponse,
    NotificationPage,
    NotificationResponse,
    PreferencesResponse,
    PreferencesUpdate,
    PushSubscriptionCreate,
    PushSubscriptionResponse,
    UnreadCountResponse,
)
from .service import NotificationService

router = APIRouter()


def _with_url(notification: Notification) -> NotificationResponse:
    response = NotificationResponse.from_orm(notification)
    response.url = notification_url(notification)
    return response


@router.get("/notifications", response_model=NotificationFeedResponse,
            summary="Notification feed", description="Every unread notification plus the most recent read ones.")
async def get_feed(
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    feed = await NotificationService(db).get_feed(ctx.user_id, ctx.workspace_id)
    return NotificationFeedResponse(
        notifications=[_with_url(n) for n in feed.notifications],
        unread_count=feed.unread_count,
        has_more=feed.has_more,
    )


@router.get("/notifications/older", response_model=NotificationPage)
async def load_older(
    before: datetime = Query(..., description="created_at of the oldest read notification held"),
    exclude: List[UUID] = Query([], description="Ids already held"),
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    page = await NotificationService(db).load_older(ctx.user_id, ctx.workspace_id, before, exclude)
    return NotificationPage(
        notifications=[_with_url(n) for n in page],
        has_more=len(page) == settings.notification_page_size,
    )


@router.get("/notifications/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    count = await NotificationService(db).unread_count(ctx.user_id, ctx.workspace_id)
    return UnreadCountResponse(unread_count=count)


@router.post("/notifications/read-all", response_model=MessageResponse)
async def mark_all_as_read(
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    changed = await NotificationService(db).mark_all_as_read(ctx.user_id, ctx.workspace_id)
    return MessageResponse(message=f"{changed} notifications marked as read")


@router.post("/notifications/{notification_id}/read", response_model=NotificationResponse)
async def mark_as_read(
    notification_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    notification = await NotificationService(db).mark_as_read(current_user.id, notification_id)
    return _with_url(notification)


@router.delete("/notifications/{notification_id}", response_model=MessageResponse)
async def delete_notification(
    notification_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await NotificationService(db).delete(current_user.id, notification_id)
    return MessageResponse(message="Notification deleted")


@router.get("/notification-preferences", response_model=PreferencesResponse)
async def get_preferences(
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    return await PreferencesService(db).get_or_create(ctx.user_id, ctx.workspace_id)


@router.patch("/notification-preferences", response_model=PreferencesResponse)
async def update_preferences(
    data: PreferencesUpdate,
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    return await PreferencesService(db).update(ctx.user_id, ctx.workspace_id, data)


@router.get("/push-subscriptions", response_model=List[PushSubscriptionResponse])
async def list_push_subscriptions(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return await PushSubscriptionService(db).list_active(current_user.id)


@router.post("/push-subscriptions", response_model=PushSubscriptionResponse,
             summary="Register a device token", description="Re-registering an inactive token re-activates it.")
async def register_push_subscription(
    data: PushSubscriptionCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return await PushSubscriptionService(db).register(current_user.id, data.endpoint, data.platform)


@router.post("/push-subscriptions/deactivate", response_model=MessageResponse)
async def deactivate_push_subscription(
    data: PushSubscriptionCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await PushSubscriptionService(db).deactivate(current_user.id, data.endpoint)
    return MessageResponse(message="Push subscription deactivated")
