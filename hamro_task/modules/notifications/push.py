"""
Push subscription registry.

A user's ``push_enabled`` preference follows their tokens: registering the
first active token turns it on in every workspace, deactivating the last
one turns it off.
"""
from typing import List
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hamro_task.core.exceptions import ResourceNotFoundException
from hamro_task.core.logger import get_logger

from .models import NotificationPreferences, PushSubscription

logger = get_logger(__name__)


class PushSubscriptionService:
    """Service class for device push tokens."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_active(self, user_id: UUID) -> List[PushSubscription]:
        result = await self.db.execute(
            select(PushSubscription)
            .where(PushSubscription.user_id == user_id, PushSubscription.is_active.is_(True))
            .order_by(PushSubscription.created_at)
        )
        return list(result.scalars().all())

    async def register(self, user_id: UUID, endpoint: str, platform: str = "expo") -> PushSubscription:
        """
        Store a token, re-activating it when it was registered before.

        Args:
            user_id: Owner of the device
            endpoint: Device token or web push endpoint
            platform: ``expo``, ``web``, ...

        Returns:
            The active subscription
        """
        result = await self.db.execute(
            select(PushSubscription).where(
                PushSubscription.user_id == user_id,
                PushSubscription.endpoint == endpoint,
            )
        )
        subscription = result.scalar_one_or_none()
        if subscription is None:
            subscription = PushSubscription(user_id=user_id, endpoint=endpoint, platform=platform)
            self.db.add(subscription)
        subscription.platform = platform
        subscription.is_active = True
        await self.db.flush()

        await self._set_push_enabled(user_id, True)
        await self.db.commit()
        logger.info("Push subscription registered", user_id=str(user_id), platform=platform)
        return subscription

    async def deactivate(self, user_id: UUID, endpoint: str) -> None:
        """
        Turn off a token. Disables push when no active token remains.

        Raises:
            ResourceNotFoundException: If the user has no such token
        """
        result = await self.db.execute(
            select(PushSubscription).where(
                PushSubscription.user_id == user_id,
                PushSubscription.endpoint == endpoint,
            )
        )
        subscription = result.scalar_one_or_none()
        if subscription is None:
            raise ResourceNotFoundException("PushSubscription", endpoint)

        subscription.is_active = False
        await self.db.flush()

        remaining = await self.db.scalar(
            select(func.count(PushSubscription.id)).where(
                PushSubscription.user_id == user_id,
                PushSubscription.is_active.is_(True),
            )
        )
        if not remaining:
            await self._set_push_enabled(user_id, False)
        await self.db.commit()
        logger.info("Push subscription deactivated", user_id=str(user_id), remaining=remaining or 0)

    async def _set_push_enabled(self, user_id: UUID, enabled: bool) -> None:
        await self.db.execute(
            update(NotificationPreferences)
            .where(NotificationPreferences.user_id == user_id)
            .values(push_enabled=enabled)
        )
