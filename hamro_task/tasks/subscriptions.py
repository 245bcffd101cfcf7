"""
Subscription expiry sweep.
"""
from sqlalchemy.ext.asyncio import AsyncSession

from hamro_task.core.celery_app import celery_app
from hamro_task.modules.subscription.service import SubscriptionService

from . import run_job


async def expire_subscriptions_job(db: AsyncSession) -> int:
    return await SubscriptionService(db).expire_overdue()


@celery_app.task(bind=True)
def expire_subscriptions(self):
    """Move subscriptions past their end date to ``expired``."""
    return run_job("expire_subscriptions", expire_subscriptions_job)
