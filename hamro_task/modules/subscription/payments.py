"""
Manual payment submissions and their review.

Owners upload a payment screenshot; a platform administrator approves
(activating the plan) or rejects it with a reason. The e-mail side goes
through ``send-payment-notification``; a failed notification is logged and
never undoes the state change.
"""
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hamro_task.core.exceptions import (
    BusinessRuleException,
    ResourceNotFoundException,
    ValidationException,
)
from hamro_task.core.logger import get_logger
from hamro_task.core.models import utcnow
from hamro_task.integrations.functions import FunctionsClient
from hamro_task.modules.storage.service import StorageService

from .models import PaymentStatus, PaymentSubmission
from .schemas import PaymentCreate
from .service import SubscriptionService

logger = get_logger(__name__)

PAYMENT_SUBMITTED = "payment_submitted"
PAYMENT_APPROVED = "payment_approved"
PAYMENT_REJECTED = "payment_rejected"


class PaymentService:
    """Service class for payment submissions."""

    def __init__(self, db: AsyncSession, functions: FunctionsClient):
        self.db = db
        self.functions = functions

    async def submit(
        self,
        workspace_id: UUID,
        submitted_by: UUID,
        data: PaymentCreate,
        screenshot: bytes,
        content_type: str,
        storage: StorageService,
    ) -> PaymentSubmission:
        """
        Record a pending payment for a plan.

        The amount is the plan price times the months paid. The screenshot
        is validated and stored before anything is written.

        Raises:
            ResourceNotFoundException: If the plan does not exist
            ValidationException: If the screenshot is not an acceptable image
        """
        plan = await SubscriptionService(self.db).get_plan(data.plan_id)
        upload = await storage.upload_payment_screenshot(workspace_id, screenshot, content_type)

        submission = PaymentSubmission(
            workspace_id=workspace_id,
            plan_id=plan.id,
            amount_npr=plan.price_npr * data.months_paid,
            months_paid=data.months_paid,
            payment_method=data.payment_method,
            transaction_reference=data.transaction_reference,
            screenshot_path=upload.file_key,
            status=PaymentStatus.PENDING.value,
            submitted_by=submitted_by,
        )
        self.db.add(submission)
        await self.db.commit()
        logger.info(
            "Payment submitted",
            payment_id=str(submission.id),
            workspace_id=str(workspace_id),
            plan=plan.name,
            amount_npr=submission.amount_npr,
        )

        await self._notify(PAYMENT_SUBMITTED, submission)
        return submission

    async def get(self, payment_id: UUID) -> PaymentSubmission:
        submission = await self.db.get(PaymentSubmission, payment_id)
        if submission is None:
            raise ResourceNotFoundException("PaymentSubmission", str(payment_id))
        return submission

    async def list_for_workspace(self, workspace_id: UUID) -> List[PaymentSubmission]:
        result = await self.db.execute(
            select(PaymentSubmission)
            .where(PaymentSubmission.workspace_id == workspace_id)
            .order_by(PaymentSubmission.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_pending(self) -> List[PaymentSubmission]:
        """Submissions waiting for review, oldest first."""
        result = await self.db.execute(
            select(PaymentSubmission)
            .where(PaymentSubmission.status == PaymentStatus.PENDING.value)
            .order_by(PaymentSubmission.created_at)
        )
        return list(result.scalars().all())

    async def approve(self, payment_id: UUID, reviewer_id: UUID, notes: Optional[str] = None) -> PaymentSubmission:
        """Accept a pending payment and activate its plan for the months paid."""
        submission = await self._pending(payment_id)
        await SubscriptionService(self.db).activate(
            submission.workspace_id, submission.plan_id, submission.months_paid
        )
        submission.status = PaymentStatus.APPROVED.value
        submission.verified_by = reviewer_id
        submission.verified_at = utcnow()
        submission.admin_notes = (notes or "").strip() or None
        await self.db.commit()
        logger.info("Payment approved", payment_id=str(payment_id), reviewer_id=str(reviewer_id))

        await self._notify(PAYMENT_APPROVED, submission)
        return submission

    async def reject(self, payment_id: UUID, reviewer_id: UUID, notes: Optional[str]) -> PaymentSubmission:
        """
        Refuse a pending payment.

        Raises:
            ValidationException: If no reason is given
        """
        reason = (notes or "").strip()
        if not reason:
            raise ValidationException("A reason is required to reject a payment")

        submission = await self._pending(payment_id)
        submission.status = PaymentStatus.REJECTED.value
        submission.verified_by = reviewer_id
        submission.verified_at = utcnow()
        submission.admin_notes = reason
        await self.db.commit()
        logger.info("Payment rejected", payment_id=str(payment_id), reviewer_id=str(reviewer_id))

        await self._notify(PAYMENT_REJECTED, submission, rejection_reason=reason)
        return submission

    async def _pending(self, payment_id: UUID) -> PaymentSubmission:
        submission = await self.get(payment_id)
        if submission.status != PaymentStatus.PENDING.value:
            raise BusinessRuleException(
                f"Payment was already {submission.status}", code="ALREADY_REVIEWED"
            )
        return submission

    async def _notify(self, kind: str, submission: PaymentSubmission,
                      rejection_reason: Optional[str] = None) -> None:
        try:
            result = await self.functions.send_payment_notification(
                kind, submission.workspace_id, submission.id, rejection_reason=rejection_reason
            )
        except Exception as e:
            logger.error("Payment notification failed", kind=kind, payment_id=str(submission.id), error=str(e))
            return
        if not result.success:
            logger.warning("Payment notification not sent", kind=kind, payment_id=str(submission.id),
                           error=result.error)
