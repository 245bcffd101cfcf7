"""
Subscription router: plans, limits, payment submission and admin review.
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from hamro_task.core.database import get_db_session
from hamro_task.core.exceptions import BaseAPIException, ValidationException
from hamro_task.core.logger import get_logger
from hamro_task.integrations.functions import FunctionsClient, get_functions_client
from hamro_task.modules.auth.dependencies import get_current_superuser, get_current_user
from hamro_task.modules.auth.models import User
from hamro_task.modules.storage.schemas import SignedUrlResult
from hamro_task.modules.storage.service import StorageService, get_storage_service
from hamro_task.modules.workspace.dependencies import (
    WorkspaceContext,
    get_workspace_context,
    require_admin,
    require_owner,
)

from .payments import PaymentService
from .schemas import (
    LimitsResponse,
    PaymentCreate,
    PaymentResponse,
    PaymentReview,
    PlanResponse,
    SubscriptionResponse,
)
from .service import SubscriptionService

logger = get_logger(__name__)

router = APIRouter()


@router.get("/subscription/plans", response_model=List[PlanResponse])
async def list_plans(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return await SubscriptionService(db).list_plans()


@router.get("/subscription", response_model=Optional[SubscriptionResponse])
async def get_subscription(
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    return await SubscriptionService(db).get_subscription(ctx.workspace_id)


@router.get("/subscription/limits", response_model=LimitsResponse,
            summary="Plan limits and usage", description="Member and project usage against the current plan.")
async def get_limits(
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    limits = await SubscriptionService(db).get_limits(ctx.workspace_id)
    return LimitsResponse(**limits.to_dict())


@router.post("/subscription/payments", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED,
             summary="Submit a payment", description="Upload a payment screenshot for review. Owner only.")
async def submit_payment(
    plan_id: UUID = Form(...),
    payment_method: str = Form(...),
    months_paid: int = Form(1),
    transaction_reference: Optional[str] = Form(None),
    screenshot: UploadFile = File(...),
    ctx: WorkspaceContext = Depends(require_owner),
    db: AsyncSession = Depends(get_db_session),
    storage: StorageService = Depends(get_storage_service),
    functions: FunctionsClient = Depends(get_functions_client),
):
    try:
        data = PaymentCreate(
            plan_id=plan_id,
            payment_method=payment_method,
            months_paid=months_paid,
            transaction_reference=transaction_reference,
        )
    except ValidationError as e:
        raise ValidationException("Invalid payment details", details={"errors": [
            {"field": ".".join(str(loc) for loc in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]})
    content = await screenshot.read()
    try:
        return await PaymentService(db, functions).submit(
            ctx.workspace_id, ctx.user_id, data, content, screenshot.content_type, storage
        )
    except BaseAPIException:
        raise
    except Exception as e:
        logger.error("Failed to submit payment", error=str(e), workspace_id=str(ctx.workspace_id))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to submit payment"
        )


@router.get("/subscription/payments", response_model=List[PaymentResponse])
async def list_payments(
    ctx: WorkspaceContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    functions: FunctionsClient = Depends(get_functions_client),
):
    return await PaymentService(db, functions).list_for_workspace(ctx.workspace_id)


# Platform administration

@router.get("/admin/payments", response_model=List[PaymentResponse])
async def list_pending_payments(
    reviewer: User = Depends(get_current_superuser),
    db: AsyncSession = Depends(get_db_session),
    functions: FunctionsClient = Depends(get_functions_client),
):
    return await PaymentService(db, functions).list_pending()


@router.get("/admin/payments/{payment_id}/screenshot", response_model=SignedUrlResult)
async def payment_screenshot(
    payment_id: UUID,
    reviewer: User = Depends(get_current_superuser),
    db: AsyncSession = Depends(get_db_session),
    storage: StorageService = Depends(get_storage_service),
    functions: FunctionsClient = Depends(get_functions_client),
):
    submission = await PaymentService(db, functions).get(payment_id)
    return await storage.payment_screenshot_url(submission.screenshot_path)


@router.post("/admin/payments/{payment_id}/approve", response_model=PaymentResponse)
async def approve_payment(
    payment_id: UUID,
    data: PaymentReview,
    reviewer: User = Depends(get_current_superuser),
    db: AsyncSession = Depends(get_db_session),
    functions: FunctionsClient = Depends(get_functions_client),
):
    return await PaymentService(db, functions).approve(payment_id, reviewer.id, data.notes)


@router.post("/admin/payments/{payment_id}/reject", response_model=PaymentResponse)
async def reject_payment(
    payment_id: UUID,
    data: PaymentReview,
    reviewer: User = Depends(get_current_superuser),
    db: AsyncSession = Depends(get_db_session),
    functions: FunctionsClient = Depends(get_functions_client),
):
    return await PaymentService(db, functions).reject(payment_id, reviewer.id, data.notes)
