"""
Dashboard router.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from hamro_task.core.database import get_db_session
from hamro_task.core.exceptions import BaseAPIException
from hamro_task.core.logger import get_logger
from hamro_task.modules.workspace.dependencies import WorkspaceContext, get_workspace_context

from .schemas import DashboardResponse
from .service import DashboardService

logger = get_logger(__name__)

router = APIRouter()


@router.get(
    "/dashboard",
    response_model=DashboardResponse,
    summary="Workspace dashboard",
    description="Stats, task lists, velocity, activity and workload for the current "
                "workspace. Member workloads are returned to owners and admins, the "
                "subscription summary to owners only.",
)
async def get_dashboard(
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    try:
        return await DashboardService(db).build(ctx.workspace_id, ctx.user_id, ctx.role)
    except BaseAPIException:
        raise
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load dashboard"
        )
