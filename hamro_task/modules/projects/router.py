"""
Project, status and task router.

Viewers can read; members create and edit tasks; admins manage projects
and their statuses.
"""
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from hamro_task.core.database import get_db_session
from hamro_task.core.exceptions import BaseAPIException
from hamro_task.core.logger import get_logger
from hamro_task.core.schemas import MessageResponse, OperationResult
from hamro_task.modules.notifications.service import NotificationService
from hamro_task.modules.workspace.dependencies import (
    WorkspaceContext,
    get_workspace_context,
    require_admin,
    require_member,
)

from .comments import CommentService
from .schemas import (
    ActivityResponse,
    CommentCreate,
    CommentResponse,
    ProjectCreate,
    ProjectResponse,
    ProjectUpdate,
    ReorderRequest,
    StatusCreate,
    StatusResponse,
    StatusUpdate,
    TaskCreate,
    TaskMove,
    TaskResponse,
    TaskUpdate,
)
from .service import ProjectService
from .statuses import StatusService
from .tasks import TaskService

logger = get_logger(__name__)

router = APIRouter()


@router.get("/projects", response_model=List[ProjectResponse], summary="List projects")
async def list_projects(
    include_archived: bool = Query(False, description="Include archived projects"),
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    return await ProjectService(db).list_projects(ctx.workspace_id, include_archived=include_archived)


@router.post(
    "/projects",
    response_model=OperationResult,
    summary="Create project",
    description="Creates the project with Todo, In Progress and Done statuses. "
                "Answers success=false with code LIMIT_REACHED when the plan is full.",
)
async def create_project(
    data: ProjectCreate,
    ctx: WorkspaceContext = Depends(require_member),
    db: AsyncSession = Depends(get_db_session),
):
    try:
        return await ProjectService(db).create_project(ctx.workspace_id, data, ctx.user_id)
    except BaseAPIException:
        raise
    except Exception as e:
        logger.error("Failed to create project", error=str(e), workspace_id=str(ctx.workspace_id))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create project"
        )


@router.get("/projects/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: UUID,
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    return await ProjectService(db).get_project(ctx.workspace_id, project_id)


@router.patch("/projects/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: UUID,
    data: ProjectUpdate,
    ctx: WorkspaceContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    return await ProjectService(db).update_project(ctx.workspace_id, project_id, data, ctx.user_id)


@router.post("/projects/{project_id}/archive", response_model=ProjectResponse)
async def archive_project(
    project_id: UUID,
    ctx: WorkspaceContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    return await ProjectService(db).archive_project(ctx.workspace_id, project_id, ctx.user_id)


@router.post("/projects/{project_id}/restore", response_model=ProjectResponse)
async def restore_project(
    project_id: UUID,
    ctx: WorkspaceContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    return await ProjectService(db).archive_project(ctx.workspace_id, project_id, ctx.user_id, archived=False)


@router.delete(
    "/projects/{project_id}",
    response_model=MessageResponse,
    summary="Delete project",
    description="Deletes the project, its statuses and tasks. Requires confirm=true.",
)
async def delete_project(
    project_id: UUID,
    confirm: bool = Query(False),
    ctx: WorkspaceContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    await ProjectService(db).delete_project(ctx.workspace_id, project_id, confirm=confirm)
    return MessageResponse(message="Project deleted")


@router.get("/projects/{project_id}/activity", response_model=List[ActivityResponse])
async def project_activity(
    project_id: UUID,
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    await ProjectService(db).get_project(ctx.workspace_id, project_id)
    return await NotificationService(db).project_activity(project_id, ctx.user_id, ctx.role)


# Statuses

@router.get("/projects/{project_id}/statuses", response_model=List[StatusResponse])
async def list_statuses(
    project_id: UUID,
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    await ProjectService(db).get_project(ctx.workspace_id, project_id)
    return await StatusService(db).list_statuses(project_id)


@router.post("/projects/{project_id}/statuses", response_model=StatusResponse,
             status_code=status.HTTP_201_CREATED)
async def create_status(
    project_id: UUID,
    data: StatusCreate,
    ctx: WorkspaceContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    await ProjectService(db).get_project(ctx.workspace_id, project_id)
    return await StatusService(db).create_status(project_id, data)


@router.put("/projects/{project_id}/statuses/order", response_model=List[StatusResponse])
async def reorder_statuses(
    project_id: UUID,
    data: ReorderRequest,
    ctx: WorkspaceContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    await ProjectService(db).get_project(ctx.workspace_id, project_id)
    return await StatusService(db).reorder_statuses(project_id, data)


@router.patch("/projects/{project_id}/statuses/{status_id}", response_model=StatusResponse)
async def update_status(
    project_id: UUID,
    status_id: UUID,
    data: StatusUpdate,
    ctx: WorkspaceContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    await ProjectService(db).get_project(ctx.workspace_id, project_id)
    return await StatusService(db).update_status(project_id, status_id, data)


@router.delete("/projects/{project_id}/statuses/{status_id}", response_model=StatusResponse,
               summary="Delete status", description="Returns the status that received the tasks.")
async def delete_status(
    project_id: UUID,
    status_id: UUID,
    ctx: WorkspaceContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    await ProjectService(db).get_project(ctx.workspace_id, project_id)
    return await StatusService(db).delete_status(project_id, status_id)


# Tasks

@router.get("/projects/{project_id}/tasks", response_model=List[TaskResponse])
async def list_tasks(
    project_id: UUID,
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    return await TaskService(db).list_tasks(ctx.workspace_id, project_id)


@router.post("/projects/{project_id}/tasks", response_model=TaskResponse,
             status_code=status.HTTP_201_CREATED)
async def create_task(
    project_id: UUID,
    data: TaskCreate,
    ctx: WorkspaceContext = Depends(require_member),
    db: AsyncSession = Depends(get_db_session),
):
    return await TaskService(db).create_task(ctx.workspace_id, project_id, data, ctx.user_id)


@router.put("/projects/{project_id}/tasks/order", response_model=List[TaskResponse])
async def reorder_tasks(
    project_id: UUID,
    data: ReorderRequest,
    ctx: WorkspaceContext = Depends(require_member),
    db: AsyncSession = Depends(get_db_session),
):
    return await TaskService(db).reorder_tasks(ctx.workspace_id, project_id, data)


@router.get("/tasks/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: UUID,
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    return await TaskService(db).get_task(ctx.workspace_id, task_id)


@router.patch("/tasks/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: UUID,
    data: TaskUpdate,
    ctx: WorkspaceContext = Depends(require_member),
    db: AsyncSession = Depends(get_db_session),
):
    return await TaskService(db).update_task(ctx.workspace_id, task_id, data, ctx.user_id)


@router.post("/tasks/{task_id}/move", response_model=TaskResponse, summary="Move task to a status")
async def move_task(
    task_id: UUID,
    data: TaskMove,
    ctx: WorkspaceContext = Depends(require_member),
    db: AsyncSession = Depends(get_db_session),
):
    return await TaskService(db).move_to_status(ctx.workspace_id, task_id, data.custom_status_id, ctx.user_id)


@router.delete("/tasks/{task_id}", response_model=MessageResponse)
async def delete_task(
    task_id: UUID,
    ctx: WorkspaceContext = Depends(require_member),
    db: AsyncSession = Depends(get_db_session),
):
    await TaskService(db).delete_task(ctx.workspace_id, task_id)
    return MessageResponse(message="Task deleted")


@router.get("/tasks/{task_id}/comments", response_model=List[CommentResponse])
async def list_comments(
    task_id: UUID,
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    return await CommentService(db).list_comments(ctx.workspace_id, task_id)


@router.post("/tasks/{task_id}/comments", response_model=CommentResponse,
             status_code=status.HTTP_201_CREATED, summary="Comment on a task or reply to a comment")
async def add_comment(
    task_id: UUID,
    data: CommentCreate,
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    return await CommentService(db).add_comment(
        ctx.workspace_id, task_id, ctx.user_id, data.content, data.parent_id
    )


@router.delete("/comments/{comment_id}", response_model=MessageResponse)
async def delete_comment(
    comment_id: UUID,
    ctx: WorkspaceContext = Depends(get_workspace_context),
    db: AsyncSession = Depends(get_db_session),
):
    await CommentService(db).delete_comment(ctx.workspace_id, comment_id, ctx.user_id)
    return MessageResponse(message="Comment deleted")


@router.post("/tasks/{task_id}/timer/start", response_model=OperationResult)
async def start_timer(
    task_id: UUID,
    ctx: WorkspaceContext = Depends(require_member),
    db: AsyncSession = Depends(get_db_session),
):
    session = await TaskService(db).start_timer(ctx.workspace_id, task_id, ctx.user_id)
    return OperationResult.ok(session=session.to_dict())


@router.post("/tasks/{task_id}/timer/stop", response_model=OperationResult)
async def stop_timer(
    task_id: UUID,
    ctx: WorkspaceContext = Depends(require_member),
    db: AsyncSession = Depends(get_db_session),
):
    session = await TaskService(db).stop_timer(ctx.workspace_id, task_id, ctx.user_id)
    if session is None:
        return OperationResult.refused("No timer is running for this task", "TIMER_NOT_RUNNING")
    return OperationResult.ok(session=session.to_dict())
