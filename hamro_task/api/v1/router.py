"""
API v1 router registry.
"""
from fastapi import APIRouter

from hamro_task.modules.auth.router import router as auth_router
from hamro_task.modules.chat.router import router as chat_router
from hamro_task.modules.dashboard.router import router as dashboard_router
from hamro_task.modules.notifications.router import router as notifications_router
from hamro_task.modules.projects.router import router as projects_router
from hamro_task.modules.subscription.router import router as subscription_router
from hamro_task.modules.workspace.router import router as workspace_router

from .health import router as health_router
from .realtime import router as realtime_router

# Create v1 router
v1_router = APIRouter(prefix="/v1")

# Include all v1 routers
v1_router.include_router(auth_router, tags=["Users"])
v1_router.include_router(workspace_router, tags=["Workspaces"])
v1_router.include_router(projects_router, tags=["Projects & Tasks"])
v1_router.include_router(dashboard_router, tags=["Dashboard"])
v1_router.include_router(chat_router, tags=["Chat"])
v1_router.include_router(notifications_router, tags=["Notifications"])
v1_router.include_router(subscription_router, tags=["Subscription"])
v1_router.include_router(realtime_router, tags=["Realtime"])
v1_router.include_router(health_router, tags=["Health & Monitoring"])


# API information endpoint
@v1_router.get("/info")
async def api_info():
    """Get API v1 information."""
    return {
        "version": "v1",
        "name": "Hamro Task API",
        "endpoints": {
            "dashboard": "/api/v1/dashboard",
            "projects": "/api/v1/projects",
            "channels": "/api/v1/channels",
            "conversations": "/api/v1/conversations",
            "notifications": "/api/v1/notifications",
            "subscription": "/api/v1/subscription",
            "realtime": "/api/v1/realtime",
            "health": "/api/v1/health",
            "metrics": "/api/v1/metrics"
        }
    }
