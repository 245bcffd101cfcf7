"""
Hamro Task - Main Application Entry Point
"""
from fastapi import FastAPI

from hamro_task.api.router import api_router
from hamro_task.core.config import settings
from hamro_task.core.events import lifespan
from hamro_task.core.exceptions import setup_exception_handlers
from hamro_task.core.logger import get_logger
from hamro_task.core.metrics import PrometheusMiddleware
from hamro_task.core.middleware import setup_middleware

logger = get_logger(__name__)


def create_application() -> FastAPI:
    """Create and configure FastAPI application."""

    app = FastAPI(
        title=settings.app_name,
        description=settings.app_description,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # Setup middleware stack
    setup_middleware(app)

    # Setup exception handlers
    setup_exception_handlers(app)

    # Add Prometheus metrics middleware
    app.add_middleware(PrometheusMiddleware)

    # Include API router
    app.include_router(api_router)

    # Root endpoint
    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "message": "Hamro Task API",
            "version": settings.app_version,
            "environment": settings.environment,
            "docs_url": "/docs" if settings.is_development else None,
            "api_version": "v1"
        }

    @app.get("/health")
    async def health():
        """Simple health check."""
        return {"status": "healthy"}

    logger.info("FastAPI application created and configured")
    return app


# Create application instance
app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_config=None,  # Use our custom logging
    )
