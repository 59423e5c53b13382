from contextlib import asynccontextmanager
from typing import AsyncIterator

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from devsync.api.routes import (
    analytics,
    auth,
    comments,
    health,
    labels,
    metrics,
    notifications,
    projects,
    realtime,
    tasks,
    teams,
)
from devsync.core.config import get_settings
from devsync.core.errors import ErrorCode, create_error_detail, validation_errors
from devsync.logging import RequestIdMiddleware, configure_logging, get_logger
from devsync.observability.metrics import MetricsMiddleware
from devsync.realtime.registry import ConnectionRegistry
from devsync.services.broadcast import ProjectBroadcaster
from devsync.services.events import DomainEvent, EventBus
from devsync.services.notifications import NotificationPipeline

load_dotenv()
configure_logging()
logger = get_logger()


def create_app() -> FastAPI:
    settings = get_settings()

    registry = ConnectionRegistry(send_timeout=settings.realtime_send_timeout_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("application_started", environment=settings.app_env)
        logger.info("cors_origins_configured", origins=settings.cors_origins)
        yield
        registry.clear()
        logger.info("application_stopped", environment=settings.app_env)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        docs_url="/api/docs",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )

    event_bus = EventBus()
    # Project-channel broadcast runs before the notification pipeline for every event.
    event_bus.subscribe(DomainEvent, ProjectBroadcaster(registry))
    notification_pipeline = NotificationPipeline(registry)
    event_bus.subscribe(DomainEvent, notification_pipeline)

    app.state.settings = settings
    app.state.registry = registry
    app.state.event_bus = event_bus
    app.state.notifications = notification_pipeline

    app.add_middleware(RequestIdMiddleware)
    if settings.metrics_enabled:
        app.add_middleware(MetricsMiddleware)
    cors_allow_origins = settings.cors_origins or []
    cors_allow_credentials = cors_allow_origins != ["*"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_allow_origins,
        allow_credentials=cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, prefix="/api")
    app.include_router(auth.router, prefix="/api")
    app.include_router(teams.router, prefix="/api")
    app.include_router(projects.router, prefix="/api")
    app.include_router(labels.router, prefix="/api")
    app.include_router(analytics.router, prefix="/api")
    app.include_router(tasks.router, prefix="/api")
    app.include_router(comments.router, prefix="/api")
    app.include_router(notifications.router, prefix="/api")
    app.include_router(realtime.router)
    app.include_router(metrics.router)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        content = create_error_detail(
            ErrorCode.VALIDATION_ERROR,
            "Validation error",
            errors=validation_errors(list(exc.errors())),
        )
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=content)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        detail = exc.detail
        if isinstance(detail, dict) and {"code", "message"}.issubset(detail.keys()):
            content = {"success": False, "data": None, **detail}
        else:
            message = detail if isinstance(detail, str) else "An unexpected error occurred"
            content = create_error_detail(ErrorCode.BAD_REQUEST, message)
        return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_exception", path=request.url.path, method=request.method)
        content = create_error_detail(ErrorCode.INTERNAL_ERROR, "Internal server error")
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)

    return app


app = create_app()
