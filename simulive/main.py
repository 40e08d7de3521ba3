"""
FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException

from simulive.api.router import api_router
from simulive.core.config import settings
from simulive.core.errors import (
    AppError,
    app_exception_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from simulive.core.logging import RequestIDMiddleware, RequestLoggingMiddleware, get_logger, setup_logging
from simulive.infra.db import close_db_connection
from simulive.infra.redis import close_redis_pool, init_redis_pool
from simulive.realtime.broadcaster import close_broadcaster, init_broadcaster
from simulive.realtime.ws import router as realtime_ws_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging()
    await init_redis_pool()
    await init_broadcaster()
    logger.info("Simulive backend started", env=settings.env)

    yield

    # Shutdown
    await close_broadcaster()
    await close_redis_pool()
    await close_db_connection()


tags_metadata = [
    {
        "name": "sessions",
        "description": "Create, edit and list simulated-live class sessions.",
    },
    {
        "name": "chat",
        "description": "Session chat and timestamp-triggered admin messages.",
    },
    {
        "name": "realtime",
        "description": "Channel authorization for the broadcast fabric.",
    },
    {
        "name": "websocket",
        "description": "Real-time fan-out using WebSocket channels.",
    },
    {
        "name": "auth",
        "description": "Guest identities scoped to a single session.",
    },
    {
        "name": "debug",
        "description": "Development tokens and seed data.",
    },
    {
        "name": "health",
        "description": "System health check.",
    },
]


def create_app() -> FastAPI:
    app = FastAPI(
        title="Simulive Backend",
        description="""
Simulive broadcasts a pre-recorded video as if it were a live class.

## Features
* **Clock-derived lifecycle**: scheduled, live and ended follow from the start time and video length.
* **Scheduled messages**: chat messages injected at playback offsets, delivered once.
* **Realtime channels**: chat, presence and session updates fanned out over WebSocket.
""",
        version="0.1.0",
        openapi_tags=tags_metadata,
        openapi_url=f"{settings.api_prefix}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        swagger_ui_parameters={
            "persistAuthorization": True,
            "displayRequestDuration": True,
        },
        lifespan=lifespan,
    )

    # Middleware
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # CORS Configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/", tags=["health"], include_in_schema=False)
    async def root():
        return {
            "message": "Welcome to Simulive Backend API",
            "docs": "/docs",
            "status": "operational",
        }

    # WebSocket Router (mounted under the same prefix as the REST API)
    app.include_router(realtime_ws_router, prefix=settings.api_prefix)

    # Routes
    app.include_router(api_router, prefix=settings.api_prefix)

    # Exception Handlers
    app.add_exception_handler(AppError, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    return app


app = create_app()
