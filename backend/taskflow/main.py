"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from taskflow.api import router as api_router
from taskflow.api.errors import register_exception_handlers
from taskflow.config import get_settings
from taskflow.db.session import close_db, init_db
from taskflow.log_config import configure_logging
from taskflow.middleware import RequestContextMiddleware
from taskflow.repositories.base import EmailSender

logger = structlog.get_logger()
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown events."""
    logger.info("taskflow_starting", version=settings.app_version, environment=settings.environment)
    await init_db()
    logger.info("database_initialized")

    yield

    logger.info("taskflow_stopping")
    await close_db()
    logger.info("database_closed")


def create_app(mailer: EmailSender | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    ``mailer`` is the outbound email transport; without one, notifications
    are delivered in-app only.
    """
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Task authorization and lifecycle engine",
        openapi_url=f"{settings.api_prefix}/openapi.json",
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    app.state.mailer = mailer

    # Last added runs first
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=["*"])

    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.api_prefix)

    return app


app = create_app()
