"""FastAPI application factory and lifespan management."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import APIRouter, FastAPI

import mailbridge
from mailbridge.api.dependencies import ServiceContainer, build_container
from mailbridge.api.error_handlers import setup_error_handlers
from mailbridge.api.routes import auth_router, integrations_router
from mailbridge.core.config import Settings, get_settings
from mailbridge.core.database import Database
from mailbridge.core.logging import setup_logging
from mailbridge.repositories.postgres import SqlAlchemyIntegrationStore

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Connect storage and wire services unless a container was injected."""
    settings: Settings = app.state.settings
    await logger.ainfo("application_starting", base_url=settings.base_url)

    db: Database | None = None
    if app.state.container is None:
        db = Database.from_settings(settings)
        await db.connect()
        if settings.db_create_schema:
            await db.create_schema()
        app.state.container = build_container(settings, SqlAlchemyIntegrationStore(db))
        await logger.ainfo("database_connected")

    yield

    await logger.ainfo("application_shutting_down")
    if db is not None:
        await db.disconnect()
    await logger.ainfo("application_shutdown_complete")


def create_app(
    settings: Settings | None = None,
    container: ServiceContainer | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings. Loaded from the environment if omitted.
        container: Optional pre-wired services, e.g. over an in-memory store.

    Returns:
        Configured FastAPI application instance.
    """
    if settings is None:
        settings = get_settings()

    setup_logging(level=settings.log_level, json_format=settings.log_json)

    app = FastAPI(
        title="mailbridge API",
        description="Connect Gmail, Outlook and SMTP mailboxes; sync and send mail",
        version=mailbridge.__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.container = container

    setup_error_handlers(app)

    api = APIRouter(prefix="/api")
    api.include_router(auth_router)
    api.include_router(integrations_router)
    app.include_router(api)

    return app
