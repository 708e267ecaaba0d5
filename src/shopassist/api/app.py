"""FastAPI application factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import shopassist
from shopassist.api.router import api_router
from shopassist.core.config import Settings, configure_logging, get_settings
from shopassist.core.connection import DatabaseConnection
from shopassist.gateway.composer import ResponseComposer
from shopassist.gateway.service import CommandGateway, build_gateway

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    gateway: CommandGateway | None = None,
) -> FastAPI:
    """Create the API application.

    Args:
        settings: Settings to use (defaults to environment settings)
        gateway: Pre-built gateway; when omitted one is built at startup
            around a new connection pool that is closed at shutdown
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        connection: DatabaseConnection | None = None
        if app.state.gateway is None:
            connection = DatabaseConnection(
                settings.database_url,
                echo=settings.echo_sql,
                pool_size=settings.pool_size,
            )
            app.state.gateway = build_gateway(settings, connection)
            logger.info(f"Gateway ready on {connection.dialect} database")
        yield
        if connection is not None:
            connection.close()
            app.state.gateway = None

    app = FastAPI(
        title="ShopAssist Gateway",
        version=shopassist.__version__,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.gateway = gateway
    app.include_router(api_router)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Any unhandled failure becomes a JSON error response."""
        logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content=ResponseComposer().internal_error().to_payload(),
        )

    @app.get("/")
    async def root():
        return {"service": "shopassist", "version": shopassist.__version__}

    @app.get("/health")
    async def health():
        return {"status": "healthy", "ready": app.state.gateway is not None}

    return app
