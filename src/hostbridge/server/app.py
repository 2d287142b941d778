"""FastAPI application setup and route registration."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from hostbridge import __version__
from hostbridge.infra import otel_tracing
from hostbridge.server.connections import ConnectionManager
from hostbridge.server.routes import router
from hostbridge.services import Services, build_services

_log = logging.getLogger(__name__)


def create_app(services: Services | None = None) -> FastAPI:
    """Build the application around *services* (built from config when omitted)."""
    otel_tracing.configure()
    services = services or build_services()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan: close sessions and cancel runs on shutdown."""
        _log.info("hostbridge server starting")
        yield
        _log.info("hostbridge server shutting down")
        await app.state.manager.close()
        await app.state.services.shutdown()

    app = FastAPI(title="hostbridge", version=__version__, lifespan=lifespan)
    app.state.services = services
    app.state.manager = ConnectionManager()
    app.include_router(router)
    return app
