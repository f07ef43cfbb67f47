"""FastAPI application factory for PgTenant-Engine."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException

from pgtenant_engine.common.config import PgTenantSettings, get_settings
from pgtenant_engine.common.errors import (
    http_exception_handler,
    pgtenant_error_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from pgtenant_engine.common.exceptions import PgTenantError
from pgtenant_engine.common.logging import setup_logging
from pgtenant_engine.common.schemas import HealthResponse
from pgtenant_engine.deps import ServiceContainer, build_container

logger = logging.getLogger(__name__)


def create_app(
    settings: PgTenantSettings | None = None,
    container: ServiceContainer | None = None,
) -> FastAPI:
    settings = settings or (container.settings if container else get_settings())
    container = container or build_container(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        setup_logging(settings.log_level)
        settings.validate_for_production()
        await container.start()
        await container.probe()
        logger.info(
            "PgTenant-Engine started",
            extra={"environment": settings.environment, "hba_path": settings.hba_path},
        )
        yield
        # Shutdown
        await container.close()
        logger.info("PgTenant-Engine stopped")

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
    )
    app.state.container = container

    app.add_exception_handler(PgTenantError, pgtenant_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(
            version=settings.api_version,
            environment=settings.environment,
            timestamp=datetime.now(timezone.utc),
        )

    # Mount routers
    from pgtenant_engine.tenants.router import router as tenant_router
    from pgtenant_engine.access.router import router as access_router
    from pgtenant_engine.audit.router import router as audit_router

    prefix = settings.api_prefix
    app.include_router(tenant_router, prefix=prefix, tags=["databases"])
    app.include_router(access_router, prefix=prefix, tags=["access-control"])
    app.include_router(audit_router, prefix=prefix, tags=["audit"])

    return app
