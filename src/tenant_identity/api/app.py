"""
tenant_identity.api.app

FastAPI app factory for the tenant identity service.

Responsibilities:
- Build the FastAPI application and register routers/middleware.
- Initialize and dispose shared infrastructure (DB engine, outbound HTTP client, cloud capabilities).
- Map the error taxonomy onto HTTP responses.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

import aioboto3
import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tenant_identity import __version__
from tenant_identity.api.routers.health import router as health_router
from tenant_identity.api.routers.internal.router import router as internal_router
from tenant_identity.api.routers.registration import router as registration_router
from tenant_identity.api.routers.users import router as users_router
from tenant_identity.cloud.base import AwsCredentials
from tenant_identity.cloud.capabilities import CloudCapabilities, build_cloud_capabilities
from tenant_identity.db.init_db import init_db
from tenant_identity.db.session import create_engine, create_sessionmaker
from tenant_identity.errors import TenantIdentityError
from tenant_identity.observability.logging import configure_logging, get_logger
from tenant_identity.observability.middleware import RequestContextMiddleware
from tenant_identity.settings import Settings

log = get_logger(__name__)

CloudFactory = Callable[[AwsCredentials | None], CloudCapabilities]


def create_app(
    *,
    settings: Settings,
    cloud_factory: CloudFactory | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """
    `cloud_factory` builds a capability bundle for the given credentials (None = the service's
    own credentials). `http_transport` replaces the network for outbound service calls.
    """

    configure_logging(service_name=settings.service_name, level=settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log.info("startup", env=settings.env)
        engine = create_engine(settings)
        app.state.engine = engine
        app.state.sessionmaker = create_sessionmaker(engine)
        if settings.env in ("dev", "test"):
            # Prod uses Alembic migrations.
            await init_db(engine)

        app.state.http = httpx.AsyncClient(
            timeout=settings.http_timeout_seconds, transport=http_transport
        )

        if cloud_factory is None:
            boto_session = aioboto3.Session()
            app.state.cloud_factory = lambda creds: build_cloud_capabilities(
                settings, credentials=creds, session=boto_session
            )
        else:
            app.state.cloud_factory = cloud_factory
        # System-credential bundle used by the provisioning workflows.
        app.state.cloud = app.state.cloud_factory(None)

        try:
            yield
        finally:
            await app.state.http.aclose()
            await engine.dispose()
            log.info("shutdown")

    app = FastAPI(
        title="Tenant Identity Service",
        version=__version__,
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(RequestContextMiddleware)
    app.include_router(health_router, tags=["health"])
    app.include_router(users_router)
    app.include_router(registration_router)
    app.include_router(internal_router)

    @app.exception_handler(TenantIdentityError)
    async def _tenant_identity_error(request: Request, exc: TenantIdentityError) -> JSONResponse:
        # Kind and message only; upstream payloads never reach the caller.
        log.info("request_failed", error_kind=exc.kind, status_code=exc.status_code)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})

    return app


# --- Module Notes -----------------------------------------------------------
# App composition stays here; workflow logic lives in services/ and provisioning/.
