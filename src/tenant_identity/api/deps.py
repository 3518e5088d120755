"""
tenant_identity.api.deps

FastAPI dependency wiring for the API layer.

Responsibilities:
- Encapsulate app.state access (settings, sessionmaker, HTTP client, cloud capabilities).
- Provide request-scoped DB sessions and service objects.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import httpx
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenant_identity.cloud.capabilities import CloudCapabilities
from tenant_identity.db.repositories.users import UserRecordStore
from tenant_identity.service_clients.tenant_service import TenantServiceClient
from tenant_identity.service_clients.token_service import TokenServiceClient
from tenant_identity.services.lifecycle import TenantLifecycleOrchestrator
from tenant_identity.services.registration import TenantRegistrationService
from tenant_identity.settings import Settings


def settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def sessionmaker_from_app(request: Request) -> async_sessionmaker[AsyncSession]:
    return request.app.state.sessionmaker


async def db_session(
    session_factory: async_sessionmaker[AsyncSession] = Depends(sessionmaker_from_app),
) -> AsyncIterator[AsyncSession]:
    # Request-scoped DB session. Commit/rollback is managed explicitly by the service layer.
    async with session_factory() as session:
        yield session


def http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http


def system_cloud(request: Request) -> CloudCapabilities:
    return request.app.state.cloud


def orchestrator_dep(
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
    cloud: CloudCapabilities = Depends(system_cloud),
) -> TenantLifecycleOrchestrator:
    return TenantLifecycleOrchestrator(session=session, settings=settings, cloud=cloud, actor="api")


def registration_dep(
    session: AsyncSession = Depends(db_session),
    orchestrator: TenantLifecycleOrchestrator = Depends(orchestrator_dep),
    settings: Settings = Depends(settings_dep),
    http: httpx.AsyncClient = Depends(http_client),
) -> TenantRegistrationService:
    # FastAPI caches `db_session` per request, so both objects share one session.
    return TenantRegistrationService(
        session=session,
        orchestrator=orchestrator,
        records=UserRecordStore(session),
        tenants=TenantServiceClient(settings=settings, http=http),
        lease_ttl_seconds=settings.lease_ttl_seconds,
    )


def token_client_dep(
    settings: Settings = Depends(settings_dep),
    http: httpx.AsyncClient = Depends(http_client),
) -> TokenServiceClient:
    return TokenServiceClient(settings=settings, http=http)
