"""
tenant_identity.api.routers.users

User-manager endpoints.

Responsibilities:
- Provision a tenant's identity infrastructure together with its admin (`POST /user/reg`).
- Tear a tenant down (`DELETE /user/tenants`).
- Existence check by user name, and the identity listing for a tenant user's own domain.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_identity.api.deps import (
    db_session,
    orchestrator_dep,
    token_client_dep,
)
from tenant_identity.api.routers.models import CamelModel, DeprovisionResponse, UserRecordResponse
from tenant_identity.auth.deps import bearer_token
from tenant_identity.auth.jwt import domain_id_from_token
from tenant_identity.db.repositories.users import UserRecordStore
from tenant_identity.provisioning.identity_domain import IdentityDomainProvisioner
from tenant_identity.service_clients.token_service import TokenServiceClient
from tenant_identity.services.lifecycle import AdminRegistration, TenantLifecycleOrchestrator

router = APIRouter(tags=["users"])


class TenantAdminRequest(CamelModel):
    tenant_id: str
    user_name: str
    first_name: str
    last_name: str
    tier: str
    company_name: str | None = None
    email: str | None = None


class DeleteTenantRequest(CamelModel):
    tenant_id: str
    auth_domain_id: str | None = Field(default=None, alias="userPoolId")
    broker_id: str | None = Field(default=None, alias="identityPoolId")


@router.get("/user/health")
async def user_health() -> dict[str, Any]:
    return {"service": "User Manager", "isAlive": True}


@router.post("/user/reg", response_model=UserRecordResponse, response_model_by_alias=True)
async def create_tenant_admin(
    body: TenantAdminRequest,
    orchestrator: TenantLifecycleOrchestrator = Depends(orchestrator_dep),
) -> UserRecordResponse:
    record = await orchestrator.provision(
        AdminRegistration(
            tenant_id=body.tenant_id,
            user_name=body.user_name,
            first_name=body.first_name,
            last_name=body.last_name,
            tier=body.tier,
            company_name=body.company_name,
            email=body.email,
        )
    )
    return UserRecordResponse.of(record)


@router.delete("/user/tenants", response_model=DeprovisionResponse, response_model_by_alias=True)
async def delete_tenant(
    body: DeleteTenantRequest,
    orchestrator: TenantLifecycleOrchestrator = Depends(orchestrator_dep),
) -> DeprovisionResponse:
    result = await orchestrator.deprovision(
        body.tenant_id, auth_domain_id=body.auth_domain_id, broker_id=body.broker_id
    )
    return DeprovisionResponse.of(result)


@router.get("/user/pool/{user_name}")
async def user_exists(
    user_name: str,
    session: AsyncSession = Depends(db_session),
) -> dict[str, bool]:
    bundle = await UserRecordStore(session).lookup_pool_data(user_name, system_context=True)
    return {"isExist": bundle is not None}


@router.get("/users")
async def list_users(
    request: Request,
    token: str = Depends(bearer_token),
    tokens: TokenServiceClient = Depends(token_client_dep),
) -> list[dict[str, Any]]:
    domain_id = domain_id_from_token(token)
    credentials = await tokens.exchange(token)
    # Tenant-scoped credentials: the caller can only list its own domain.
    cloud = request.app.state.cloud_factory(credentials)
    return await IdentityDomainProvisioner(cloud.identity_domain).list_identities(domain_id)
