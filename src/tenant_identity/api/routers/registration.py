"""
tenant_identity.api.routers.registration

Tenant registration endpoints (self-service onboarding and offboarding).
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from tenant_identity.api.deps import registration_dep
from tenant_identity.api.routers.models import CamelModel, DeprovisionResponse, UserRecordResponse
from tenant_identity.services.registration import TenantRegistrationService, TenantSignup

router = APIRouter(prefix="/registration", tags=["registration"])


class RegistrationRequest(CamelModel):
    company_name: str
    email: str
    first_name: str
    last_name: str
    tier: str


class RegistrationResponse(CamelModel):
    tenant: dict[str, Any]
    admin: UserRecordResponse


@router.post("", response_model=RegistrationResponse, response_model_by_alias=True)
async def register_tenant(
    body: RegistrationRequest,
    svc: TenantRegistrationService = Depends(registration_dep),
) -> RegistrationResponse:
    registered = await svc.register(
        TenantSignup(
            company_name=body.company_name,
            email=body.email,
            first_name=body.first_name,
            last_name=body.last_name,
            tier=body.tier,
        )
    )
    return RegistrationResponse(tenant=registered.tenant, admin=UserRecordResponse.of(registered.admin))


@router.delete("/{tenant_id}", response_model=DeprovisionResponse, response_model_by_alias=True)
async def unregister_tenant(
    tenant_id: str,
    svc: TenantRegistrationService = Depends(registration_dep),
) -> DeprovisionResponse:
    return DeprovisionResponse.of(await svc.unregister(tenant_id))
