"""
tenant_identity.services.registration

Tenant registration: the outer flow that onboards a whole tenant.

Responsibilities:
- Reject user names that are already registered; serialize concurrent sign-ups of one email.
- Mint the tenant id and provision the tenant's identity infrastructure.
- Save the tenant metadata row; undo the provisioning when that save fails.
- Unregister: deprovision and drop the tenant metadata row.
"""

from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from tenant_identity.db.models import UserRecord
from tenant_identity.db.repositories.leases import TenantLeaseRepo
from tenant_identity.db.repositories.users import UserRecordStore
from tenant_identity.errors import Conflict, NotFound, TenantIdentityError, UpstreamFailure, require
from tenant_identity.observability.logging import get_logger
from tenant_identity.service_clients.tenant_service import TenantServiceClient
from tenant_identity.services.lifecycle import (
    AdminRegistration,
    DeprovisionResult,
    TenantLifecycleOrchestrator,
)

log = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class TenantSignup:
    company_name: str
    email: str
    first_name: str
    last_name: str
    tier: str


@dataclass(frozen=True, slots=True)
class RegisteredTenant:
    tenant: dict[str, Any]
    admin: UserRecord


def new_tenant_id() -> str:
    return f"TENANT{uuid.uuid4().hex}"


def tenant_row(record: UserRecord) -> dict[str, Any]:
    # Field names are the tenant-record service's wire format.
    return {
        "id": record.tenant_id,
        "ownerName": record.id,
        "email": record.email,
        "firstName": record.first_name,
        "lastName": record.last_name,
        "companyName": record.company_name,
        "tier": record.tier,
        "userPoolId": record.auth_domain_id,
        "identityPoolId": record.broker_id,
        "clientId": record.client_id,
    }


def signup_lease_key(email: str) -> str:
    # Tenant ids are minted per sign-up, so concurrent sign-ups are serialized on the email instead.
    return f"signup:{hashlib.sha256(email.strip().lower().encode()).hexdigest()}"


class TenantRegistrationService:
    def __init__(
        self,
        *,
        session: AsyncSession,
        orchestrator: TenantLifecycleOrchestrator,
        records: UserRecordStore,
        tenants: TenantServiceClient,
        lease_ttl_seconds: int,
    ) -> None:
        self._session = session
        self._leases = TenantLeaseRepo(session)
        self._orchestrator = orchestrator
        self._records = records
        self._tenants = tenants
        self._lease_ttl_seconds = lease_ttl_seconds

    async def register(self, signup: TenantSignup) -> RegisteredTenant:
        email = require(signup.email, "email")
        key = signup_lease_key(email)
        owner = uuid.uuid4().hex
        try:
            await self._leases.acquire(tenant_id=key, owner=owner, ttl_seconds=self._lease_ttl_seconds)
        except Conflict as e:
            raise Conflict(f"registration for {email} is already in progress") from e
        await self._session.commit()

        try:
            return await self._register_locked(signup, email)
        finally:
            await self._leases.release(tenant_id=key, owner=owner)
            await self._session.commit()

    async def _register_locked(self, signup: TenantSignup, email: str) -> RegisteredTenant:
        if await self._records.find_by_id(email) is not None:
            raise Conflict(f"user {email} is already registered")

        tenant_id = new_tenant_id()
        admin = await self._orchestrator.provision(
            AdminRegistration(
                tenant_id=tenant_id,
                user_name=email,
                email=email,
                first_name=signup.first_name,
                last_name=signup.last_name,
                tier=signup.tier,
                company_name=signup.company_name,
            )
        )

        try:
            tenant = await self._tenants.create_tenant(tenant_row(admin))
        except TenantIdentityError as e:
            log.error("tenant_save_failed", tenant_id=tenant_id, error_kind=e.kind)
            await self._undo(tenant_id, admin)
            raise UpstreamFailure(f"tenant {tenant_id} could not be saved; provisioning was undone") from e

        log.info("tenant_registered", tenant_id=tenant_id)
        return RegisteredTenant(tenant=tenant, admin=admin)

    async def _undo(self, tenant_id: str, admin: UserRecord) -> None:
        try:
            await self._orchestrator.deprovision(
                tenant_id, auth_domain_id=admin.auth_domain_id, broker_id=admin.broker_id
            )
        except TenantIdentityError as e:
            # The failed run stays on record for a manual or scheduled retry.
            log.error("tenant_undo_failed", tenant_id=tenant_id, error_kind=e.kind, error=e.message)

    async def unregister(self, tenant_id: str) -> DeprovisionResult:
        tenant_id = require(tenant_id, "tenantId")
        result = await self._orchestrator.deprovision(tenant_id)
        try:
            await self._tenants.delete_tenant(tenant_id)
        except NotFound:
            log.info("tenant_row_absent", tenant_id=tenant_id)
        return result
