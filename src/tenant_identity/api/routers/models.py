"""
tenant_identity.api.routers.models

Wire models shared by the public routers (camelCase on the wire).
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from tenant_identity.db.models import UserRecord
from tenant_identity.services.lifecycle import DeprovisionResult


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserRecordResponse(CamelModel):
    tenant_id: str
    id: str
    user_name: str
    email: str
    first_name: str
    last_name: str
    role: str
    tier: str
    company_name: str | None = None
    account_name: str | None = None
    owner_name: str | None = None
    user_pool_id: str
    client_id: str
    identity_pool_id: str
    sub: str | None = None

    @classmethod
    def of(cls, record: UserRecord) -> UserRecordResponse:
        return cls(
            tenant_id=record.tenant_id,
            id=record.id,
            user_name=record.user_name,
            email=record.email,
            first_name=record.first_name,
            last_name=record.last_name,
            role=str(record.role),
            tier=record.tier,
            company_name=record.company_name,
            account_name=record.account_name,
            owner_name=record.owner_name,
            user_pool_id=record.auth_domain_id,
            client_id=record.client_id,
            identity_pool_id=record.broker_id,
            sub=record.sub,
        )


class DeprovisionResponse(CamelModel):
    tenant_id: str
    run_id: str
    deleted: list[str]
    absent: list[str]
    warnings: list[str]
    purged_records: int

    @classmethod
    def of(cls, result: DeprovisionResult) -> DeprovisionResponse:
        return cls(
            tenant_id=result.tenant_id,
            run_id=result.run_id,
            deleted=result.deleted,
            absent=result.absent,
            warnings=result.warnings,
            purged_records=result.purged_records,
        )
