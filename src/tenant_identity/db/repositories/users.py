"""
tenant_identity.db.repositories.users

UserRecordStore: the only writer of User Records.

Responsibilities:
- Persist, query and delete tenant-scoped User Records keyed by (tenant_id, id).
- Serve id-only lookups through the secondary index (system context).
- Purge every record of a tenant during deprovisioning.

Commit is owned by the caller (service layer).
"""

from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_identity.db.models import UserRecord
from tenant_identity.provisioning.models import TenantIdentityBundle, UserRole


class UserRecordStore:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def put(self, record: UserRecord) -> UserRecord:
        merged = await self._session.merge(record)
        await self._session.flush()
        return merged

    async def get(self, tenant_id: str, user_id: str) -> UserRecord | None:
        return await self._session.get(UserRecord, (tenant_id, user_id))

    async def find_by_id(self, user_id: str) -> UserRecord | None:
        stmt = (
            select(UserRecord)
            .where(UserRecord.id == user_id)
            .order_by(UserRecord.created_at)
            .limit(1)
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def lookup_pool_data(
        self,
        user_id: str,
        *,
        system_context: bool,
        tenant_id: str | None = None,
    ) -> TenantIdentityBundle | None:
        # System context (registration, provisioning) does not know the tenant yet.
        if system_context or not tenant_id:
            record = await self.find_by_id(user_id)
        else:
            record = await self.get(tenant_id, user_id)
        if record is None:
            return None
        return bundle_of(record)

    async def set_sub(self, tenant_id: str, user_id: str, sub: str) -> UserRecord | None:
        record = await self.get(tenant_id, user_id)
        if record is None:
            return None
        record.sub = sub
        await self._session.flush()
        return record

    async def list_for_tenant(self, tenant_id: str) -> list[UserRecord]:
        stmt = select(UserRecord).where(UserRecord.tenant_id == tenant_id).order_by(UserRecord.id)
        return list((await self._session.execute(stmt)).scalars().all())

    async def find_tenant_admin(self, tenant_id: str) -> UserRecord | None:
        stmt = (
            select(UserRecord)
            .where(UserRecord.tenant_id == tenant_id, UserRecord.role == UserRole.tenant_admin)
            .order_by(UserRecord.created_at)
            .limit(1)
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def delete(self, tenant_id: str, user_id: str) -> bool:
        stmt = delete(UserRecord).where(UserRecord.tenant_id == tenant_id, UserRecord.id == user_id)
        result = await self._session.execute(stmt)
        return (result.rowcount or 0) > 0

    async def purge_tenant(self, tenant_id: str) -> int:
        stmt = delete(UserRecord).where(UserRecord.tenant_id == tenant_id)
        result = await self._session.execute(stmt)
        return result.rowcount or 0


def bundle_of(record: UserRecord) -> TenantIdentityBundle:
    return TenantIdentityBundle(
        tenant_id=record.tenant_id,
        auth_domain_id=record.auth_domain_id,
        client_id=record.client_id,
        broker_id=record.broker_id,
    )
