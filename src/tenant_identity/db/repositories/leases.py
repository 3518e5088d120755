"""
tenant_identity.db.repositories.leases

Per-tenant lease: at most one in-flight workflow per tenant id, across processes.
"""

from __future__ import annotations

from datetime import timedelta

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_identity.db.base import utcnow
from tenant_identity.db.models import TenantLease
from tenant_identity.errors import Conflict


class TenantLeaseRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def acquire(self, *, tenant_id: str, owner: str, ttl_seconds: int) -> None:
        """
        Take the lease or raise Conflict. Must run on a clean session: a lost insert race rolls
        the session back.
        """

        now = utcnow()
        expires_at = now + timedelta(seconds=ttl_seconds)

        # Take over an expired lease atomically; only one contender can match the predicate.
        takeover = await self._session.execute(
            update(TenantLease)
            .where(TenantLease.tenant_id == tenant_id, TenantLease.expires_at <= now)
            .values(owner=owner, acquired_at=now, expires_at=expires_at)
            .execution_options(synchronize_session=False)
        )
        if (takeover.rowcount or 0) == 1:
            return

        self._session.add(
            TenantLease(tenant_id=tenant_id, owner=owner, acquired_at=now, expires_at=expires_at)
        )
        try:
            await self._session.flush()
        except IntegrityError as e:
            await self._session.rollback()
            raise Conflict(f"a workflow for tenant {tenant_id} is already in progress") from e

    async def release(self, *, tenant_id: str, owner: str) -> None:
        await self._session.execute(
            delete(TenantLease)
            .where(TenantLease.tenant_id == tenant_id, TenantLease.owner == owner)
            .execution_options(synchronize_session=False)
        )

    async def is_held(self, tenant_id: str) -> bool:
        lease = await self._session.get(TenantLease, tenant_id, populate_existing=True)
        return lease is not None and lease.expires_at > utcnow()
