"""
tenant_identity.db.repositories.audit

Repository for `AuditEvent` entities (append-only).
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_identity.db.models import AuditEvent


class AuditRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(
        self,
        *,
        tenant_id: str,
        run_id: uuid.UUID | None,
        actor: str,
        event_type: str,
        details: dict[str, Any] | None = None,
    ) -> AuditEvent:
        ev = AuditEvent(
            tenant_id=tenant_id,
            run_id=run_id,
            actor=actor,
            event_type=event_type,
            details=details or {},
        )
        self._session.add(ev)
        await self._session.flush()
        return ev

    async def list_for_tenant(self, tenant_id: str, *, limit: int = 200) -> list[AuditEvent]:
        stmt = (
            select(AuditEvent)
            .where(AuditEvent.tenant_id == tenant_id)
            .order_by(desc(AuditEvent.created_at))
            .limit(limit)
        )
        return list((await self._session.execute(stmt)).scalars().all())
