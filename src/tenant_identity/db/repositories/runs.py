"""
tenant_identity.db.repositories.runs

Repository for `WorkflowRun` entities.

Responsibilities:
- Create and fetch workflow runs.
- Persist per-step checkpoints and terminal status.
- Find abandoned runs for the reconciliation sweep.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_identity.db.base import utcnow
from tenant_identity.db.models import RunStatus, WorkflowKind, WorkflowRun


class WorkflowRunRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        *,
        tenant_id: str,
        kind: WorkflowKind,
        initial_state: dict[str, Any],
        run_id: uuid.UUID | None = None,
    ) -> WorkflowRun:
        run = WorkflowRun(
            id=run_id or uuid.uuid4(),
            tenant_id=tenant_id,
            kind=kind,
            status=RunStatus.running,
            step="START",
            state=initial_state,
            error=None,
        )
        self._session.add(run)
        await self._session.flush()
        return run

    async def get(self, run_id: uuid.UUID) -> WorkflowRun | None:
        return await self._session.get(WorkflowRun, run_id)

    async def set_state(
        self,
        *,
        run_id: uuid.UUID,
        status: RunStatus | None = None,
        step: str | None = None,
        state: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        run = await self._session.get(WorkflowRun, run_id, with_for_update=True)
        if run is None:
            return
        if status is not None:
            run.status = status
        if step is not None:
            run.step = step
        if state is not None:
            run.state = state
        if error is not None:
            run.error = error
        run.updated_at = utcnow()

    async def list_for_tenant(self, tenant_id: str, *, limit: int = 50) -> list[WorkflowRun]:
        stmt = (
            select(WorkflowRun)
            .where(WorkflowRun.tenant_id == tenant_id)
            .order_by(desc(WorkflowRun.created_at))
            .limit(limit)
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def completed_provision_after(self, tenant_id: str, *, after: datetime) -> bool:
        stmt = (
            select(WorkflowRun.id)
            .where(
                WorkflowRun.tenant_id == tenant_id,
                WorkflowRun.kind == WorkflowKind.provision,
                WorkflowRun.status == RunStatus.completed,
                WorkflowRun.created_at > after,
            )
            .limit(1)
        )
        return (await self._session.execute(stmt)).first() is not None

    async def find_needing_reconciliation(self, *, stale_before: datetime) -> list[WorkflowRun]:
        # Abandoned provisioning runs (process died mid-workflow) and rollbacks that left work behind.
        stmt = (
            select(WorkflowRun)
            .where(
                (
                    (WorkflowRun.status == RunStatus.running)
                    & (WorkflowRun.kind == WorkflowKind.provision)
                    & (WorkflowRun.updated_at < stale_before)
                )
                | (WorkflowRun.status == RunStatus.rollback_incomplete)
            )
            .order_by(WorkflowRun.created_at)
        )
        return list((await self._session.execute(stmt)).scalars().all())
