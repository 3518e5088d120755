"""
tenant_identity.api.routers.internal.router

Internal endpoints under `/internal/v1`.

Responsibilities:
- Trigger the reconciliation sweep for abandoned workflows.
- Expose workflow runs and the audit trail of a tenant.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_identity.api.deps import db_session, orchestrator_dep
from tenant_identity.auth.deps import require_roles
from tenant_identity.db.repositories.audit import AuditRepo
from tenant_identity.db.repositories.runs import WorkflowRunRepo
from tenant_identity.services.lifecycle import TenantLifecycleOrchestrator

router = APIRouter(
    prefix="/internal/v1",
    tags=["internal"],
    dependencies=[Depends(require_roles("internal_system"))],
)


@router.post("/reconcile")
async def reconcile(
    orchestrator: TenantLifecycleOrchestrator = Depends(orchestrator_dep),
) -> dict[str, list[str]]:
    report = await orchestrator.reconcile()
    return {
        "completed": report.completed,
        "rolledBack": report.rolled_back,
        "incomplete": report.incomplete,
        "skipped": report.skipped,
    }


@router.get("/tenants/{tenant_id}/runs")
async def list_runs(
    tenant_id: str,
    session: AsyncSession = Depends(db_session),
) -> list[dict[str, Any]]:
    runs = await WorkflowRunRepo(session).list_for_tenant(tenant_id)
    return [
        {
            "runId": str(r.id),
            "kind": str(r.kind),
            "status": str(r.status),
            "step": r.step,
            "error": r.error,
            "pendingCompensations": len((r.state or {}).get("compensations", [])),
            "createdAt": r.created_at.isoformat(),
            "updatedAt": r.updated_at.isoformat(),
        }
        for r in runs
    ]


@router.get("/tenants/{tenant_id}/audit")
async def list_audit(
    tenant_id: str,
    session: AsyncSession = Depends(db_session),
) -> list[dict[str, Any]]:
    events = await AuditRepo(session).list_for_tenant(tenant_id)
    return [
        {
            "eventType": e.event_type,
            "runId": str(e.run_id) if e.run_id else None,
            "actor": e.actor,
            "details": e.details,
            "createdAt": e.created_at.isoformat(),
        }
        for e in events
    ]
