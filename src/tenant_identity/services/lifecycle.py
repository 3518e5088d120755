"""
tenant_identity.services.lifecycle

Tenant identity-lifecycle orchestrator (transaction + persistence owner).

Responsibilities:
- Validate requests before any remote call.
- Hold the per-tenant lease for the duration of a workflow.
- Execute the provisioning/deprovisioning graphs with a checkpoint after each node.
- Bound every workflow by an overall deadline.
- Roll back failed provisioning in reverse creation order, even when the caller is cancelled.
- Sweep abandoned runs and finish or undo them (reconcile).
"""

from __future__ import annotations

import asyncio
import functools
import uuid
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from tenant_identity.cloud.capabilities import CloudCapabilities
from tenant_identity.db.base import utcnow
from tenant_identity.db.models import RunStatus, UserRecord, WorkflowKind
from tenant_identity.db.repositories.audit import AuditRepo
from tenant_identity.db.repositories.leases import TenantLeaseRepo
from tenant_identity.db.repositories.runs import WorkflowRunRepo
from tenant_identity.db.repositories.users import UserRecordStore
from tenant_identity.errors import Conflict, NotFound, TenantIdentityError, UpstreamFailure, require
from tenant_identity.observability.logging import get_logger, workflow_context
from tenant_identity.provisioning.compensation import run_compensations, split_superseded
from tenant_identity.provisioning.graph import (
    build_deprovisioning_graph,
    build_provisioning_graph,
    build_toolkit,
)
from tenant_identity.provisioning.state import DeprovisioningState, ProvisioningState
from tenant_identity.settings import Settings

log = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class AdminRegistration:
    """Input of the provisioning workflow: one tenant and its first (admin) identity."""

    tenant_id: str
    user_name: str
    first_name: str
    last_name: str
    tier: str
    company_name: str | None = None
    # Defaults to user_name; the admin signs in with their email address.
    email: str | None = None

    def validated(self) -> AdminRegistration:
        user_name = require(self.user_name, "userName")
        return AdminRegistration(
            tenant_id=require(self.tenant_id, "tenantId"),
            user_name=user_name,
            first_name=require(self.first_name, "firstName"),
            last_name=require(self.last_name, "lastName"),
            tier=require(self.tier, "tier"),
            company_name=self.company_name,
            email=self.email or user_name,
        )


@dataclass(slots=True)
class DeprovisionResult:
    tenant_id: str
    run_id: str
    deleted: list[str] = field(default_factory=list)
    absent: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    purged_records: int = 0


@dataclass(slots=True)
class ReconcileReport:
    completed: list[str] = field(default_factory=list)
    rolled_back: list[str] = field(default_factory=list)
    incomplete: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


class TenantLifecycleOrchestrator:
    def __init__(
        self,
        *,
        session: AsyncSession,
        settings: Settings,
        cloud: CloudCapabilities,
        actor: str = "system",
    ) -> None:
        self._session = session
        self._settings = settings
        self._actor = actor

        self._records = UserRecordStore(session)
        self._runs = WorkflowRunRepo(session)
        self._leases = TenantLeaseRepo(session)
        self._audit = AuditRepo(session)
        self._toolkit = build_toolkit(cloud=cloud, settings=settings, records=self._records)

    # --- provisioning -------------------------------------------------------

    async def provision(self, registration: AdminRegistration) -> UserRecord:
        reg = registration.validated()
        run_id = uuid.uuid4()
        owner = str(run_id)

        with workflow_context(tenant_id=reg.tenant_id, run_id=owner, workflow="provision"):
            await self._acquire_lease(reg.tenant_id, owner)
            try:
                return await self._provision_locked(reg, run_id)
            finally:
                await _shielded(self._release_lease(reg.tenant_id, owner))

    async def _provision_locked(self, reg: AdminRegistration, run_id: uuid.UUID) -> UserRecord:
        # createDomain is not idempotent; never run it twice for one tenant.
        if await self._records.find_tenant_admin(reg.tenant_id) is not None:
            log.warning("tenant_already_provisioned")
            raise Conflict(f"tenant {reg.tenant_id} is already provisioned")

        state: ProvisioningState = {
            "tenant_id": reg.tenant_id,
            "run_id": str(run_id),
            "request": {
                "user_name": reg.user_name,
                "email": reg.email,
                "first_name": reg.first_name,
                "last_name": reg.last_name,
                "tier": reg.tier,
                "company_name": reg.company_name,
            },
            "compensations": [],
            "completed_steps": [],
        }
        await self._start_run(run_id, reg.tenant_id, WorkflowKind.provision, dict(state))

        await self._run_graph(
            kind=WorkflowKind.provision,
            graph=build_provisioning_graph(toolkit=self._toolkit),
            run_id=run_id,
            tenant_id=reg.tenant_id,
            state=state,
            on_failure=functools.partial(self._roll_back, run_id=run_id, tenant_id=reg.tenant_id, state=state),
        )

        await self._finish_run(run_id, reg.tenant_id, dict(state), details={"user_id": reg.user_name})
        record = await self._records.get(reg.tenant_id, reg.user_name)
        if record is None:  # pragma: no cover
            raise NotFound(f"user record {reg.user_name} missing after provisioning")
        return record

    async def _roll_back(
        self,
        message: str,
        *,
        run_id: uuid.UUID,
        tenant_id: str,
        state: ProvisioningState,
    ) -> None:
        # Discard whatever the failed step left in the unit of work; checkpoints are committed.
        await self._session.rollback()

        pending = list(state.get("compensations", []))
        log.warning("rollback_started", pending=len(pending))
        remaining = await run_compensations(pending, self._toolkit)
        state["compensations"] = remaining

        status = RunStatus.rolled_back if not remaining else RunStatus.rollback_incomplete
        await self._runs.set_state(run_id=run_id, status=status, state=dict(state), error=message)
        await self._audit.add(
            tenant_id=tenant_id,
            run_id=run_id,
            actor=self._actor,
            event_type="ROLLBACK_COMPLETED" if not remaining else "ROLLBACK_INCOMPLETE",
            details={"undone": len(pending) - len(remaining), "remaining": remaining},
        )
        await self._audit.add(
            tenant_id=tenant_id,
            run_id=run_id,
            actor=self._actor,
            event_type="RUN_FAILED",
            details={"error": message},
        )
        await self._session.commit()
        log.info("rollback_finished", status=str(status), remaining=len(remaining))

    # --- deprovisioning -----------------------------------------------------

    async def deprovision(
        self,
        tenant_id: str,
        *,
        auth_domain_id: str | None = None,
        broker_id: str | None = None,
    ) -> DeprovisionResult:
        tenant_id = require(tenant_id, "tenantId")
        run_id = uuid.uuid4()
        owner = str(run_id)

        with workflow_context(tenant_id=tenant_id, run_id=owner, workflow="deprovision"):
            await self._acquire_lease(tenant_id, owner)
            try:
                return await self._deprovision_locked(tenant_id, run_id, auth_domain_id, broker_id)
            finally:
                await _shielded(self._release_lease(tenant_id, owner))

    async def _deprovision_locked(
        self,
        tenant_id: str,
        run_id: uuid.UUID,
        auth_domain_id: str | None,
        broker_id: str | None,
    ) -> DeprovisionResult:
        if not auth_domain_id or not broker_id:
            admin = await self._records.find_tenant_admin(tenant_id)
            if admin is not None:
                auth_domain_id = auth_domain_id or admin.auth_domain_id
                broker_id = broker_id or admin.broker_id

        state: DeprovisioningState = {
            "tenant_id": tenant_id,
            "run_id": str(run_id),
            "auth_domain_id": auth_domain_id,
            "broker_id": broker_id,
            "deleted": [],
            "absent": [],
            "warnings": [],
            "purged_records": 0,
            "completed_steps": [],
        }
        await self._start_run(run_id, tenant_id, WorkflowKind.deprovision, dict(state))

        await self._run_graph(
            kind=WorkflowKind.deprovision,
            graph=build_deprovisioning_graph(toolkit=self._toolkit),
            run_id=run_id,
            tenant_id=tenant_id,
            state=state,
            on_failure=functools.partial(self._mark_failed, run_id=run_id, tenant_id=tenant_id, state=state),
        )

        result = DeprovisionResult(
            tenant_id=tenant_id,
            run_id=str(run_id),
            deleted=list(state.get("deleted", [])),
            absent=list(state.get("absent", [])),
            warnings=list(state.get("warnings", [])),
            purged_records=int(state.get("purged_records", 0) or 0),
        )
        await self._finish_run(
            run_id,
            tenant_id,
            dict(state),
            details={"purged_records": result.purged_records, "warnings": result.warnings},
        )
        return result

    async def _mark_failed(
        self,
        message: str,
        *,
        run_id: uuid.UUID,
        tenant_id: str,
        state: DeprovisioningState,
    ) -> None:
        # Deletes are idempotent; a failed teardown is retried by re-running it, not rolled back.
        await self._session.rollback()
        await self._runs.set_state(
            run_id=run_id, status=RunStatus.failed, state=dict(state), error=message
        )
        await self._audit.add(
            tenant_id=tenant_id,
            run_id=run_id,
            actor=self._actor,
            event_type="RUN_FAILED",
            details={"error": message},
        )
        await self._session.commit()

    # --- reconciliation -----------------------------------------------------

    async def reconcile(self) -> ReconcileReport:
        stale_before = utcnow() - timedelta(seconds=self._settings.stale_run_seconds)
        candidates = [
            (run.id, run.tenant_id, dict(run.state or {}), run.status, run.created_at)
            for run in await self._runs.find_needing_reconciliation(stale_before=stale_before)
        ]
        report = ReconcileReport()

        for run_id, tenant_id, state, status, created_at in candidates:
            owner = f"reconcile:{run_id}"
            try:
                await self._acquire_lease(tenant_id, owner)
            except Conflict:
                # A live workflow owns the tenant; role names are per tenant, so wait for it.
                report.skipped.append(str(run_id))
                continue
            try:
                with workflow_context(tenant_id=tenant_id, run_id=str(run_id), workflow="reconcile"):
                    outcome = await self._reconcile_run(run_id, tenant_id, state, status, created_at)
            finally:
                await _shielded(self._release_lease(tenant_id, owner))
            getattr(report, outcome).append(str(run_id))

        log.info(
            "reconcile_finished",
            examined=len(candidates),
            completed=len(report.completed),
            rolled_back=len(report.rolled_back),
            incomplete=len(report.incomplete),
            skipped=len(report.skipped),
        )
        return report

    async def _reconcile_run(
        self,
        run_id: uuid.UUID,
        tenant_id: str,
        state: dict[str, Any],
        status: RunStatus,
        created_at: datetime,
    ) -> str:
        if status == RunStatus.running and "RecordPersisted" in state.get("completed_steps", []):
            # The process died after the last step but before marking the run complete.
            await self._finish_run(run_id, tenant_id, state, details={"reconciled": True})
            return "completed"

        pending = list(state.get("compensations", []))
        superseded: list[dict[str, Any]] = []
        if await self._runs.completed_provision_after(tenant_id, after=created_at):
            # Role names and record keys now belong to the newer run's live resources.
            pending, superseded = split_superseded(pending)
            log.warning("compensations_superseded", dropped=len(superseded))
        remaining = await run_compensations(pending, self._toolkit)
        state["compensations"] = remaining
        new_status = RunStatus.rolled_back if not remaining else RunStatus.rollback_incomplete

        await self._runs.set_state(
            run_id=run_id,
            status=new_status,
            state=state,
            error="abandoned workflow rolled back" if status == RunStatus.running else None,
        )
        await self._audit.add(
            tenant_id=tenant_id,
            run_id=run_id,
            actor=self._actor,
            event_type="RUN_RECONCILED",
            details={"status": str(new_status), "remaining": remaining, "superseded": superseded},
        )
        await self._session.commit()
        return "rolled_back" if not remaining else "incomplete"

    # --- shared plumbing ----------------------------------------------------

    async def _acquire_lease(self, tenant_id: str, owner: str) -> None:
        try:
            await self._leases.acquire(
                tenant_id=tenant_id, owner=owner, ttl_seconds=self._settings.lease_ttl_seconds
            )
        except Conflict:
            log.warning("tenant_lease_conflict")
            raise
        await self._session.commit()

    async def _release_lease(self, tenant_id: str, owner: str) -> None:
        await self._leases.release(tenant_id=tenant_id, owner=owner)
        await self._session.commit()

    async def _start_run(
        self, run_id: uuid.UUID, tenant_id: str, kind: WorkflowKind, state: dict[str, Any]
    ) -> None:
        await self._runs.create(tenant_id=tenant_id, kind=kind, initial_state=state, run_id=run_id)
        await self._audit.add(
            tenant_id=tenant_id,
            run_id=run_id,
            actor=self._actor,
            event_type="RUN_STARTED",
            details={"kind": str(kind)},
        )
        await self._session.commit()
        log.info("workflow_started", kind=str(kind))

    async def _finish_run(
        self, run_id: uuid.UUID, tenant_id: str, state: dict[str, Any], *, details: dict[str, Any]
    ) -> None:
        await self._runs.set_state(run_id=run_id, status=RunStatus.completed, step="DONE", state=state)
        await self._audit.add(
            tenant_id=tenant_id,
            run_id=run_id,
            actor=self._actor,
            event_type="RUN_COMPLETED",
            details=details,
        )
        await self._session.commit()
        log.info("workflow_completed")

    async def _run_graph(
        self,
        *,
        kind: WorkflowKind,
        graph: Any,
        run_id: uuid.UUID,
        tenant_id: str,
        state: dict[str, Any],
        on_failure: Callable[[str], Awaitable[None]],
    ) -> None:
        deadline = self._settings.workflow_deadline_seconds
        try:
            async with asyncio.timeout(deadline):
                await self._execute_with_checkpoints(
                    graph=graph, kind=kind, run_id=run_id, tenant_id=tenant_id, state=state
                )
        except asyncio.CancelledError:
            log.warning("workflow_cancelled")
            await _shielded(on_failure("workflow cancelled"))
            raise
        except TimeoutError as e:
            message = f"workflow exceeded its deadline of {deadline}s"
            log.error("workflow_deadline_exceeded", deadline_seconds=deadline)
            await _shielded(on_failure(message))
            raise UpstreamFailure(message) from e
        except TenantIdentityError as e:
            log.warning("workflow_step_failed", error_kind=e.kind, error=e.message, code=e.code)
            await _shielded(on_failure(e.message))
            raise
        except Exception as e:
            log.exception("workflow_step_crashed")
            await _shielded(on_failure(f"{type(e).__name__}: {e}"))
            raise UpstreamFailure(f"{kind.value.lower()} failed ({type(e).__name__})") from e

    async def _execute_with_checkpoints(
        self,
        *,
        graph: Any,
        kind: WorkflowKind,
        run_id: uuid.UUID,
        tenant_id: str,
        state: dict[str, Any],
    ) -> None:
        """
        Stream node updates (stream_mode='updates'), merge each into `state` in place and persist
        a checkpoint. `state` therefore always reflects the last completed node, which is what
        rollback works from.
        """

        event = f"{kind.value.lower()}_step_completed"
        async for update in graph.astream(dict(state), stream_mode="updates"):
            if not isinstance(update, dict) or not update:
                continue
            node_name, delta = next(iter(update.items()))
            if isinstance(delta, dict):
                state.update(delta)

            log.info(event, step=node_name)
            await self._runs.set_state(
                run_id=run_id, status=RunStatus.running, step=node_name, state=dict(state)
            )
            await self._audit.add(
                tenant_id=tenant_id,
                run_id=run_id,
                actor=self._actor,
                event_type="STEP_COMPLETED",
                details={"step": node_name},
            )
            await self._session.commit()


async def _shielded(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run `coro` to completion even if the caller is cancelled meanwhile; the cancellation is
    re-raised once it has finished.
    """

    task = asyncio.ensure_future(coro)
    cancelled = False
    while not task.done():
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.done():
                raise
            cancelled = True
    if cancelled:
        raise asyncio.CancelledError()
    return task.result()


# --- Module Notes -----------------------------------------------------------
# This service is the transaction boundary: nodes only flush, the orchestrator commits one
# checkpoint per node so an abandoned run always has a usable compensation list.
