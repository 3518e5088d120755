"""
tests.test_lifecycle

TenantLifecycleOrchestrator end to end against in-memory capabilities and a temporary database.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenant_identity.cloud.capabilities import CloudCapabilities
from tenant_identity.db.base import utcnow
from tenant_identity.db.models import RunStatus, TenantLease, UserRecord, WorkflowKind
from tenant_identity.db.repositories.audit import AuditRepo
from tenant_identity.db.repositories.leases import TenantLeaseRepo
from tenant_identity.db.repositories.runs import WorkflowRunRepo
from tenant_identity.db.repositories.users import UserRecordStore
from tenant_identity.errors import (
    Conflict,
    IdentityCreationFailed,
    InvalidArgument,
    NotFound,
    UpstreamFailure,
)
from tenant_identity.provisioning import compensation
from tenant_identity.provisioning.federated_identity import FederatedIdentityProvisioner
from tenant_identity.provisioning.identity_domain import IdentityDomainProvisioner
from tenant_identity.services.lifecycle import (
    AdminRegistration,
    DeprovisionResult,
    ReconcileReport,
    TenantLifecycleOrchestrator,
)
from tenant_identity.settings import Settings

from .conftest import REGION, FakeCloud

Sessions = async_sessionmaker[AsyncSession]


def _registration(tenant_id: str = "T1", user: str = "alice@example.com") -> AdminRegistration:
    return AdminRegistration(
        tenant_id=tenant_id,
        user_name=user,
        first_name="Alice",
        last_name="Smith",
        tier="prod",
        company_name="Acme",
    )


async def _provision(
    sessionmaker: Sessions, settings: Settings, cloud: CloudCapabilities, reg: AdminRegistration
) -> UserRecord:
    async with sessionmaker() as s:
        return await TenantLifecycleOrchestrator(session=s, settings=settings, cloud=cloud).provision(reg)


async def _deprovision(
    sessionmaker: Sessions, settings: Settings, cloud: CloudCapabilities, tenant_id: str, **ids: str
) -> DeprovisionResult:
    async with sessionmaker() as s:
        orch = TenantLifecycleOrchestrator(session=s, settings=settings, cloud=cloud)
        return await orch.deprovision(tenant_id, **ids)


async def _reconcile(sessionmaker: Sessions, settings: Settings, cloud: CloudCapabilities) -> ReconcileReport:
    async with sessionmaker() as s:
        return await TenantLifecycleOrchestrator(session=s, settings=settings, cloud=cloud).reconcile()


async def _runs(sessionmaker: Sessions, tenant_id: str):
    async with sessionmaker() as s:
        return await WorkflowRunRepo(s).list_for_tenant(tenant_id)


async def _lease_held(sessionmaker: Sessions, tenant_id: str) -> bool:
    async with sessionmaker() as s:
        return await TenantLeaseRepo(s).is_held(tenant_id)


@pytest.mark.asyncio
async def test_provision_builds_complete_bundle(sessionmaker, settings, cloud, fake_cloud: FakeCloud) -> None:
    record = await _provision(sessionmaker, settings, cloud, _registration())

    assert (record.tenant_id, record.id, str(record.role), record.tier) == (
        "T1",
        "alice@example.com",
        "TENANT_ADMIN",
        "prod",
    )
    assert record.auth_domain_id and record.client_id and record.broker_id and record.sub
    assert record.account_name == record.owner_name == "Acme"

    assert record.auth_domain_id in fake_cloud.idp.pools
    assert record.client_id in fake_cloud.idp.pools[record.auth_domain_id]["clients"]
    assert fake_cloud.identity.pools[record.broker_id]["mappings"]
    assert set(fake_cloud.iam.roles) == {"SaaS_T1_AuthRole", "SaaS_T1_AdminRole", "SaaS_T1_UserRole"}
    assert not await _lease_held(sessionmaker, "T1")


@pytest.mark.asyncio
async def test_provision_follows_dependency_order(sessionmaker, settings, cloud, fake_cloud: FakeCloud) -> None:
    await _provision(sessionmaker, settings, cloud, _registration())

    creates = [op for op in fake_cloud.journal if op.startswith(("create", "set_", "admin_"))]
    assert creates == [
        "create_user_pool",
        "create_user_pool_client",
        "create_identity_pool",
        "create_role",
        "create_role",
        "create_role",
        "set_identity_pool_roles",
        "admin_create_user",
    ]


@pytest.mark.asyncio
async def test_provision_checkpoints_every_step(sessionmaker, settings, cloud) -> None:
    await _provision(sessionmaker, settings, cloud, _registration())

    (run,) = await _runs(sessionmaker, "T1")
    assert run.kind == WorkflowKind.provision
    assert run.status == RunStatus.completed
    assert run.state["completed_steps"][-1] == "RecordPersisted"
    assert len(run.state["compensations"]) == 7

    async with sessionmaker() as s:
        events = [e.event_type for e in await AuditRepo(s).list_for_tenant("T1")]
    assert events.count("STEP_COMPLETED") == 12
    assert "RUN_STARTED" in events and "RUN_COMPLETED" in events


@pytest.mark.asyncio
async def test_provision_then_deprovision_leaves_nothing(
    sessionmaker, settings, cloud, fake_cloud: FakeCloud
) -> None:
    record = await _provision(sessionmaker, settings, cloud, _registration())

    result = await _deprovision(
        sessionmaker,
        settings,
        cloud,
        "T1",
        auth_domain_id=record.auth_domain_id,
        broker_id=record.broker_id,
    )

    assert fake_cloud.is_empty()
    assert result.purged_records == 1
    assert result.absent == []
    async with sessionmaker() as s:
        assert await UserRecordStore(s).list_for_tenant("T1") == []

    idp = IdentityDomainProvisioner(fake_cloud.idp)
    assert await idp.domain_exists(record.auth_domain_id) is False
    assert await FederatedIdentityProvisioner(fake_cloud.identity, region=REGION).broker_exists(
        record.broker_id
    ) is False
    with pytest.raises(NotFound):
        await idp.delete_domain(record.auth_domain_id)


@pytest.mark.asyncio
async def test_deprovision_reads_ids_from_admin_record(
    sessionmaker, settings, cloud, fake_cloud: FakeCloud
) -> None:
    await _provision(sessionmaker, settings, cloud, _registration())

    result = await _deprovision(sessionmaker, settings, cloud, "T1")

    assert fake_cloud.is_empty()
    roles_deleted = [p["RoleName"] for op, p in fake_cloud.iam.calls if op == "delete_role"]
    assert roles_deleted == ["SaaS_T1_AdminRole", "SaaS_T1_UserRole", "SaaS_T1_AuthRole"]
    assert result.deleted[0].startswith("domain:")
    assert result.deleted[1].startswith("broker:")


@pytest.mark.asyncio
async def test_deprovision_of_partial_tenant_succeeds_and_is_repeatable(
    sessionmaker, settings, cloud, fake_cloud: FakeCloud
) -> None:
    domain = await IdentityDomainProvisioner(fake_cloud.idp).create_domain("T2")

    first = await _deprovision(
        sessionmaker, settings, cloud, "T2", auth_domain_id=domain.id, broker_id=f"{REGION}:gone"
    )
    assert first.deleted == [f"domain:{domain.id}"]
    assert f"broker:{REGION}:gone" in first.absent
    assert {"role:SaaS_T2_AdminRole", "role:SaaS_T2_UserRole", "role:SaaS_T2_AuthRole"} <= set(first.absent)

    second = await _deprovision(
        sessionmaker, settings, cloud, "T2", auth_domain_id=domain.id, broker_id=f"{REGION}:gone"
    )
    assert second.deleted == []

    runs = await _runs(sessionmaker, "T2")
    assert [r.status for r in runs] == [RunStatus.completed, RunStatus.completed]


@pytest.mark.asyncio
async def test_failure_at_roles_rolls_back_in_reverse_order(
    sessionmaker, settings, cloud, fake_cloud: FakeCloud
) -> None:
    fake_cloud.iam.failures["put_role_policy"] = UpstreamFailure("denied", code="AccessDenied")

    with pytest.raises(UpstreamFailure):
        await _provision(sessionmaker, settings, cloud, _registration())

    assert fake_cloud.is_empty()
    assert fake_cloud.journal[-4:] == [
        "delete_role",
        "delete_identity_pool",
        "delete_user_pool_client",
        "delete_user_pool",
    ]
    (run,) = await _runs(sessionmaker, "T1")
    assert run.status == RunStatus.rolled_back
    assert run.state["compensations"] == []
    assert run.error
    assert not await _lease_held(sessionmaker, "T1")


@pytest.mark.asyncio
async def test_rejected_identity_rolls_back_everything(
    sessionmaker, settings, cloud, fake_cloud: FakeCloud
) -> None:
    with pytest.raises(IdentityCreationFailed):
        await _provision(sessionmaker, settings, cloud, _registration(user="not-an-email"))

    assert fake_cloud.is_empty()
    async with sessionmaker() as s:
        assert await UserRecordStore(s).find_by_id("not-an-email") is None


@pytest.mark.asyncio
async def test_blank_input_fails_before_any_remote_call(
    sessionmaker, settings, cloud, fake_cloud: FakeCloud
) -> None:
    with pytest.raises(InvalidArgument):
        await _provision(sessionmaker, settings, cloud, _registration(tenant_id="  "))

    assert fake_cloud.journal == []
    assert await _runs(sessionmaker, "  ") == []


@pytest.mark.asyncio
async def test_already_provisioned_tenant_is_rejected(
    sessionmaker, settings, cloud, fake_cloud: FakeCloud
) -> None:
    await _provision(sessionmaker, settings, cloud, _registration())
    calls_before = len(fake_cloud.journal)

    with pytest.raises(Conflict):
        await _provision(sessionmaker, settings, cloud, _registration(user="bob@example.com"))

    assert len(fake_cloud.journal) == calls_before
    assert len(fake_cloud.idp.pools) == 1


@pytest.mark.asyncio
async def test_concurrent_provisioning_yields_one_bundle(
    sessionmaker, settings, cloud, fake_cloud: FakeCloud
) -> None:
    gate = asyncio.Event()
    fake_cloud.idp.gates["create_user_pool"] = gate

    first = asyncio.create_task(_provision(sessionmaker, settings, cloud, _registration()))
    await asyncio.wait_for(fake_cloud.idp.reached("create_user_pool").wait(), timeout=5)

    with pytest.raises(Conflict):
        await _provision(sessionmaker, settings, cloud, _registration(user="bob@example.com"))

    gate.set()
    record = await first

    assert fake_cloud.idp.ops().count("create_user_pool") == 1
    assert list(fake_cloud.idp.pools) == [record.auth_domain_id]


@pytest.mark.asyncio
async def test_independent_tenants_run_in_parallel(sessionmaker, settings, cloud, fake_cloud: FakeCloud) -> None:
    records = await asyncio.gather(
        _provision(sessionmaker, settings, cloud, _registration("TA", "a@example.com")),
        _provision(sessionmaker, settings, cloud, _registration("TB", "b@example.com")),
    )

    assert {r.tenant_id for r in records} == {"TA", "TB"}
    assert len(fake_cloud.idp.pools) == 2


@pytest.mark.asyncio
async def test_deadline_expiry_rolls_back(sessionmaker, settings, cloud, fake_cloud: FakeCloud) -> None:
    short = settings.model_copy(update={"workflow_deadline_seconds": 0.3})
    fake_cloud.iam.gates["create_role"] = asyncio.Event()  # never released

    with pytest.raises(UpstreamFailure, match="deadline"):
        await _provision(sessionmaker, short, cloud, _registration())

    assert fake_cloud.is_empty()
    (run,) = await _runs(sessionmaker, "T1")
    assert run.status == RunStatus.rolled_back
    assert not await _lease_held(sessionmaker, "T1")


@pytest.mark.asyncio
async def test_cancellation_still_completes_rollback(
    sessionmaker, settings, cloud, fake_cloud: FakeCloud
) -> None:
    fake_cloud.iam.gates["create_role"] = asyncio.Event()  # never released

    task = asyncio.create_task(_provision(sessionmaker, settings, cloud, _registration()))
    await asyncio.wait_for(fake_cloud.iam.reached("create_role").wait(), timeout=5)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert fake_cloud.is_empty()
    (run,) = await _runs(sessionmaker, "T1")
    assert run.status == RunStatus.rolled_back
    assert run.error == "workflow cancelled"
    assert not await _lease_held(sessionmaker, "T1")


@pytest.mark.asyncio
async def test_incomplete_rollback_is_finished_by_reconcile(
    sessionmaker, settings, cloud, fake_cloud: FakeCloud
) -> None:
    fake_cloud.iam.failures["put_role_policy"] = UpstreamFailure("denied", code="AccessDenied")
    fake_cloud.identity.failures["delete_identity_pool"] = UpstreamFailure("throttled", code="Throttling")

    with pytest.raises(UpstreamFailure):
        await _provision(sessionmaker, settings, cloud, _registration())

    (run,) = await _runs(sessionmaker, "T1")
    assert run.status == RunStatus.rollback_incomplete
    assert [c["action"] for c in run.state["compensations"]] == ["delete_broker"]
    assert len(fake_cloud.identity.pools) == 1
    assert not fake_cloud.idp.pools

    fake_cloud.iam.failures.clear()
    fake_cloud.identity.failures.clear()
    report = await _reconcile(sessionmaker, settings, cloud)

    assert report.rolled_back == [str(run.id)]
    assert fake_cloud.is_empty()
    (run,) = await _runs(sessionmaker, "T1")
    assert run.status == RunStatus.rolled_back


@pytest.mark.asyncio
async def test_role_left_by_failed_policy_attach_is_removed_by_reconcile(
    sessionmaker, settings, cloud, fake_cloud: FakeCloud
) -> None:
    fake_cloud.iam.failures["put_role_policy"] = UpstreamFailure("denied", code="AccessDenied")
    fake_cloud.iam.failures["delete_role"] = UpstreamFailure("throttled", code="Throttling")

    with pytest.raises(UpstreamFailure):
        await _provision(sessionmaker, settings, cloud, _registration())

    (run,) = await _runs(sessionmaker, "T1")
    assert run.status == RunStatus.rollback_incomplete
    assert {c["role_name"] for c in run.state["compensations"]} == {"SaaS_T1_AuthRole", "SaaS_T1_AdminRole"}
    assert set(fake_cloud.iam.roles) == {"SaaS_T1_AuthRole", "SaaS_T1_AdminRole"}

    fake_cloud.iam.failures.clear()
    report = await _reconcile(sessionmaker, settings, cloud)

    assert report.rolled_back == [str(run.id)]
    assert fake_cloud.iam.roles == {}
    assert fake_cloud.is_empty()
    (run,) = await _runs(sessionmaker, "T1")
    assert run.status == RunStatus.rolled_back


@pytest.mark.asyncio
async def test_reconcile_keeps_roles_of_a_later_successful_provision(
    sessionmaker, settings, cloud, fake_cloud: FakeCloud
) -> None:
    fake_cloud.iam.failures["delete_role"] = UpstreamFailure("throttled", code="Throttling")
    with pytest.raises(IdentityCreationFailed):
        await _provision(sessionmaker, settings, cloud, _registration(user="not-an-email"))

    (failed,) = await _runs(sessionmaker, "T1")
    assert failed.status == RunStatus.rollback_incomplete
    assert [c["action"] for c in failed.state["compensations"]] == ["delete_role"] * 3

    fake_cloud.iam.failures.clear()
    await _deprovision(sessionmaker, settings, cloud, "T1")
    assert fake_cloud.iam.roles == {}
    record = await _provision(sessionmaker, settings, cloud, _registration())

    deletes_before = fake_cloud.iam.ops().count("delete_role")
    report = await _reconcile(sessionmaker, settings, cloud)

    assert report.rolled_back == [str(failed.id)]
    assert set(fake_cloud.iam.roles) == {"SaaS_T1_AuthRole", "SaaS_T1_AdminRole", "SaaS_T1_UserRole"}
    assert fake_cloud.iam.ops().count("delete_role") == deletes_before
    async with sessionmaker() as s:
        assert await UserRecordStore(s).get("T1", record.id) is not None
    runs = {r.id: r for r in await _runs(sessionmaker, "T1")}
    assert runs[failed.id].status == RunStatus.rolled_back
    assert runs[failed.id].state["compensations"] == []


@pytest.mark.asyncio
async def test_record_is_written_before_subject_is_set(
    sessionmaker, settings, cloud, monkeypatch: pytest.MonkeyPatch
) -> None:
    subjects: list[tuple[str, str, str]] = []
    original = UserRecordStore.set_sub

    async def recording_set_sub(self, tenant_id: str, user_id: str, sub: str) -> UserRecord | None:
        assert await self.get(tenant_id, user_id) is not None
        subjects.append((tenant_id, user_id, sub))
        return await original(self, tenant_id, user_id, sub)

    monkeypatch.setattr(UserRecordStore, "set_sub", recording_set_sub)

    record = await _provision(sessionmaker, settings, cloud, _registration())

    assert subjects == [("T1", "alice@example.com", record.sub)]
    async with sessionmaker() as s:
        stored = await UserRecordStore(s).get("T1", "alice@example.com")
    assert stored is not None and stored.sub == record.sub


async def _abandoned_run(
    sessionmaker: Sessions, fake_cloud: FakeCloud, tenant_id: str, *, lease_live: bool
) -> str:
    idp = IdentityDomainProvisioner(fake_cloud.idp)
    domain = await idp.create_domain(tenant_id)
    client = await idp.create_client(domain)
    broker = await FederatedIdentityProvisioner(fake_cloud.identity, region=REGION).create_broker(domain, client)

    long_ago = utcnow() - timedelta(hours=2)
    async with sessionmaker() as s:
        run = await WorkflowRunRepo(s).create(
            tenant_id=tenant_id,
            kind=WorkflowKind.provision,
            initial_state={
                "tenant_id": tenant_id,
                "compensations": [
                    compensation.undo_domain(domain.id),
                    compensation.undo_client(domain.id, client.id),
                    compensation.undo_broker(broker.id),
                ],
                "completed_steps": ["DomainCreated", "ClientCreated", "BrokerCreated"],
            },
        )
        run.updated_at = long_ago
        expires = utcnow() + timedelta(minutes=5) if lease_live else long_ago + timedelta(minutes=5)
        s.add(TenantLease(tenant_id=tenant_id, owner=str(run.id), acquired_at=long_ago, expires_at=expires))
        await s.commit()
        return str(run.id)


@pytest.mark.asyncio
async def test_reconcile_rolls_back_abandoned_run(sessionmaker, settings, cloud, fake_cloud: FakeCloud) -> None:
    run_id = await _abandoned_run(sessionmaker, fake_cloud, "T3", lease_live=False)

    report = await _reconcile(sessionmaker, settings, cloud)

    assert report.rolled_back == [run_id]
    assert fake_cloud.is_empty()
    (run,) = await _runs(sessionmaker, "T3")
    assert run.status == RunStatus.rolled_back
    assert not await _lease_held(sessionmaker, "T3")


@pytest.mark.asyncio
async def test_reconcile_skips_tenant_with_live_lease(
    sessionmaker, settings, cloud, fake_cloud: FakeCloud
) -> None:
    run_id = await _abandoned_run(sessionmaker, fake_cloud, "T4", lease_live=True)

    report = await _reconcile(sessionmaker, settings, cloud)

    assert report.skipped == [run_id]
    assert len(fake_cloud.idp.pools) == 1
    (run,) = await _runs(sessionmaker, "T4")
    assert run.status == RunStatus.running


@pytest.mark.asyncio
async def test_reconcile_ignores_healthy_runs(sessionmaker, settings, cloud, fake_cloud: FakeCloud) -> None:
    await _provision(sessionmaker, settings, cloud, _registration())

    report = await _reconcile(sessionmaker, settings, cloud)

    assert report == ReconcileReport()
    assert len(fake_cloud.idp.pools) == 1
