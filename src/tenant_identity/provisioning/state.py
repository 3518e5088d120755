"""
tenant_identity.provisioning.state

Typed state schemas for the provisioning and deprovisioning graphs.

Responsibilities:
- Define the contract between nodes (inputs/outputs).
- Provide a JSON-safe shape for persistence (stored in workflow_runs.state).
- Convert handles to and from their persisted form.

Nodes return partial updates; every key a node may write is declared here.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, TypedDict

from tenant_identity.provisioning.models import (
    BrokerHandle,
    ClientHandle,
    DataResourceRefs,
    DomainHandle,
    RoleHandle,
    RoleKind,
)


class ProvisioningState(TypedDict, total=False):
    # Identifiers
    tenant_id: str
    run_id: str

    # Admin registration input: user_name, email, first_name, last_name, tier, company_name.
    request: dict[str, Any]

    # Accumulated handles (persisted form)
    domain: dict[str, Any]
    client: dict[str, Any]
    broker: dict[str, Any]
    data_refs: dict[str, Any]
    auth_role: dict[str, Any]
    admin_role: dict[str, Any]
    user_role: dict[str, Any]
    policies_attached: list[str]
    rules_installed: bool
    identity: dict[str, Any]
    record: dict[str, Any]

    # Undo records, in creation order.
    compensations: list[dict[str, Any]]
    completed_steps: list[str]


class DeprovisioningState(TypedDict, total=False):
    tenant_id: str
    run_id: str

    auth_domain_id: str | None
    broker_id: str | None

    deleted: list[str]
    absent: list[str]
    warnings: list[str]
    purged_records: int
    completed_steps: list[str]


def dump_handle(handle: Any) -> dict[str, Any]:
    return asdict(handle)


def load_domain(state: ProvisioningState) -> DomainHandle:
    return DomainHandle(**state["domain"])


def load_client(state: ProvisioningState) -> ClientHandle:
    return ClientHandle(**state["client"])


def load_broker(state: ProvisioningState) -> BrokerHandle:
    return BrokerHandle(**state["broker"])


def load_data_refs(state: ProvisioningState) -> DataResourceRefs:
    return DataResourceRefs(**state.get("data_refs", {}))


def load_role(state: ProvisioningState, key: str) -> RoleHandle:
    raw = dict(state[key])  # type: ignore[literal-required]
    raw["kind"] = RoleKind(raw["kind"])
    return RoleHandle(**raw)


# --- Module Notes -----------------------------------------------------------
# Handles are stored as plain dicts (not dataclasses) so a checkpoint can be reloaded by the
# reconciliation sweep after a restart.
