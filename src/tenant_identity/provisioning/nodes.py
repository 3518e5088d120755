"""
tenant_identity.provisioning.nodes

Graph nodes: one external call per node.

Provisioning nodes append an undo record for whatever they created; deprovisioning nodes treat
NotFound as "already gone" so the whole sequence can be re-run safely.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from tenant_identity.db.models import UserRecord
from tenant_identity.errors import NotFound
from tenant_identity.observability.logging import get_logger
from tenant_identity.provisioning import compensation
from tenant_identity.provisioning.models import RoleKind, UserAttributes, UserRole
from tenant_identity.provisioning.state import (
    DeprovisioningState,
    ProvisioningState,
    dump_handle,
    load_broker,
    load_client,
    load_data_refs,
    load_domain,
    load_role,
)

if TYPE_CHECKING:
    from tenant_identity.provisioning.graph import ProvisioningToolkit

log = get_logger(__name__)


def _done(state: dict[str, Any], step: str) -> list[str]:
    return [*state.get("completed_steps", []), step]


def _push(state: ProvisioningState, entry: dict[str, Any]) -> list[dict[str, Any]]:
    return [*state.get("compensations", []), entry]


# --- Provisioning -----------------------------------------------------------


async def create_domain_node(
    state: ProvisioningState, *, toolkit: ProvisioningToolkit
) -> ProvisioningState:
    domain = await toolkit.domains.create_domain(state["tenant_id"])
    return {
        "domain": dump_handle(domain),
        "compensations": _push(state, compensation.undo_domain(domain.id)),
        "completed_steps": _done(state, "DomainCreated"),
    }


async def create_client_node(
    state: ProvisioningState, *, toolkit: ProvisioningToolkit
) -> ProvisioningState:
    domain = load_domain(state)
    client = await toolkit.domains.create_client(domain)
    return {
        "client": dump_handle(client),
        "compensations": _push(state, compensation.undo_client(domain.id, client.id)),
        "completed_steps": _done(state, "ClientCreated"),
    }


async def create_broker_node(
    state: ProvisioningState, *, toolkit: ProvisioningToolkit
) -> ProvisioningState:
    broker = await toolkit.brokers.create_broker(load_domain(state), load_client(state))
    return {
        "broker": dump_handle(broker),
        "compensations": _push(state, compensation.undo_broker(broker.id)),
        "completed_steps": _done(state, "BrokerCreated"),
    }


async def resolve_data_resources_node(
    state: ProvisioningState, *, toolkit: ProvisioningToolkit
) -> ProvisioningState:
    refs = await toolkit.roles.resolve_data_resources()
    return {"data_refs": dump_handle(refs)}


async def create_auth_role_node(
    state: ProvisioningState, *, toolkit: ProvisioningToolkit
) -> ProvisioningState:
    role = await toolkit.roles.create_auth_role(state["tenant_id"], load_broker(state))
    return {
        "auth_role": dump_handle(role),
        "compensations": _push(state, compensation.undo_role(role.name, role.policy_name)),
    }


async def create_admin_role_node(
    state: ProvisioningState, *, toolkit: ProvisioningToolkit
) -> ProvisioningState:
    role = await toolkit.roles.create_admin_role(state["tenant_id"], load_broker(state))
    # Recorded before the policy attach so a failed attach still rolls the role back.
    return {
        "admin_role": dump_handle(role),
        "compensations": _push(state, compensation.undo_role(role.name, role.policy_name)),
    }


async def attach_admin_policy_node(
    state: ProvisioningState, *, toolkit: ProvisioningToolkit
) -> ProvisioningState:
    role = load_role(state, "admin_role")
    await toolkit.roles.attach_admin_policy(
        state["tenant_id"], role, load_domain(state).arn, load_data_refs(state)
    )
    return {"policies_attached": [*state.get("policies_attached", []), role.policy_name]}


async def create_user_role_node(
    state: ProvisioningState, *, toolkit: ProvisioningToolkit
) -> ProvisioningState:
    role = await toolkit.roles.create_user_role(state["tenant_id"], load_broker(state))
    return {
        "user_role": dump_handle(role),
        "compensations": _push(state, compensation.undo_role(role.name, role.policy_name)),
    }


async def attach_user_policy_node(
    state: ProvisioningState, *, toolkit: ProvisioningToolkit
) -> ProvisioningState:
    role = load_role(state, "user_role")
    await toolkit.roles.attach_user_policy(
        state["tenant_id"], role, load_domain(state).arn, load_data_refs(state)
    )
    return {
        "policies_attached": [*state.get("policies_attached", []), role.policy_name],
        "completed_steps": _done(state, "RolesCreated"),
    }


async def install_rules_node(
    state: ProvisioningState, *, toolkit: ProvisioningToolkit
) -> ProvisioningState:
    await toolkit.brokers.set_role_selection_rules(
        load_domain(state),
        load_client(state),
        load_broker(state),
        load_role(state, "auth_role"),
        load_role(state, "admin_role"),
        load_role(state, "user_role"),
    )
    # Rules die with the broker; no separate undo record.
    return {"rules_installed": True, "completed_steps": _done(state, "RulesInstalled")}


async def create_identity_node(
    state: ProvisioningState, *, toolkit: ProvisioningToolkit
) -> ProvisioningState:
    req = state["request"]
    created = await toolkit.domains.create_identity(
        load_domain(state),
        UserAttributes(
            user_name=req["user_name"],
            email=req["email"],
            tenant_id=state["tenant_id"],
            first_name=req["first_name"],
            last_name=req["last_name"],
            role=UserRole.tenant_admin,
            tier=req["tier"],
        ),
    )
    # The identity lives inside the domain; deleting the domain removes it.
    return {"identity": dump_handle(created), "completed_steps": _done(state, "IdentityCreated")}


def provisional_record(state: ProvisioningState) -> UserRecord:
    """User Record with every field known before the identity exists (`sub` left empty)."""

    req = state["request"]
    domain = state["domain"]
    company = req.get("company_name")
    return UserRecord(
        tenant_id=state["tenant_id"],
        id=req["user_name"],
        user_name=req["user_name"],
        email=req["email"],
        first_name=req["first_name"],
        last_name=req["last_name"],
        role=UserRole.tenant_admin,
        tier=req["tier"],
        company_name=company,
        account_name=company,
        owner_name=company,
        auth_domain_id=domain["id"],
        client_id=state["client"]["id"],
        broker_id=state["broker"]["id"],
        sub=None,
    )


async def persist_record_node(
    state: ProvisioningState, *, toolkit: ProvisioningToolkit
) -> ProvisioningState:
    # Two-phase write: the provisional record first, then the domain-assigned subject.
    provisional = await toolkit.records.put(provisional_record(state))
    saved = await toolkit.records.set_sub(
        provisional.tenant_id, provisional.id, state["identity"]["subject_id"]
    )
    if saved is None:  # pragma: no cover
        raise NotFound(f"user record {provisional.id} vanished before its subject was set")
    return {
        "record": record_to_dict(saved),
        "compensations": _push(state, compensation.undo_record(saved.tenant_id, saved.id)),
        "completed_steps": _done(state, "RecordPersisted"),
    }


def record_to_dict(record: UserRecord) -> dict[str, Any]:
    return {
        "tenant_id": record.tenant_id,
        "id": record.id,
        "user_name": record.user_name,
        "email": record.email,
        "first_name": record.first_name,
        "last_name": record.last_name,
        "role": str(record.role),
        "tier": record.tier,
        "company_name": record.company_name,
        "account_name": record.account_name,
        "owner_name": record.owner_name,
        "auth_domain_id": record.auth_domain_id,
        "client_id": record.client_id,
        "broker_id": record.broker_id,
        "sub": record.sub,
    }


# --- Deprovisioning ---------------------------------------------------------


def _outcome(
    state: DeprovisioningState, resource: str, *, absent: bool, step: str
) -> DeprovisioningState:
    key = "absent" if absent else "deleted"
    return {
        key: [*state.get(key, []), resource],  # type: ignore[misc]
        "completed_steps": _done(state, step),
    }


async def delete_domain_node(
    state: DeprovisioningState, *, toolkit: ProvisioningToolkit
) -> DeprovisioningState:
    domain_id = state.get("auth_domain_id")
    if not domain_id:
        return _outcome(state, "domain", absent=True, step="DomainDeleted")
    try:
        await toolkit.domains.delete_domain(domain_id)
    except NotFound:
        log.info("deprovision_resource_absent", resource="domain", domain_id=domain_id)
        return _outcome(state, f"domain:{domain_id}", absent=True, step="DomainDeleted")
    return _outcome(state, f"domain:{domain_id}", absent=False, step="DomainDeleted")


async def delete_broker_node(
    state: DeprovisioningState, *, toolkit: ProvisioningToolkit
) -> DeprovisioningState:
    broker_id = state.get("broker_id")
    if not broker_id:
        return _outcome(state, "broker", absent=True, step="BrokerDeleted")
    try:
        await toolkit.brokers.delete_broker(broker_id)
    except NotFound:
        log.info("deprovision_resource_absent", resource="broker", broker_id=broker_id)
        return _outcome(state, f"broker:{broker_id}", absent=True, step="BrokerDeleted")
    return _outcome(state, f"broker:{broker_id}", absent=False, step="BrokerDeleted")


async def delete_role_node(
    state: DeprovisioningState, *, toolkit: ProvisioningToolkit, kind: RoleKind
) -> DeprovisioningState:
    name = toolkit.roles.role_name(kind, state["tenant_id"])
    step = f"{kind.value}RoleDeleted"
    try:
        warnings = await toolkit.roles.delete_role(name, kind.policy_name)
    except NotFound:
        log.info("deprovision_resource_absent", resource="role", role_name=name)
        return _outcome(state, f"role:{name}", absent=True, step=step)

    update = _outcome(state, f"role:{name}", absent=False, step=step)
    if warnings:
        update["warnings"] = [*state.get("warnings", []), *warnings]
    return update


async def purge_records_node(
    state: DeprovisioningState, *, toolkit: ProvisioningToolkit
) -> DeprovisioningState:
    count = await toolkit.records.purge_tenant(state["tenant_id"])
    return {"purged_records": count, "completed_steps": _done(state, "UserRecordsPurged")}
