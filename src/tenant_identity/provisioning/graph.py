"""
tenant_identity.provisioning.graph

LangGraph wiring for the provisioning and deprovisioning workflows.

Responsibilities:
- Bundle the provisioners and record store a workflow needs (ProvisioningToolkit).
- Compile the two linear graphs; each edge is one external call.
"""

from __future__ import annotations

import functools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from tenant_identity.cloud.capabilities import CloudCapabilities
from tenant_identity.db.repositories.users import UserRecordStore
from tenant_identity.provisioning import nodes
from tenant_identity.provisioning.federated_identity import FederatedIdentityProvisioner
from tenant_identity.provisioning.identity_domain import IdentityDomainProvisioner
from tenant_identity.provisioning.models import RoleKind
from tenant_identity.provisioning.policies import PolicyTemplateEngine
from tenant_identity.provisioning.roles import RoleProvisioner
from tenant_identity.provisioning.state import DeprovisioningState, ProvisioningState
from tenant_identity.settings import Settings

PROVISIONING_STEPS: tuple[tuple[str, Callable[..., Awaitable[Any]]], ...] = (
    ("create_domain", nodes.create_domain_node),
    ("create_client", nodes.create_client_node),
    ("create_broker", nodes.create_broker_node),
    ("resolve_data_resources", nodes.resolve_data_resources_node),
    ("create_auth_role", nodes.create_auth_role_node),
    ("create_admin_role", nodes.create_admin_role_node),
    ("attach_admin_policy", nodes.attach_admin_policy_node),
    ("create_user_role", nodes.create_user_role_node),
    ("attach_user_policy", nodes.attach_user_policy_node),
    ("install_rules", nodes.install_rules_node),
    ("create_identity", nodes.create_identity_node),
    ("persist_record", nodes.persist_record_node),
)

# Admin, User, Auth: the policy-free auth role goes last.
DEPROVISIONING_STEPS: tuple[tuple[str, Callable[..., Awaitable[Any]]], ...] = (
    ("delete_domain", nodes.delete_domain_node),
    ("delete_broker", nodes.delete_broker_node),
    ("delete_admin_role", functools.partial(nodes.delete_role_node, kind=RoleKind.admin)),
    ("delete_user_role", functools.partial(nodes.delete_role_node, kind=RoleKind.user)),
    ("delete_auth_role", functools.partial(nodes.delete_role_node, kind=RoleKind.auth)),
    ("purge_records", nodes.purge_records_node),
)


@dataclass(frozen=True)
class ProvisioningToolkit:
    domains: IdentityDomainProvisioner
    brokers: FederatedIdentityProvisioner
    roles: RoleProvisioner
    records: UserRecordStore


def build_toolkit(
    *, cloud: CloudCapabilities, settings: Settings, records: UserRecordStore
) -> ProvisioningToolkit:
    return ProvisioningToolkit(
        domains=IdentityDomainProvisioner(cloud.identity_domain),
        brokers=FederatedIdentityProvisioner(cloud.federated_identity, region=cloud.region),
        roles=RoleProvisioner(
            role_store=cloud.role_store,
            table_store=cloud.table_store,
            policies=PolicyTemplateEngine(),
            role_prefix=settings.role_prefix,
            table_names={
                "user": settings.table_name_user,
                "order": settings.table_name_order,
                "product": settings.table_name_product,
            },
        ),
        records=records,
    )


def build_provisioning_graph(*, toolkit: ProvisioningToolkit):
    """
    Returns a compiled LangGraph runnable over `ProvisioningState`.
    """

    return _linear_graph(ProvisioningState, PROVISIONING_STEPS, toolkit)


def build_deprovisioning_graph(*, toolkit: ProvisioningToolkit):
    return _linear_graph(DeprovisioningState, DEPROVISIONING_STEPS, toolkit)


def _linear_graph(
    schema: type,
    steps: tuple[tuple[str, Callable[..., Awaitable[Any]]], ...],
    toolkit: ProvisioningToolkit,
):
    try:
        from langgraph.graph import END, StateGraph  # type: ignore[import-not-found]
    except Exception as e:  # pragma: no cover
        raise RuntimeError(
            "LangGraph is not available. Install dependencies (see pyproject.toml)."
        ) from e

    graph = StateGraph(schema)
    for name, fn in steps:
        graph.add_node(name, _bind_toolkit(fn, toolkit))

    graph.set_entry_point(steps[0][0])
    for (current, _), (following, _) in zip(steps, steps[1:]):
        graph.add_edge(current, following)
    graph.add_edge(steps[-1][0], END)

    return graph.compile()


def _bind_toolkit(
    fn: Callable[..., Awaitable[Any]],
    toolkit: ProvisioningToolkit,
) -> Callable[[dict[str, Any]], Awaitable[Any]]:
    async def _wrapped(state: dict[str, Any]) -> Any:
        return await fn(state, toolkit=toolkit)

    return _wrapped


# --- Module Notes -----------------------------------------------------------
# No node runs in parallel with another: every step consumes the previous step's output.
