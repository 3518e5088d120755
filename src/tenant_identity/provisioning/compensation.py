"""
tenant_identity.provisioning.compensation

Undo records for provisioning steps and their reverse-order execution.

Responsibilities:
- Build one compensation record per created resource (plain dicts, checkpointable).
- Execute pending compensations newest-first, treating NotFound as already undone.
- Report what could not be undone so it stays on the run for the reconciliation sweep.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from tenant_identity.errors import NotFound
from tenant_identity.observability.logging import get_logger

if TYPE_CHECKING:
    from tenant_identity.provisioning.graph import ProvisioningToolkit

log = get_logger(__name__)

# Undo records that address a resource by a tenant-derived name instead of a generated id. A later
# provisioning run of the same tenant reuses those names.
NAME_KEYED_ACTIONS = frozenset({"delete_role", "delete_record"})


def undo_domain(domain_id: str) -> dict[str, Any]:
    return {"action": "delete_domain", "domain_id": domain_id}


def undo_client(domain_id: str, client_id: str) -> dict[str, Any]:
    return {"action": "delete_client", "domain_id": domain_id, "client_id": client_id}


def undo_broker(broker_id: str) -> dict[str, Any]:
    return {"action": "delete_broker", "broker_id": broker_id}


def undo_role(role_name: str, policy_name: str | None) -> dict[str, Any]:
    return {"action": "delete_role", "role_name": role_name, "policy_name": policy_name}


def undo_record(tenant_id: str, user_id: str) -> dict[str, Any]:
    return {"action": "delete_record", "tenant_id": tenant_id, "user_id": user_id}


def split_superseded(
    entries: list[dict[str, Any]],
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """
    Split undo records of a run that a later successful run has superseded into
    (still applicable, obsolete). Name-keyed records would now hit the newer run's resources.
    """

    kept = [e for e in entries if e.get("action") not in NAME_KEYED_ACTIONS]
    dropped = [e for e in entries if e.get("action") in NAME_KEYED_ACTIONS]
    return kept, dropped


async def apply_compensation(entry: dict[str, Any], toolkit: ProvisioningToolkit) -> None:
    action = entry.get("action")
    if action == "delete_domain":
        await toolkit.domains.delete_domain(entry["domain_id"])
    elif action == "delete_client":
        await toolkit.domains.delete_client(entry["domain_id"], entry["client_id"])
    elif action == "delete_broker":
        await toolkit.brokers.delete_broker(entry["broker_id"])
    elif action == "delete_role":
        warnings = await toolkit.roles.delete_role(entry["role_name"], entry.get("policy_name"))
        for w in warnings:
            log.warning("rollback_policy_detach_warning", detail=w)
    elif action == "delete_record":
        await toolkit.records.delete(entry["tenant_id"], entry["user_id"])
    else:
        raise ValueError(f"unknown compensation action: {action!r}")


async def run_compensations(
    entries: list[dict[str, Any]], toolkit: ProvisioningToolkit
) -> list[dict[str, Any]]:
    """
    Undo `entries` in reverse creation order.

    Every entry is attempted even after a failure. Returns the entries that could not be undone,
    still in creation order.
    """

    remaining: list[dict[str, Any]] = []
    for entry in reversed(entries):
        try:
            await apply_compensation(entry, toolkit)
        except NotFound:
            log.info("rollback_step_ok", action=entry.get("action"), already_absent=True)
            continue
        except Exception as e:
            log.error(
                "rollback_step_failed",
                action=entry.get("action"),
                error_type=type(e).__name__,
                error=str(e),
            )
            remaining.append(entry)
            continue
        log.info("rollback_step_ok", action=entry.get("action"))

    remaining.reverse()
    return remaining
