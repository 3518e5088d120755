"""
tenant_identity.provisioning.roles

RoleProvisioner: the three roles each tenant needs.

Responsibilities:
- Resolve data-resource ARNs (read-only table descriptions).
- Create the authenticated-session, admin and standard-user roles, trusting the tenant's broker.
- Attach the rendered admin/user policies (a separate call, so the role is already on record for
  rollback when the attach fails).
- Delete roles (policy first, best-effort).
"""

from __future__ import annotations

from typing import Any

from tenant_identity.errors import NotFound, TenantIdentityError, require
from tenant_identity.observability.logging import get_logger
from tenant_identity.provisioning.models import (
    BrokerHandle,
    DataResourceRefs,
    RoleHandle,
    RoleKind,
)
from tenant_identity.provisioning.policies import PolicyDocument, PolicyTemplateEngine

log = get_logger(__name__)


class RoleProvisioner:
    def __init__(
        self,
        *,
        role_store: Any,
        table_store: Any,
        policies: PolicyTemplateEngine,
        role_prefix: str,
        table_names: dict[str, str],
    ) -> None:
        self._iam = role_store
        self._tables = table_store
        self._policies = policies
        self._prefix = role_prefix
        # Keys: "user", "order", "product".
        self._table_names = table_names

    def role_name(self, kind: RoleKind, tenant_id: str) -> str:
        return kind.role_name(prefix=self._prefix, tenant_id=tenant_id)

    async def resolve_data_resources(self) -> DataResourceRefs:
        arns: dict[str, str | None] = {}
        for key in ("user", "order", "product"):
            name = self._table_names.get(key)
            if not name:
                arns[key] = None
                continue
            try:
                desc = await self._tables.describe_table(TableName=name)
            except NotFound:
                # Absent tables are simply left out of the rendered policies.
                log.warning("data_table_missing", table=name)
                arns[key] = None
                continue
            arns[key] = (desc.get("Table") or {}).get("TableArn")
        return DataResourceRefs(
            user_table=arns["user"], order_table=arns["order"], product_table=arns["product"]
        )

    async def create_auth_role(self, tenant_id: str, broker: BrokerHandle) -> RoleHandle:
        return await self._create(RoleKind.auth, tenant_id, broker)

    async def create_admin_role(self, tenant_id: str, broker: BrokerHandle) -> RoleHandle:
        return await self._create(RoleKind.admin, tenant_id, broker)

    async def create_user_role(self, tenant_id: str, broker: BrokerHandle) -> RoleHandle:
        return await self._create(RoleKind.user, tenant_id, broker)

    async def attach_admin_policy(
        self,
        tenant_id: str,
        role: RoleHandle,
        domain_arn: str,
        data_refs: DataResourceRefs,
    ) -> None:
        policy = self._policies.render_admin_policy(tenant_id, domain_arn, data_refs)
        await self._attach(role, policy)

    async def attach_user_policy(
        self,
        tenant_id: str,
        role: RoleHandle,
        domain_arn: str,
        data_refs: DataResourceRefs,
    ) -> None:
        policy = self._policies.render_user_policy(tenant_id, domain_arn, data_refs)
        await self._attach(role, policy)

    async def _create(self, kind: RoleKind, tenant_id: str, broker: BrokerHandle) -> RoleHandle:
        tenant_id = require(tenant_id, "tenant_id")
        name = self.role_name(kind, tenant_id)
        trust = self._policies.render_trust_policy(broker.id)

        result = await self._iam.create_role(
            RoleName=name, AssumeRolePolicyDocument=trust.to_json()
        )
        role = result.get("Role") or {}
        handle = RoleHandle(
            kind=kind,
            name=role.get("RoleName", name),
            arn=role.get("Arn", ""),
            policy_name=kind.policy_name,
        )
        log.info("role_created", role_name=handle.name, kind=str(kind))
        return handle

    async def _attach(self, role: RoleHandle, policy: PolicyDocument) -> None:
        policy_name = require(role.policy_name, "policy_name")
        await self._iam.put_role_policy(
            RoleName=role.name,
            PolicyName=policy_name,
            PolicyDocument=policy.to_json(),
        )
        log.info("role_policy_attached", role_name=role.name, policy=policy_name)

    async def delete_role(self, role_name: str, policy_name: str | None = None) -> list[str]:
        """
        Delete a role, detaching `policy_name` first when given.

        A policy detach failure does not stop the role deletion; it is logged and returned.
        Raises NotFound when the role itself is already gone.
        """

        warnings: list[str] = []
        if policy_name:
            try:
                await self._iam.delete_role_policy(RoleName=role_name, PolicyName=policy_name)
            except NotFound:
                pass
            except TenantIdentityError as e:
                log.warning("role_policy_detach_failed", role_name=role_name, policy=policy_name)
                warnings.append(f"{role_name}/{policy_name}: {e.message}")

        await self._iam.delete_role(RoleName=role_name)
        log.info("role_deleted", role_name=role_name)
        return warnings

    async def role_exists(self, role_name: str) -> bool:
        try:
            await self._iam.get_role(RoleName=role_name)
        except NotFound:
            return False
        return True
