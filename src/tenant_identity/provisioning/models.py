"""
tenant_identity.provisioning.models

Value types produced and consumed by the provisioners.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


class UserRole(enum.StrEnum):
    # Stored in User Records and in the identity's `custom:role` claim; treat as a stable contract.
    tenant_admin = "TENANT_ADMIN"
    tenant_user = "TENANT_USER"


class RoleKind(enum.StrEnum):
    auth = "Auth"
    admin = "Admin"
    user = "User"

    def role_name(self, *, prefix: str, tenant_id: str) -> str:
        return f"{prefix}_{tenant_id}_{self.value}Role"

    @property
    def policy_name(self) -> str | None:
        if self is RoleKind.auth:
            return None
        return f"{self.value}Policy"


@dataclass(frozen=True, slots=True)
class DomainHandle:
    id: str
    arn: str
    name: str


@dataclass(frozen=True, slots=True)
class ClientHandle:
    id: str
    name: str


@dataclass(frozen=True, slots=True)
class BrokerHandle:
    id: str


@dataclass(frozen=True, slots=True)
class RoleHandle:
    kind: RoleKind
    name: str
    arn: str
    policy_name: str | None = None


@dataclass(frozen=True, slots=True)
class DataResourceRefs:
    """ARNs of the tenant-partitioned data tables; any of them may be absent."""

    user_table: str | None = None
    order_table: str | None = None
    product_table: str | None = None


@dataclass(frozen=True, slots=True)
class UserAttributes:
    user_name: str
    email: str
    tenant_id: str
    first_name: str
    last_name: str
    role: UserRole
    tier: str


@dataclass(frozen=True, slots=True)
class CreatedIdentity:
    external_id: str
    subject_id: str


@dataclass(frozen=True, slots=True)
class TenantIdentityBundle:
    tenant_id: str
    auth_domain_id: str
    client_id: str
    broker_id: str

    @property
    def is_complete(self) -> bool:
        return bool(self.auth_domain_id and self.client_id and self.broker_id)
