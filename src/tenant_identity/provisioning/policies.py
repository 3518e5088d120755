"""
tenant_identity.provisioning.policies

Access-policy templates rendered through a typed statement builder.

Responsibilities:
- Render the admin and user access policies for one tenant.
- Render the trust (assume-role) policy binding a role to a federated-identity broker.
- Serialize deterministically: identical inputs always produce byte-identical documents.

Every statement that touches a data resource is scoped by the tenant's leading key, so two
tenants never share access even when table ARNs are shared.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from tenant_identity.errors import require
from tenant_identity.provisioning.models import DataResourceRefs

POLICY_VERSION = "2012-10-17"

BROKER_PRINCIPAL = "cognito-identity.amazonaws.com"

DATA_READ_ACTIONS: tuple[str, ...] = (
    "dynamodb:GetItem",
    "dynamodb:BatchGetItem",
    "dynamodb:Query",
)
DATA_WRITE_ACTIONS: tuple[str, ...] = (
    "dynamodb:PutItem",
    "dynamodb:UpdateItem",
    "dynamodb:DeleteItem",
    "dynamodb:BatchWriteItem",
)
DATA_TABLE_ACTIONS: tuple[str, ...] = (
    "dynamodb:DescribeTable",
    "dynamodb:CreateTable",
)

IDENTITY_ADMIN_ACTIONS: tuple[str, ...] = (
    "cognito-idp:AdminCreateUser",
    "cognito-idp:AdminDeleteUser",
    "cognito-idp:AdminDisableUser",
    "cognito-idp:AdminEnableUser",
    "cognito-idp:AdminGetUser",
    "cognito-idp:ListUsers",
    "cognito-idp:AdminUpdateUserAttributes",
)
IDENTITY_READ_ACTIONS: tuple[str, ...] = (
    "cognito-idp:AdminGetUser",
    "cognito-idp:ListUsers",
)


@dataclass(frozen=True, slots=True)
class Statement:
    actions: tuple[str, ...]
    resources: tuple[str, ...] = ()
    effect: str = "Allow"
    principal: dict[str, str] | None = None
    condition: dict[str, dict[str, Any]] | None = None

    def to_dict(self) -> dict[str, Any]:
        # Key order is fixed here; serialization relies on it for byte-stable output.
        out: dict[str, Any] = {"Effect": self.effect}
        if self.principal is not None:
            out["Principal"] = dict(self.principal)
        out["Action"] = self.actions[0] if len(self.actions) == 1 else list(self.actions)
        if self.resources:
            out["Resource"] = list(self.resources)
        if self.condition is not None:
            out["Condition"] = {op: dict(body) for op, body in self.condition.items()}
        return out


@dataclass(frozen=True, slots=True)
class PolicyDocument:
    statements: tuple[Statement, ...] = field(default_factory=tuple)
    version: str = POLICY_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {"Version": self.version, "Statement": [s.to_dict() for s in self.statements]}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=True)


def _leading_key_condition(tenant_id: str) -> dict[str, dict[str, Any]]:
    return {"ForAllValues:StringEquals": {"dynamodb:LeadingKeys": [tenant_id]}}


def _table_resources(arn: str | None, *, with_indexes: bool = False) -> tuple[str, ...]:
    if not arn:
        return ()
    if with_indexes:
        return (arn, f"{arn}/*")
    return (arn,)


def _data_statement(
    tenant_id: str, actions: tuple[str, ...], resources: tuple[str, ...]
) -> Statement | None:
    if not resources:
        return None
    return Statement(
        actions=actions,
        resources=resources,
        condition=_leading_key_condition(tenant_id),
    )


class PolicyTemplateEngine:
    """
    Pure renderer; holds no state and makes no remote calls.
    """

    def render_admin_policy(
        self,
        tenant_id: str,
        auth_domain_ref: str,
        data_refs: DataResourceRefs,
    ) -> PolicyDocument:
        tenant_id = require(tenant_id, "tenant_id")
        auth_domain_ref = require(auth_domain_ref, "auth_domain_ref")

        resources = (
            *_table_resources(data_refs.user_table, with_indexes=True),
            *_table_resources(data_refs.order_table),
            *_table_resources(data_refs.product_table),
        )
        statements = [
            _data_statement(
                tenant_id,
                DATA_READ_ACTIONS + DATA_WRITE_ACTIONS + DATA_TABLE_ACTIONS,
                resources,
            ),
            Statement(actions=IDENTITY_ADMIN_ACTIONS, resources=(auth_domain_ref,)),
        ]
        return PolicyDocument(statements=tuple(s for s in statements if s is not None))

    def render_user_policy(
        self,
        tenant_id: str,
        auth_domain_ref: str,
        data_refs: DataResourceRefs,
    ) -> PolicyDocument:
        tenant_id = require(tenant_id, "tenant_id")
        auth_domain_ref = require(auth_domain_ref, "auth_domain_ref")

        read_only = (
            *_table_resources(data_refs.user_table, with_indexes=True),
            *_table_resources(data_refs.product_table),
        )
        statements = [
            _data_statement(tenant_id, DATA_READ_ACTIONS + DATA_TABLE_ACTIONS, read_only),
            # Orders are the one resource standard users may write.
            _data_statement(
                tenant_id,
                DATA_READ_ACTIONS + DATA_WRITE_ACTIONS + DATA_TABLE_ACTIONS,
                _table_resources(data_refs.order_table),
            ),
            Statement(actions=IDENTITY_READ_ACTIONS, resources=(auth_domain_ref,)),
        ]
        return PolicyDocument(statements=tuple(s for s in statements if s is not None))

    def render_trust_policy(self, broker_id: str) -> PolicyDocument:
        broker_id = require(broker_id, "broker_id")
        return PolicyDocument(
            statements=(
                Statement(
                    actions=("sts:AssumeRoleWithWebIdentity",),
                    principal={"Federated": BROKER_PRINCIPAL},
                    condition={
                        "StringEquals": {f"{BROKER_PRINCIPAL}:aud": broker_id},
                        "ForAnyValue:StringLike": {f"{BROKER_PRINCIPAL}:amr": "authenticated"},
                    },
                ),
            )
        )


# --- Module Notes -----------------------------------------------------------
# Identifiers are embedded as JSON values by `json.dumps`, never spliced into template strings.
