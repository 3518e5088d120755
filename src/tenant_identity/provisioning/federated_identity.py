"""
tenant_identity.provisioning.federated_identity

FederatedIdentityProvisioner: the broker that exchanges domain tokens for role credentials.

Responsibilities:
- Create a broker trusting exactly one (domain, client) pair.
- Install the claim-based role-selection rules.
- Destroy the broker.
"""

from __future__ import annotations

from typing import Any

from tenant_identity.errors import NotFound, UpstreamFailure, require
from tenant_identity.observability.logging import get_logger
from tenant_identity.provisioning.models import (
    BrokerHandle,
    ClientHandle,
    DomainHandle,
    RoleHandle,
    UserRole,
)

log = get_logger(__name__)

ROLE_CLAIM = "custom:role"


def provider_name(region: str, domain_id: str) -> str:
    return f"cognito-idp.{region}.amazonaws.com/{domain_id}"


def role_selection_rules(
    *,
    region: str,
    domain: DomainHandle,
    client: ClientHandle,
    admin_role: RoleHandle,
    user_role: RoleHandle,
) -> dict[str, Any]:
    """
    Claim rules keyed by the (domain, client) provider.

    A role claim matching neither rule (or both) is denied; there is deliberately no fallback
    to the authenticated role for rule-based selection.
    """

    return {
        f"{provider_name(region, domain.id)}:{client.id}": {
            "Type": "Rules",
            "AmbiguousRoleResolution": "Deny",
            "RulesConfiguration": {
                "Rules": [
                    {
                        "Claim": ROLE_CLAIM,
                        "MatchType": "Equals",
                        "Value": str(UserRole.tenant_admin),
                        "RoleARN": admin_role.arn,
                    },
                    {
                        "Claim": ROLE_CLAIM,
                        "MatchType": "Equals",
                        "Value": str(UserRole.tenant_user),
                        "RoleARN": user_role.arn,
                    },
                ]
            },
        }
    }


class FederatedIdentityProvisioner:
    def __init__(self, capability: Any, *, region: str) -> None:
        self._identity = capability
        self._region = region

    async def create_broker(self, domain: DomainHandle, client: ClientHandle) -> BrokerHandle:
        result = await self._identity.create_identity_pool(
            IdentityPoolName=client.name,
            AllowUnauthenticatedIdentities=False,
            CognitoIdentityProviders=[
                {
                    "ClientId": client.id,
                    "ProviderName": provider_name(self._region, domain.id),
                    "ServerSideTokenCheck": True,
                }
            ],
        )
        broker_id = result.get("IdentityPoolId")
        if not broker_id:
            raise UpstreamFailure("create_identity_pool returned no pool id")
        log.info("identity_broker_created", broker_id=broker_id, domain_id=domain.id)
        return BrokerHandle(id=broker_id)

    async def set_role_selection_rules(
        self,
        domain: DomainHandle,
        client: ClientHandle,
        broker: BrokerHandle,
        auth_role: RoleHandle,
        admin_role: RoleHandle,
        user_role: RoleHandle,
    ) -> None:
        await self._identity.set_identity_pool_roles(
            IdentityPoolId=broker.id,
            Roles={"authenticated": auth_role.arn},
            RoleMappings=role_selection_rules(
                region=self._region,
                domain=domain,
                client=client,
                admin_role=admin_role,
                user_role=user_role,
            ),
        )

    async def delete_broker(self, broker_id: str) -> None:
        await self._identity.delete_identity_pool(IdentityPoolId=require(broker_id, "broker_id"))
        log.info("identity_broker_deleted", broker_id=broker_id)

    async def broker_exists(self, broker_id: str) -> bool:
        try:
            await self._identity.describe_identity_pool(IdentityPoolId=broker_id)
        except NotFound:
            return False
        return True
