"""
tenant_identity.cloud.federated_identity

Federated-identity broker capability (Cognito identity pools).
"""

from __future__ import annotations

from typing import Any

from tenant_identity.cloud.base import AwsCapability


class CognitoFederatedIdentity(AwsCapability):
    service_name = "cognito-identity"
    not_found_codes = frozenset({"ResourceNotFoundException"})
    create_operations = frozenset({"create_identity_pool"})

    async def create_identity_pool(self, **params: Any) -> dict[str, Any]:
        return await self._call("create_identity_pool", **params)

    async def describe_identity_pool(self, *, IdentityPoolId: str) -> dict[str, Any]:
        return await self._call("describe_identity_pool", IdentityPoolId=IdentityPoolId)

    async def set_identity_pool_roles(self, **params: Any) -> None:
        await self._call("set_identity_pool_roles", **params)

    async def delete_identity_pool(self, *, IdentityPoolId: str) -> None:
        await self._call("delete_identity_pool", IdentityPoolId=IdentityPoolId)
