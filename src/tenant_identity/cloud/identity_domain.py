"""
tenant_identity.cloud.identity_domain

Identity-domain capability (Cognito user pools).
"""

from __future__ import annotations

from typing import Any

from tenant_identity.cloud.base import AwsCapability


class CognitoIdentityDomain(AwsCapability):
    service_name = "cognito-idp"
    not_found_codes = frozenset({"ResourceNotFoundException", "UserNotFoundException"})
    create_operations = frozenset({"create_user_pool", "create_user_pool_client", "admin_create_user"})

    async def create_user_pool(self, **params: Any) -> dict[str, Any]:
        return await self._call("create_user_pool", **params)

    async def describe_user_pool(self, *, UserPoolId: str) -> dict[str, Any]:
        return await self._call("describe_user_pool", UserPoolId=UserPoolId)

    async def delete_user_pool(self, *, UserPoolId: str) -> None:
        await self._call("delete_user_pool", UserPoolId=UserPoolId)

    async def create_user_pool_client(self, **params: Any) -> dict[str, Any]:
        return await self._call("create_user_pool_client", **params)

    async def delete_user_pool_client(self, *, UserPoolId: str, ClientId: str) -> None:
        await self._call("delete_user_pool_client", UserPoolId=UserPoolId, ClientId=ClientId)

    async def admin_create_user(self, **params: Any) -> dict[str, Any]:
        return await self._call("admin_create_user", **params)

    async def list_users(self, *, UserPoolId: str) -> list[dict[str, Any]]:
        users: list[dict[str, Any]] = []
        token: str | None = None
        while True:
            params: dict[str, Any] = {"UserPoolId": UserPoolId}
            if token:
                params["PaginationToken"] = token
            page = await self._call("list_users", **params)
            users.extend(page.get("Users", []))
            token = page.get("PaginationToken")
            if not token:
                return users
