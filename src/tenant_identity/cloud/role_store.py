"""
tenant_identity.cloud.role_store

Role-store capability (IAM roles and inline role policies).
"""

from __future__ import annotations

from typing import Any

from tenant_identity.cloud.base import AwsCapability


class IamRoleStore(AwsCapability):
    service_name = "iam"
    not_found_codes = frozenset({"NoSuchEntity"})
    create_operations = frozenset({"create_role"})

    async def create_role(self, *, RoleName: str, AssumeRolePolicyDocument: str) -> dict[str, Any]:
        return await self._call(
            "create_role", RoleName=RoleName, AssumeRolePolicyDocument=AssumeRolePolicyDocument
        )

    async def get_role(self, *, RoleName: str) -> dict[str, Any]:
        return await self._call("get_role", RoleName=RoleName)

    async def put_role_policy(self, *, RoleName: str, PolicyName: str, PolicyDocument: str) -> None:
        await self._call(
            "put_role_policy", RoleName=RoleName, PolicyName=PolicyName, PolicyDocument=PolicyDocument
        )

    async def delete_role_policy(self, *, RoleName: str, PolicyName: str) -> None:
        await self._call("delete_role_policy", RoleName=RoleName, PolicyName=PolicyName)

    async def delete_role(self, *, RoleName: str) -> None:
        await self._call("delete_role", RoleName=RoleName)
