"""
tenant_identity.cloud.table_store

Table-store capability (DynamoDB). Read-only: only table descriptions are needed, to resolve
the data-resource ARNs embedded in role policies.
"""

from __future__ import annotations

from typing import Any

from tenant_identity.cloud.base import AwsCapability


class DynamoTableStore(AwsCapability):
    service_name = "dynamodb"
    not_found_codes = frozenset({"ResourceNotFoundException"})

    async def describe_table(self, *, TableName: str) -> dict[str, Any]:
        return await self._call("describe_table", TableName=TableName)
