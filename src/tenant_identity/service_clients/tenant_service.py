"""
tenant_identity.service_clients.tenant_service

Client for the tenant-record service (`/tenant` resource).

Responsibilities:
- Create the tenant metadata row once identity provisioning has completed.
- Read, update and delete tenant metadata.
"""

from __future__ import annotations

from typing import Any

import httpx

from tenant_identity.errors import require
from tenant_identity.service_clients.base import send_json
from tenant_identity.settings import Settings

SERVICE = "tenant-service"


class TenantServiceClient:
    def __init__(self, *, settings: Settings, http: httpx.AsyncClient) -> None:
        self._base = settings.tenant_service_url.rstrip("/")
        self._timeout = settings.http_timeout_seconds
        self._http = http

    async def create_tenant(self, tenant: dict[str, Any]) -> dict[str, Any]:
        require(tenant.get("id"), "id")
        body = await send_json(
            self._http, "POST", f"{self._base}/tenant", service=SERVICE, json=tenant, timeout=self._timeout
        )
        return body or dict(tenant)

    async def get_tenant(self, tenant_id: str) -> dict[str, Any]:
        tenant_id = require(tenant_id, "tenant_id")
        return await send_json(
            self._http, "GET", f"{self._base}/tenant/{tenant_id}", service=SERVICE, timeout=self._timeout
        )

    async def update_tenant(self, tenant_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        tenant_id = require(tenant_id, "tenant_id")
        return await send_json(
            self._http,
            "PUT",
            f"{self._base}/tenant/{tenant_id}",
            service=SERVICE,
            json=changes,
            timeout=self._timeout,
        )

    async def delete_tenant(self, tenant_id: str) -> None:
        tenant_id = require(tenant_id, "tenant_id")
        await send_json(
            self._http, "DELETE", f"{self._base}/tenant/{tenant_id}", service=SERVICE, timeout=self._timeout
        )
