"""
tenant_identity.service_clients.token_service

Client for the credential broker: exchanges a user's bearer token for tenant-scoped credentials.
"""

from __future__ import annotations

import httpx

from tenant_identity.cloud.base import AwsCredentials
from tenant_identity.errors import UpstreamFailure, require
from tenant_identity.service_clients.base import send_json
from tenant_identity.settings import Settings

SERVICE = "token-service"


class TokenServiceClient:
    def __init__(self, *, settings: Settings, http: httpx.AsyncClient) -> None:
        self._url = f"{settings.token_service_url.rstrip('/')}/token/user"
        self._timeout = settings.http_timeout_seconds
        self._http = http

    async def exchange(self, token: str) -> AwsCredentials:
        token = require(token, "token")
        body = await send_json(
            self._http, "POST", self._url, service=SERVICE, json={"token": token}, timeout=self._timeout
        )
        if not isinstance(body, dict) or not body.get("accessKeyId") or not body.get("secretAccessKey"):
            raise UpstreamFailure(f"{SERVICE} returned incomplete credentials")
        return AwsCredentials(
            access_key_id=body["accessKeyId"],
            secret_access_key=body["secretAccessKey"],
            session_token=body.get("sessionToken"),
        )
