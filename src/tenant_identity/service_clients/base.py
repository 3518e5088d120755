"""
tenant_identity.service_clients.base

Shared request helper: one place that turns httpx failures into the error taxonomy.
"""

from __future__ import annotations

from typing import Any

import httpx

from tenant_identity.errors import NotFound, TenantIdentityError, UpstreamFailure
from tenant_identity.observability.logging import get_logger

log = get_logger(__name__)


async def send_json(
    http: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    service: str,
    json: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    timeout: float | None = None,
) -> Any:
    try:
        r = await http.request(method, url, json=json, headers=headers, timeout=timeout)
        r.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise _status_error(service, method, e.response) from e
    except httpx.HTTPError as e:
        log.warning("service_call_failed", service=service, method=method, error_type=type(e).__name__)
        raise UpstreamFailure(f"{service} unreachable ({type(e).__name__})") from e

    if not r.content:
        return None
    try:
        return r.json()
    except ValueError as e:
        raise UpstreamFailure(f"{service} returned a non-JSON body") from e


def _status_error(service: str, method: str, response: httpx.Response) -> TenantIdentityError:
    # Status only; the upstream body is not forwarded.
    log.warning("service_call_rejected", service=service, method=method, status_code=response.status_code)
    if response.status_code == 404:
        return NotFound(f"{service}: resource not found", code="404")
    return UpstreamFailure(
        f"{service} responded {response.status_code}", code=str(response.status_code)
    )
