"""
tenant_identity.auth.deps

FastAPI dependency functions for authentication and authorization.

Responsibilities:
- Extract the raw bearer token for tenant-user endpoints.
- Convert an internal-service token into a typed `Principal`.
- Enforce RBAC via reusable dependency factories.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.status import HTTP_403_FORBIDDEN

from tenant_identity.auth.jwt import JwtConfig, JwtValidationError, decode_and_validate
from tenant_identity.auth.models import Principal
from tenant_identity.errors import AuthenticationRequired

_bearer = HTTPBearer(auto_error=False)


def bearer_token(
    creds: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> str:
    # Missing header fails here, before any remote call is attempted.
    if creds is None or not creds.credentials:
        raise AuthenticationRequired("missing bearer token")
    return creds.credentials


def get_principal(request: Request, token: str = Depends(bearer_token)) -> Principal:
    cfg = JwtConfig.from_settings(request.app.state.settings)
    try:
        payload = decode_and_validate(cfg=cfg, token=token)
    except JwtValidationError as e:
        raise AuthenticationRequired(f"invalid token: {e}") from e

    subject = str(payload.get("sub", ""))
    roles_raw = payload.get("roles", [])
    if not subject:
        raise AuthenticationRequired("invalid token subject")
    if not isinstance(roles_raw, list):
        raise AuthenticationRequired("invalid token roles")

    return Principal(subject=subject, roles=frozenset(str(r) for r in roles_raw))


def require_roles(*required: str):
    required_set = frozenset(required)

    def _dep(principal: Principal = Depends(get_principal)) -> Principal:
        # admin may call every internal endpoint (ops).
        if principal.is_admin:
            return principal
        if not required_set.issubset(principal.roles):
            raise HTTPException(status_code=HTTP_403_FORBIDDEN, detail="Insufficient role")
        return principal

    return _dep
