"""
tenant_identity.errors

Error taxonomy shared by every layer.

Responsibilities:
- Give each failure class a stable `kind` and HTTP status used at the API boundary.
- Carry an optional upstream error code (never the raw upstream payload).
"""

from __future__ import annotations


class TenantIdentityError(Exception):
    kind: str = "INTERNAL"
    status_code: int = 500

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "message": self.message}


class InvalidArgument(TenantIdentityError):
    kind = "INVALID_ARGUMENT"
    status_code = 400


class AuthenticationRequired(TenantIdentityError):
    kind = "AUTHENTICATION_REQUIRED"
    status_code = 401


class NotFound(TenantIdentityError):
    kind = "NOT_FOUND"
    status_code = 404


class Conflict(TenantIdentityError):
    kind = "CONFLICT"
    status_code = 409


class IdentityCreationFailed(TenantIdentityError):
    kind = "IDENTITY_CREATION_FAILED"
    status_code = 422


class UpstreamFailure(TenantIdentityError):
    kind = "UPSTREAM_FAILURE"
    status_code = 502


def require(value: str | None, name: str) -> str:
    # Fail fast on blank identifiers before any remote call is attempted.
    if value is None or not str(value).strip():
        raise InvalidArgument(f"{name} must not be empty")
    return str(value)
