"""
tenant_identity.auth

Authentication/authorization package.

Responsibilities:
- Internal-service JWT helpers and validation.
- Bearer-token claim extraction for tenant-user requests.
- FastAPI auth dependencies (Principal + RBAC).
"""
