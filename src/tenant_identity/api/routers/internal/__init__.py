"""
tenant_identity.api.routers.internal

Operator/internal-service endpoints (RBAC role `internal_system`).
"""
