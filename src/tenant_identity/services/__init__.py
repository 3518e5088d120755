"""
tenant_identity.services

Workflow services (transaction, lease and rollback owners).
"""
