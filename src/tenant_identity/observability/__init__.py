"""
tenant_identity.observability

Structured logging and request-context propagation.
"""
