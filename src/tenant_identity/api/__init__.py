"""
tenant_identity.api

HTTP boundary: app factory, dependency wiring and routers.
"""
