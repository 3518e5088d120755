"""
tenant_identity.api.routers

Route modules; each exposes a module-level `router`.
"""
