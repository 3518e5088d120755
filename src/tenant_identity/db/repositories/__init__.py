"""
tenant_identity.db.repositories

Repository package; repositories are imported directly from submodules.
"""
