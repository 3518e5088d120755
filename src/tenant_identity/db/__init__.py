"""
tenant_identity.db

Persistence package (SQLAlchemy async).

Responsibilities:
- ORM models, engine/session setup, and repositories (User Records, workflow runs, leases, audit).
"""

# Package marker.
