"""
tenant_identity

Per-tenant identity infrastructure lifecycle service.

Responsibilities:
- Expose package version metadata.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"


# --- Module Notes -----------------------------------------------------------
# Import-time side effects stay out of this module; composition happens in `api.app`.
