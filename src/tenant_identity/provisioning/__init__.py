"""
tenant_identity.provisioning

Tenant identity lifecycle core.

Responsibilities:
- Policy templates, the per-system provisioners, and the provisioning/deprovisioning graphs.
- Compensation (undo) records and their execution.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Call sites should go through `services.lifecycle.TenantLifecycleOrchestrator`, which owns
# leases, deadlines, checkpoints and rollback.
