"""
tenant_identity.cloud

Capability interfaces for the external cloud systems (aioboto3).

Responsibilities:
- One capability class per system: identity domain, federated identity, role store, table store.
- Transport concerns only: client construction, timeouts, error translation.
"""

# Package marker; import capabilities from submodules.


# --- Module Notes -----------------------------------------------------------
# Request shapes (schemas, policies, rules) are built in `tenant_identity.provisioning`,
# never here.
