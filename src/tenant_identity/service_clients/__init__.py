"""
tenant_identity.service_clients

httpx clients for collaborating services (tenant-record service, credential broker).
"""
