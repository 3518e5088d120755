"""
tenant_identity.cloud.capabilities

Composition of the per-system capabilities.

Responsibilities:
- Bundle the four capability interfaces into one injectable object.
- Construct it once per process (system credentials) or per request (tenant credentials).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import aioboto3

from tenant_identity.cloud.base import AwsCredentials, build_boto_config
from tenant_identity.cloud.federated_identity import CognitoFederatedIdentity
from tenant_identity.cloud.identity_domain import CognitoIdentityDomain
from tenant_identity.cloud.role_store import IamRoleStore
from tenant_identity.cloud.table_store import DynamoTableStore
from tenant_identity.settings import Settings


@dataclass(frozen=True, slots=True)
class CloudCapabilities:
    # Typed as Any so in-memory fakes with the same method names can be injected in tests.
    identity_domain: Any
    federated_identity: Any
    role_store: Any
    table_store: Any
    region: str


def build_cloud_capabilities(
    settings: Settings,
    *,
    credentials: AwsCredentials | None = None,
    session: aioboto3.Session | None = None,
) -> CloudCapabilities:
    session = session or aioboto3.Session()
    config = build_boto_config(settings)
    create_config = build_boto_config(settings, retry=False)
    common: dict[str, Any] = {
        "session": session,
        "settings": settings,
        "config": config,
        "create_config": create_config,
        "credentials": credentials,
    }
    return CloudCapabilities(
        identity_domain=CognitoIdentityDomain(**common),
        federated_identity=CognitoFederatedIdentity(**common),
        role_store=IamRoleStore(**common),
        table_store=DynamoTableStore(**common),
        region=settings.aws_region,
    )


# --- Module Notes -----------------------------------------------------------
# The API layer builds the system-credential bundle on startup (`app.state.cloud`); tenant-scoped
# bundles are built per request from credential-broker output.
