"""
tenant_identity.provisioning.identity_domain

IdentityDomainProvisioner: the tenant's authentication domain and its client registration.

Responsibilities:
- Create a domain with the fixed tenant attribute schema and password policy.
- Register the client application allowed to authenticate against it.
- Create human identities inside the domain (credentials delivered by email).
- Destroy the domain (and everything in it).

`create_domain` is not idempotent: the tenant id is only the domain's display name and every call
yields a new domain id. At-most-once invocation per tenant is enforced by the orchestrator.
"""

from __future__ import annotations

from typing import Any

from tenant_identity.errors import (
    IdentityCreationFailed,
    NotFound,
    TenantIdentityError,
    UpstreamFailure,
    require,
)
from tenant_identity.observability.logging import get_logger
from tenant_identity.provisioning.models import (
    ClientHandle,
    CreatedIdentity,
    DomainHandle,
    UserAttributes,
)

log = get_logger(__name__)


def _custom_attribute(name: str, *, mutable: bool = True) -> dict[str, Any]:
    return {
        "AttributeDataType": "String",
        "DeveloperOnlyAttribute": False,
        "Mutable": mutable,
        "Name": name,
        "Required": False,
        "StringAttributeConstraints": {"MinLength": "1", "MaxLength": "256"},
    }


TENANT_ATTRIBUTE_SCHEMA: tuple[dict[str, Any], ...] = (
    _custom_attribute("tenant_id", mutable=False),
    _custom_attribute("tier"),
    {"Name": "email", "Required": True},
    _custom_attribute("company_name"),
    _custom_attribute("role"),
    _custom_attribute("account_name"),
)

PASSWORD_POLICY: dict[str, Any] = {
    "MinimumLength": 8,
    "RequireLowercase": True,
    "RequireNumbers": True,
    "RequireSymbols": False,
    "RequireUppercase": True,
}

CLIENT_READ_ATTRIBUTES: tuple[str, ...] = (
    "email",
    "family_name",
    "given_name",
    "phone_number",
    "preferred_username",
    "custom:tier",
    "custom:tenant_id",
    "custom:company_name",
    "custom:account_name",
    "custom:role",
)

CLIENT_WRITE_ATTRIBUTES: tuple[str, ...] = (
    "email",
    "family_name",
    "given_name",
    "phone_number",
    "preferred_username",
    "custom:tier",
    "custom:role",
)

CLIENT_AUTH_FLOWS: tuple[str, ...] = (
    "ALLOW_ADMIN_USER_PASSWORD_AUTH",
    "ALLOW_CUSTOM_AUTH",
    "ALLOW_REFRESH_TOKEN_AUTH",
    "ALLOW_USER_SRP_AUTH",
)

# Upstream codes meaning "the domain rejected this identity", as opposed to a platform failure.
IDENTITY_REJECTION_CODES = frozenset(
    {
        "InvalidParameterException",
        "UsernameExistsException",
        "InvalidPasswordException",
        "CodeDeliveryFailureException",
        "AliasExistsException",
    }
)


class IdentityDomainProvisioner:
    def __init__(self, capability: Any) -> None:
        self._idp = capability

    async def create_domain(
        self,
        tenant_id: str,
        schema: tuple[dict[str, Any], ...] = TENANT_ATTRIBUTE_SCHEMA,
    ) -> DomainHandle:
        tenant_id = require(tenant_id, "tenant_id")
        result = await self._idp.create_user_pool(
            PoolName=tenant_id,
            AdminCreateUserConfig={
                "AllowAdminCreateUserOnly": True,
                "UnusedAccountValidityDays": 90,
            },
            AliasAttributes=["phone_number"],
            AutoVerifiedAttributes=["email"],
            MfaConfiguration="OFF",
            Policies={"PasswordPolicy": dict(PASSWORD_POLICY)},
            Schema=[dict(a) for a in schema],
        )
        pool = result.get("UserPool") or {}
        if not pool.get("Id"):
            raise UpstreamFailure("create_user_pool returned no pool")

        handle = DomainHandle(id=pool["Id"], arn=pool.get("Arn", ""), name=pool.get("Name", tenant_id))
        log.info("identity_domain_created", domain_id=handle.id)
        return handle

    async def create_client(self, domain: DomainHandle) -> ClientHandle:
        result = await self._idp.create_user_pool_client(
            UserPoolId=domain.id,
            ClientName=domain.name,
            GenerateSecret=False,
            RefreshTokenValidity=0,
            ReadAttributes=list(CLIENT_READ_ATTRIBUTES),
            WriteAttributes=list(CLIENT_WRITE_ATTRIBUTES),
            ExplicitAuthFlows=list(CLIENT_AUTH_FLOWS),
        )
        client = result.get("UserPoolClient") or {}
        if not client.get("ClientId"):
            raise UpstreamFailure("create_user_pool_client returned no client")

        handle = ClientHandle(id=client["ClientId"], name=client.get("ClientName", domain.name))
        log.info("identity_client_created", domain_id=domain.id, client_id=handle.id)
        return handle

    async def create_identity(
        self, domain: DomainHandle, attributes: UserAttributes
    ) -> CreatedIdentity:
        try:
            result = await self._idp.admin_create_user(
                UserPoolId=domain.id,
                Username=attributes.user_name,
                DesiredDeliveryMediums=["EMAIL"],
                ForceAliasCreation=True,
                UserAttributes=[
                    {"Name": "email", "Value": attributes.email},
                    {"Name": "custom:tenant_id", "Value": attributes.tenant_id},
                    {"Name": "given_name", "Value": attributes.first_name},
                    {"Name": "family_name", "Value": attributes.last_name},
                    {"Name": "custom:role", "Value": str(attributes.role)},
                    {"Name": "custom:tier", "Value": attributes.tier},
                ],
            )
        except TenantIdentityError as e:
            if e.code in IDENTITY_REJECTION_CODES:
                raise IdentityCreationFailed(
                    f"identity domain rejected user attributes ({e.code})", code=e.code
                ) from e
            raise

        user = result.get("User") or {}
        subject = next(
            (a.get("Value") for a in user.get("Attributes", []) if a.get("Name") == "sub"),
            None,
        )
        if not subject:
            raise IdentityCreationFailed("identity domain returned no subject identifier")
        return CreatedIdentity(external_id=user.get("Username", attributes.user_name), subject_id=subject)

    async def delete_client(self, domain_id: str, client_id: str) -> None:
        await self._idp.delete_user_pool_client(UserPoolId=domain_id, ClientId=client_id)

    async def delete_domain(self, domain_id: str) -> None:
        # Raises NotFound when absent; teardown callers treat that as success.
        await self._idp.delete_user_pool(UserPoolId=require(domain_id, "domain_id"))
        log.info("identity_domain_deleted", domain_id=domain_id)

    async def domain_exists(self, domain_id: str) -> bool:
        try:
            await self._idp.describe_user_pool(UserPoolId=domain_id)
        except NotFound:
            return False
        return True

    async def list_identities(self, domain_id: str) -> list[dict[str, Any]]:
        users = await self._idp.list_users(UserPoolId=domain_id)
        out: list[dict[str, Any]] = []
        for u in users:
            attrs = {a.get("Name"): a.get("Value") for a in u.get("Attributes", [])}
            out.append(
                {
                    "userName": u.get("Username"),
                    "email": attrs.get("email"),
                    "firstName": attrs.get("given_name"),
                    "lastName": attrs.get("family_name"),
                    "role": attrs.get("custom:role"),
                    "tier": attrs.get("custom:tier"),
                    "enabled": bool(u.get("Enabled", True)),
                    "status": u.get("UserStatus"),
                }
            )
        return out
