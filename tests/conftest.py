"""
tests.conftest

Shared fixtures.

Responsibilities:
- In-memory stand-ins for the four cloud capabilities (same method names, same NotFound semantics).
- Temporary SQLite database per test.
"""

from __future__ import annotations

import asyncio
import itertools
import uuid
from collections.abc import AsyncIterator
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from tenant_identity.cloud.capabilities import CloudCapabilities
from tenant_identity.db.init_db import init_db
from tenant_identity.db.session import create_engine, create_sessionmaker
from tenant_identity.errors import NotFound, TenantIdentityError, UpstreamFailure
from tenant_identity.settings import Settings

REGION = "us-east-1"
ACCOUNT = "123456789012"


class FakeCapability:
    """
    Records every call; `failures[op]` raises, `gates[op]` blocks until set, `entered[op]` is set
    when the operation is reached.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.failures: dict[str, TenantIdentityError] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.entered: dict[str, asyncio.Event] = {}
        # Shared across fakes by FakeCloud so cross-system ordering can be asserted.
        self.journal: list[str] | None = None

    def reached(self, op: str) -> asyncio.Event:
        return self.entered.setdefault(op, asyncio.Event())

    def ops(self) -> list[str]:
        return [op for op, _ in self.calls]

    async def _enter(self, op: str, params: dict[str, Any]) -> None:
        self.calls.append((op, params))
        if self.journal is not None:
            self.journal.append(op)
        self.reached(op).set()
        gate = self.gates.get(op)
        if gate is not None:
            await gate.wait()
        exc = self.failures.get(op)
        if exc is not None:
            raise exc


def _missing(what: str, code: str) -> NotFound:
    return NotFound(f"{what} not found", code=code)


class FakeIdentityDomain(FakeCapability):
    def __init__(self) -> None:
        super().__init__()
        self.pools: dict[str, dict[str, Any]] = {}
        self._seq = itertools.count(1)

    def _pool(self, pool_id: str) -> dict[str, Any]:
        if pool_id not in self.pools:
            raise _missing("user pool", "ResourceNotFoundException")
        return self.pools[pool_id]

    async def create_user_pool(self, **params: Any) -> dict[str, Any]:
        await self._enter("create_user_pool", params)
        pool_id = f"{REGION}_pool{next(self._seq)}"
        self.pools[pool_id] = {"params": params, "clients": {}, "users": {}}
        return {
            "UserPool": {
                "Id": pool_id,
                "Name": params["PoolName"],
                "Arn": f"arn:aws:cognito-idp:{REGION}:{ACCOUNT}:userpool/{pool_id}",
            }
        }

    async def describe_user_pool(self, *, UserPoolId: str) -> dict[str, Any]:
        await self._enter("describe_user_pool", {"UserPoolId": UserPoolId})
        return {"UserPool": {"Id": UserPoolId, **self._pool(UserPoolId)["params"]}}

    async def delete_user_pool(self, *, UserPoolId: str) -> None:
        await self._enter("delete_user_pool", {"UserPoolId": UserPoolId})
        self._pool(UserPoolId)
        del self.pools[UserPoolId]

    async def create_user_pool_client(self, **params: Any) -> dict[str, Any]:
        await self._enter("create_user_pool_client", params)
        pool = self._pool(params["UserPoolId"])
        client_id = uuid.uuid4().hex[:26]
        pool["clients"][client_id] = params
        return {"UserPoolClient": {"ClientId": client_id, "ClientName": params["ClientName"]}}

    async def delete_user_pool_client(self, *, UserPoolId: str, ClientId: str) -> None:
        await self._enter("delete_user_pool_client", {"UserPoolId": UserPoolId, "ClientId": ClientId})
        pool = self._pool(UserPoolId)
        if ClientId not in pool["clients"]:
            raise _missing("client", "ResourceNotFoundException")
        del pool["clients"][ClientId]

    async def admin_create_user(self, **params: Any) -> dict[str, Any]:
        await self._enter("admin_create_user", params)
        pool = self._pool(params["UserPoolId"])
        username = params["Username"]
        if username in pool["users"]:
            raise UpstreamFailure("user exists", code="UsernameExistsException")
        attrs = {a["Name"]: a["Value"] for a in params.get("UserAttributes", [])}
        if "@" not in attrs.get("email", ""):
            raise UpstreamFailure("invalid email", code="InvalidParameterException")
        attributes = [*params["UserAttributes"], {"Name": "sub", "Value": str(uuid.uuid4())}]
        user = {
            "Username": username,
            "Attributes": attributes,
            "Enabled": True,
            "UserStatus": "FORCE_CHANGE_PASSWORD",
        }
        pool["users"][username] = user
        return {"User": user}

    async def list_users(self, *, UserPoolId: str) -> list[dict[str, Any]]:
        await self._enter("list_users", {"UserPoolId": UserPoolId})
        return list(self._pool(UserPoolId)["users"].values())


class FakeFederatedIdentity(FakeCapability):
    def __init__(self) -> None:
        super().__init__()
        self.pools: dict[str, dict[str, Any]] = {}

    def _pool(self, pool_id: str) -> dict[str, Any]:
        if pool_id not in self.pools:
            raise _missing("identity pool", "ResourceNotFoundException")
        return self.pools[pool_id]

    async def create_identity_pool(self, **params: Any) -> dict[str, Any]:
        await self._enter("create_identity_pool", params)
        pool_id = f"{REGION}:{uuid.uuid4()}"
        self.pools[pool_id] = {"params": params, "roles": None, "mappings": None}
        return {"IdentityPoolId": pool_id, **params}

    async def describe_identity_pool(self, *, IdentityPoolId: str) -> dict[str, Any]:
        await self._enter("describe_identity_pool", {"IdentityPoolId": IdentityPoolId})
        return {"IdentityPoolId": IdentityPoolId, **self._pool(IdentityPoolId)["params"]}

    async def set_identity_pool_roles(self, **params: Any) -> None:
        await self._enter("set_identity_pool_roles", params)
        pool = self._pool(params["IdentityPoolId"])
        pool["roles"] = params["Roles"]
        pool["mappings"] = params.get("RoleMappings")

    async def delete_identity_pool(self, *, IdentityPoolId: str) -> None:
        await self._enter("delete_identity_pool", {"IdentityPoolId": IdentityPoolId})
        self._pool(IdentityPoolId)
        del self.pools[IdentityPoolId]


class FakeRoleStore(FakeCapability):
    def __init__(self) -> None:
        super().__init__()
        self.roles: dict[str, dict[str, Any]] = {}

    def _role(self, name: str) -> dict[str, Any]:
        if name not in self.roles:
            raise _missing("role", "NoSuchEntity")
        return self.roles[name]

    async def create_role(self, *, RoleName: str, AssumeRolePolicyDocument: str) -> dict[str, Any]:
        await self._enter("create_role", {"RoleName": RoleName, "AssumeRolePolicyDocument": AssumeRolePolicyDocument})
        if RoleName in self.roles:
            raise UpstreamFailure("role exists", code="EntityAlreadyExists")
        arn = f"arn:aws:iam::{ACCOUNT}:role/{RoleName}"
        self.roles[RoleName] = {"arn": arn, "trust": AssumeRolePolicyDocument, "policies": {}}
        return {"Role": {"RoleName": RoleName, "Arn": arn}}

    async def get_role(self, *, RoleName: str) -> dict[str, Any]:
        await self._enter("get_role", {"RoleName": RoleName})
        return {"Role": {"RoleName": RoleName, "Arn": self._role(RoleName)["arn"]}}

    async def put_role_policy(self, *, RoleName: str, PolicyName: str, PolicyDocument: str) -> None:
        await self._enter("put_role_policy", {"RoleName": RoleName, "PolicyName": PolicyName})
        self._role(RoleName)["policies"][PolicyName] = PolicyDocument

    async def delete_role_policy(self, *, RoleName: str, PolicyName: str) -> None:
        await self._enter("delete_role_policy", {"RoleName": RoleName, "PolicyName": PolicyName})
        policies = self._role(RoleName)["policies"]
        if PolicyName not in policies:
            raise _missing("policy", "NoSuchEntity")
        del policies[PolicyName]

    async def delete_role(self, *, RoleName: str) -> None:
        await self._enter("delete_role", {"RoleName": RoleName})
        self._role(RoleName)
        del self.roles[RoleName]


class FakeTableStore(FakeCapability):
    def __init__(self, names: tuple[str, ...] = ("User", "Order", "Product")) -> None:
        super().__init__()
        self.tables = {n: f"arn:aws:dynamodb:{REGION}:{ACCOUNT}:table/{n}" for n in names}

    async def describe_table(self, *, TableName: str) -> dict[str, Any]:
        await self._enter("describe_table", {"TableName": TableName})
        if TableName not in self.tables:
            raise _missing("table", "ResourceNotFoundException")
        return {"Table": {"TableName": TableName, "TableArn": self.tables[TableName]}}


class FakeCloud:
    def __init__(self) -> None:
        self.idp = FakeIdentityDomain()
        self.identity = FakeFederatedIdentity()
        self.iam = FakeRoleStore()
        self.tables = FakeTableStore()
        self.journal: list[str] = []
        for fake in (self.idp, self.identity, self.iam, self.tables):
            fake.journal = self.journal

    def capabilities(self) -> CloudCapabilities:
        return CloudCapabilities(
            identity_domain=self.idp,
            federated_identity=self.identity,
            role_store=self.iam,
            table_store=self.tables,
            region=REGION,
        )

    def is_empty(self) -> bool:
        return not self.idp.pools and not self.identity.pools and not self.iam.roles


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        env="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'tenant_identity.db'}",
        jwt_secret="test-secret-0123456789abcdef0123456789",
        workflow_deadline_seconds=5.0,
    )


@pytest.fixture
def fake_cloud() -> FakeCloud:
    return FakeCloud()


@pytest.fixture
def cloud(fake_cloud: FakeCloud) -> CloudCapabilities:
    return fake_cloud.capabilities()


@pytest_asyncio.fixture
async def engine(settings: Settings) -> AsyncIterator[AsyncEngine]:
    eng = create_engine(settings)
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_sessionmaker(engine)


@pytest_asyncio.fixture
async def session(sessionmaker: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with sessionmaker() as s:
        yield s
