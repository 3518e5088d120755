"""
tenant_identity.cloud.base

Shared aioboto3 plumbing for capability classes.

Responsibilities:
- Build one aioboto3 session and botocore config per process.
- Execute a single remote operation under a bounded timeout.
- Translate botocore failures into the service error taxonomy.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

import aioboto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from tenant_identity.errors import NotFound, TenantIdentityError, UpstreamFailure
from tenant_identity.observability.logging import get_logger
from tenant_identity.settings import Settings

log = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class AwsCredentials:
    # Temporary tenant-scoped credentials issued by the credential broker.
    access_key_id: str
    secret_access_key: str
    session_token: str | None = None

    def as_client_kwargs(self) -> dict[str, str]:
        kwargs = {
            "aws_access_key_id": self.access_key_id,
            "aws_secret_access_key": self.secret_access_key,
        }
        if self.session_token:
            kwargs["aws_session_token"] = self.session_token
        return kwargs


def build_boto_config(settings: Settings, *, retry: bool = True) -> BotoConfig:
    # Creates are not idempotent: a retried create whose first attempt landed leaks a duplicate.
    attempts = settings.aws_max_attempts if retry else 1
    return BotoConfig(
        connect_timeout=settings.aws_connect_timeout_seconds,
        read_timeout=settings.aws_read_timeout_seconds,
        retries={"total_max_attempts": attempts, "mode": "standard"},
    )


def translate_client_error(
    err: ClientError, *, operation: str, not_found_codes: frozenset[str]
) -> TenantIdentityError:
    code = str(err.response.get("Error", {}).get("Code", "Unknown"))
    if code in not_found_codes:
        return NotFound(f"{operation}: resource not found", code=code)
    return UpstreamFailure(f"{operation} failed ({code})", code=code)


class AwsCapability:
    """
    Base for all capability classes.

    Subclasses set `service_name`, the error codes that mean "resource absent" for that service, and
    `create_operations`: calls that mint a new resource and are therefore sent exactly once.
    A fresh client is opened per operation, mirroring aioboto3's context-managed clients.
    """

    service_name: str = ""
    not_found_codes: frozenset[str] = frozenset()
    create_operations: frozenset[str] = frozenset()

    def __init__(
        self,
        *,
        session: aioboto3.Session,
        settings: Settings,
        config: BotoConfig | None = None,
        create_config: BotoConfig | None = None,
        credentials: AwsCredentials | None = None,
    ) -> None:
        self._session = session
        self._settings = settings
        self._config = config or build_boto_config(settings)
        self._create_config = create_config or build_boto_config(settings, retry=False)
        self._credentials = credentials

    @property
    def region(self) -> str:
        return self._settings.aws_region

    def _client_kwargs(self, operation: str) -> dict[str, Any]:
        config = self._create_config if operation in self.create_operations else self._config
        kwargs: dict[str, Any] = {"region_name": self._settings.aws_region, "config": config}
        if self._settings.aws_endpoint_url:
            kwargs["endpoint_url"] = self._settings.aws_endpoint_url
        if self._credentials is not None:
            kwargs.update(self._credentials.as_client_kwargs())
        return kwargs

    async def _call(self, operation: str, **params: Any) -> dict[str, Any]:
        qualified = f"{self.service_name}.{operation}"
        try:
            async with asyncio.timeout(self._settings.call_timeout_seconds):
                kwargs = self._client_kwargs(operation)
                async with self._session.client(self.service_name, **kwargs) as client:
                    return await getattr(client, operation)(**params)
        except ClientError as e:
            raise translate_client_error(
                e, operation=qualified, not_found_codes=self.not_found_codes
            ) from e
        except TimeoutError as e:
            log.warning("cloud_call_timeout", operation=qualified)
            raise UpstreamFailure(f"{qualified} timed out") from e
        except BotoCoreError as e:
            raise UpstreamFailure(f"{qualified} failed ({type(e).__name__})") from e


# --- Module Notes -----------------------------------------------------------
# botocore retries cover throttling/transient errors inside one `_call` for reads, puts and deletes;
# create operations get a single attempt and their failures go straight to the workflow, which
# rolls back instead of retrying. The asyncio timeout bounds the whole call including retries.
