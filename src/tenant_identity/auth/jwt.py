"""
tenant_identity.auth.jwt

JWT helpers.

Responsibilities:
- Issue short-lived internal-service tokens (ops tooling, tests).
- Decode and validate internal tokens with strict claim requirements (iss/aud/exp/iat/sub).
- Read claims from tenant-user bearer tokens without verifying them; those tokens are issued by
  the tenant's identity domain and validated by the credential broker.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from jwt import InvalidTokenError

from tenant_identity.errors import AuthenticationRequired
from tenant_identity.settings import Settings


@dataclass(frozen=True, slots=True)
class JwtConfig:
    alg: str
    issuer: str
    audience: str
    secret: str

    @classmethod
    def from_settings(cls, settings: Settings) -> JwtConfig:
        return cls(
            alg=settings.jwt_alg,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            secret=settings.jwt_secret,
        )


class JwtValidationError(Exception):
    pass


def issue_token(
    *,
    cfg: JwtConfig,
    subject: str,
    roles: list[str],
    ttl: timedelta = timedelta(minutes=15),
) -> str:
    now = datetime.now(tz=UTC)
    payload: dict[str, Any] = {
        "iss": cfg.issuer,
        "aud": cfg.audience,
        "sub": subject,
        "roles": roles,
        "iat": int(now.timestamp()),
        "exp": int((now + ttl).timestamp()),
    }
    return jwt.encode(payload, cfg.secret, algorithm=cfg.alg)


def decode_and_validate(*, cfg: JwtConfig, token: str) -> dict[str, Any]:
    try:
        return jwt.decode(
            token,
            cfg.secret,
            algorithms=[cfg.alg],
            issuer=cfg.issuer,
            audience=cfg.audience,
            options={"require": ["exp", "iat", "iss", "aud", "sub"]},
        )
    except InvalidTokenError as e:
        raise JwtValidationError(str(e)) from e


def decode_unverified_claims(token: str) -> dict[str, Any]:
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except InvalidTokenError as e:
        raise AuthenticationRequired("bearer token could not be parsed") from e
    if not isinstance(claims, dict):
        raise AuthenticationRequired("bearer token could not be parsed")
    return claims


def domain_id_from_token(token: str) -> str:
    """
    The issuing domain id is the last path segment of `iss`
    (`https://cognito-idp.<region>.amazonaws.com/<domainId>`).
    """

    iss = str(decode_unverified_claims(token).get("iss") or "")
    domain_id = iss.rsplit("/", 1)[-1]
    if not domain_id:
        raise AuthenticationRequired("bearer token carries no issuer")
    return domain_id
