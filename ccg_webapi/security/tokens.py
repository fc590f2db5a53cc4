"""Signing of access tokens with the shared symmetric key."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Mapping, Optional

import jwt

from .jwt_config import JwtTokenConfig, TokenValidationParameters

__all__ = ["JwtTokenIssuer"]


class JwtTokenIssuer:
    """Create HMAC-signed JWTs that the bearer authenticator accepts."""

    def __init__(
        self,
        config: JwtTokenConfig,
        parameters: Optional[TokenValidationParameters] = None,
        *,
        algorithm: str = "HS256",
    ) -> None:
        self._config = config
        self._parameters = parameters or TokenValidationParameters()
        self._algorithm = algorithm

    def issue(
        self,
        subject: str,
        *,
        roles: Iterable[str] = (),
        claims: Optional[Mapping[str, Any]] = None,
        lifetime: Optional[timedelta] = None,
        now: Optional[datetime] = None,
    ) -> str:
        issued_at = now or datetime.now(timezone.utc)
        expires_at = issued_at + (lifetime or self._config.access_token_lifetime)
        payload: dict[str, Any] = {
            "sub": subject,
            self._parameters.name_claim_type: subject,
            "jti": uuid.uuid4().hex,
            "iat": issued_at,
            "nbf": issued_at,
            "exp": expires_at,
        }
        role_list = list(roles)
        if role_list:
            payload[self._parameters.role_claim_type] = (
                role_list[0] if len(role_list) == 1 else role_list
            )
        if self._config.issuer:
            payload["iss"] = self._config.issuer
        if self._config.audience:
            payload["aud"] = self._config.audience
        if claims:
            payload.update(claims)
        return jwt.encode(payload, self._config.signing_key, algorithm=self._algorithm)
