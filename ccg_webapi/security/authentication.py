"""JWT bearer authentication for inbound requests."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import jwt
from flask import Flask, g, request

from .jwt_config import JwtTokenConfig, TokenValidationParameters
from .token_source import (
    DEFAULT_HUB_PATH_PREFIX,
    DEFAULT_TOKEN_NAME,
    ResolvedToken,
    TokenSource,
    resolve_token_source,
)

__all__ = [
    "AuthenticationError",
    "BEARER_SCHEME",
    "JwtBearerAuthenticator",
    "Principal",
    "configure_authentication",
    "current_principal",
]

BEARER_SCHEME = "Bearer"


class AuthenticationError(Exception):
    """Raised when a presented bearer token fails validation."""


@dataclass(frozen=True)
class Principal:
    """Identity established from a validated token."""

    name: Optional[str]
    roles: tuple[str, ...] = ()
    claims: Mapping[str, Any] = field(default_factory=dict)
    token: Optional[str] = None
    source: TokenSource = TokenSource.NONE
    scheme: str = BEARER_SCHEME

    def is_in_role(self, role: str) -> bool:
        return role in self.roles


def _roles_from_claim(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,) if value else ()
    if isinstance(value, (list, tuple, set)):
        return tuple(str(item) for item in value if item)
    return (str(value),)


class JwtBearerAuthenticator:
    """Resolve and validate the bearer token carried by a request."""

    scheme = BEARER_SCHEME

    def __init__(
        self,
        config: JwtTokenConfig,
        parameters: TokenValidationParameters,
        *,
        token_name: str = DEFAULT_TOKEN_NAME,
        hub_prefix: str = DEFAULT_HUB_PATH_PREFIX,
    ) -> None:
        self.config = config
        self.parameters = parameters
        self.token_name = token_name
        self.hub_prefix = hub_prefix

    def extract(self, req: Any) -> ResolvedToken:
        """Run the token resolver, falling back to ``Authorization: Bearer``."""

        resolved = resolve_token_source(req, name=self.token_name, hub_prefix=self.hub_prefix)
        if resolved.token:
            return resolved

        authorization = req.headers.get("Authorization", "")
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return ResolvedToken(credentials.strip(), TokenSource.AUTHORIZATION)
        return ResolvedToken(None, resolved.source)

    def validate(self, token: str) -> dict[str, Any]:
        """Return the claims of ``token`` or raise :class:`AuthenticationError`."""

        params = self.parameters
        issuer = self.config.issuer if params.validate_issuer and self.config.issuer else None
        audience = self.config.audience if params.validate_audience and self.config.audience else None
        try:
            return jwt.decode(
                token,
                self.config.signing_key,
                algorithms=list(params.algorithms),
                options=params.decode_options(),
                audience=audience,
                issuer=issuer,
                leeway=params.clock_skew,
            )
        except jwt.PyJWTError as exc:
            raise AuthenticationError(str(exc) or exc.__class__.__name__) from exc

    def authenticate(self, req: Any) -> Optional[Principal]:
        """Return the request principal, ``None`` when no token was presented."""

        return self.authenticate_token(self.extract(req))

    def authenticate_token(self, resolved: ResolvedToken) -> Optional[Principal]:
        if not resolved.token:
            return None
        claims = self.validate(resolved.token)
        params = self.parameters
        name = claims.get(params.name_claim_type) or claims.get("sub")
        return Principal(
            name=str(name) if name is not None else None,
            roles=_roles_from_claim(claims.get(params.role_claim_type)),
            claims=claims,
            token=resolved.token if params.save_token else None,
            source=resolved.source,
        )


def current_principal() -> Optional[Principal]:
    return getattr(g, "principal", None)


def configure_authentication(app: Flask, authenticator: JwtBearerAuthenticator) -> None:
    """Authenticate every request; rejecting anonymous callers is left to authorization."""

    app.extensions["authenticator"] = authenticator

    @app.before_request
    def _authenticate_request():
        g.principal = None
        g.authentication_error = None
        g.token_source = TokenSource.NONE.value
        metrics = app.extensions.get("metrics")

        resolved = authenticator.extract(request)
        try:
            principal = authenticator.authenticate_token(resolved)
        except AuthenticationError as exc:
            g.authentication_error = str(exc)
            g.token_source = resolved.source.value
            app.logger.info(
                "Bearer token rejected",
                extra={"reason": str(exc), "token_source": g.token_source, "path": request.path},
            )
            if metrics:
                metrics.record_authentication(source=g.token_source, outcome="failed")
            return None

        if principal is None:
            if metrics:
                metrics.record_authentication(source=TokenSource.NONE.value, outcome="anonymous")
            return None

        g.principal = principal
        g.token_source = principal.source.value
        g.jwt_user_id = principal.name
        if principal.token is not None:
            g.access_token = principal.token
        if metrics:
            metrics.record_authentication(source=g.token_source, outcome="succeeded")
        return None
