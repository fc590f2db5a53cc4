"""Authentication and authorization for the CCG Web API host."""

from .authentication import (
    AuthenticationError,
    JwtBearerAuthenticator,
    Principal,
    configure_authentication,
    current_principal,
)
from .authorization import (
    ADMINISTRATOR_POLICY,
    AuthorizationPolicy,
    PolicyRegistry,
    authorize,
    configure_authorization,
)
from .jwt_config import JwtTokenConfig, TokenValidationParameters, build_jwt_settings
from .token_source import ResolvedToken, TokenSource, resolve_token, resolve_token_source
from .tokens import JwtTokenIssuer

__all__ = [
    "ADMINISTRATOR_POLICY",
    "AuthenticationError",
    "AuthorizationPolicy",
    "JwtBearerAuthenticator",
    "JwtTokenConfig",
    "JwtTokenIssuer",
    "PolicyRegistry",
    "Principal",
    "ResolvedToken",
    "TokenSource",
    "TokenValidationParameters",
    "authorize",
    "build_jwt_settings",
    "configure_authentication",
    "configure_authorization",
    "current_principal",
    "resolve_token",
    "resolve_token_source",
]
