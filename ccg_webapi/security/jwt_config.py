"""Immutable JWT settings shared by the authenticator and the token issuer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Mapping

__all__ = [
    "JwtConfigurationError",
    "JwtTokenConfig",
    "TokenValidationParameters",
    "build_jwt_settings",
]


class JwtConfigurationError(RuntimeError):
    """Raised when the JWT configuration is missing or malformed."""


@dataclass(frozen=True)
class JwtTokenConfig:
    """Values read from the ``jwtTokenConfig`` configuration section."""

    secret: str
    issuer: str = ""
    audience: str = ""
    access_token_expiration: int = 60
    refresh_token_expiration: int = 1440

    def __post_init__(self) -> None:
        if not self.secret:
            raise JwtConfigurationError("jwtTokenConfig.Secret must be configured")
        try:
            self.secret.encode("ascii")
        except UnicodeEncodeError as exc:
            raise JwtConfigurationError("jwtTokenConfig.Secret must be ASCII") from exc

    @property
    def signing_key(self) -> bytes:
        return self.secret.encode("ascii")

    @property
    def access_token_lifetime(self) -> timedelta:
        return timedelta(minutes=self.access_token_expiration)

    @property
    def refresh_token_lifetime(self) -> timedelta:
        return timedelta(minutes=self.refresh_token_expiration)

    def __repr__(self) -> str:
        return (
            f"JwtTokenConfig(secret='***', issuer={self.issuer!r}, "
            f"audience={self.audience!r})"
        )


@dataclass(frozen=True)
class TokenValidationParameters:
    """Checks applied to inbound bearer tokens.

    Audience and lifetime validation default to off to match the deployed
    behaviour of the service; both are exposed so operators can turn them on.
    """

    validate_issuer: bool = True
    validate_issuer_signing_key: bool = True
    validate_audience: bool = False
    validate_lifetime: bool = False
    clock_skew: timedelta = timedelta(minutes=1)
    algorithms: tuple[str, ...] = ("HS256", "HS384", "HS512")
    role_claim_type: str = "role"
    name_claim_type: str = "nameid"
    save_token: bool = True

    def decode_options(self) -> dict[str, Any]:
        return {
            "verify_signature": self.validate_issuer_signing_key,
            "verify_aud": self.validate_audience,
            "verify_iss": self.validate_issuer,
            "verify_exp": self.validate_lifetime,
            "verify_nbf": self.validate_lifetime,
            "verify_iat": False,
        }


def _as_int(value: Any, key: str, default: int) -> int:
    if value in (None, ""):
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise JwtConfigurationError(f"{key} must be an integer, got {value!r}") from exc


def build_jwt_settings(
    config: Mapping[str, Any],
) -> tuple[JwtTokenConfig, TokenValidationParameters]:
    """Build the JWT settings pair from a Flask-style config mapping."""

    token_config = JwtTokenConfig(
        secret=str(config.get("JWT_SECRET") or ""),
        issuer=str(config.get("JWT_ISSUER") or ""),
        audience=str(config.get("JWT_AUDIENCE") or ""),
        access_token_expiration=_as_int(
            config.get("JWT_ACCESS_TOKEN_EXPIRATION"), "JWT_ACCESS_TOKEN_EXPIRATION", 60
        ),
        refresh_token_expiration=_as_int(
            config.get("JWT_REFRESH_TOKEN_EXPIRATION"), "JWT_REFRESH_TOKEN_EXPIRATION", 1440
        ),
    )
    parameters = TokenValidationParameters(
        validate_issuer=bool(config.get("JWT_VALIDATE_ISSUER", True)),
        validate_audience=bool(config.get("JWT_VALIDATE_AUDIENCE", False)),
        validate_lifetime=bool(config.get("JWT_VALIDATE_LIFETIME", False)),
        clock_skew=timedelta(
            seconds=_as_int(config.get("JWT_CLOCK_SKEW_SECONDS"), "JWT_CLOCK_SKEW_SECONDS", 60)
        ),
        role_claim_type=str(config.get("JWT_ROLE_CLAIM") or "role"),
        name_claim_type=str(config.get("JWT_NAME_CLAIM") or "nameid"),
        save_token=bool(config.get("JWT_SAVE_TOKEN", True)),
    )
    return token_config, parameters
