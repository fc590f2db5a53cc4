"""CCG Web API application factory."""
from pathlib import Path
from typing import Any, Mapping

import requests
from flask import Flask
from flask_cors import CORS
from requests.adapters import HTTPAdapter

from .middleware.compression import configure_compression
from .middleware.errors import register_error_handlers
from .middleware.logging import setup_request_logging
from .middleware.response_cache import configure_response_caching
from .middleware.transport import configure_transport_security
from .observability import configure_metrics, configure_structured_logging, configure_tracing
from .routes import register_blueprints
from .security.authentication import JwtBearerAuthenticator, configure_authentication
from .security.authorization import configure_authorization
from .security.jwt_config import TokenValidationParameters, build_jwt_settings
from .security.token_source import DEFAULT_HUB_PATH_PREFIX, DEFAULT_TOKEN_NAME
from .security.tokens import JwtTokenIssuer
from .utils.config import (
    EnvironmentSettings,
    load_environment_settings,
    log_configuration_snapshot,
    parse_bool,
    split_env_list,
)
from .utils.json import LoopSafeJSONProvider
from .utils.lifecycle import install_shutdown_handlers, register_shutdown_task
from .utils.openapi import generate_openapi_document

_NON_PRODUCTION_ENVIRONMENTS = {"development", "dev", "local", "testing", "test"}


def _load_config(app: Flask, settings: EnvironmentSettings) -> None:
    def _get_env(key: str, default: str | None = None) -> str | None:
        value = settings.get(key)
        if value is None:
            return default
        return value

    jwt_section = settings.get_section("jwtTokenConfig")

    app.config["APP_ENV"] = settings.name
    app.config["CONFIG_ENV_FILES"] = settings.loaded_files
    app.config["SOLUTION_NAME"] = _get_env("SOLUTION_NAME", "CCG") or "CCG"
    app.config["API_VERSION"] = _get_env("API_VERSION", "v1") or "v1"
    app.config["SWAGGER_ROUTE_PREFIX"] = _get_env("SWAGGER_ROUTE_PREFIX", "swagger") or "swagger"
    app.config["OPENAPI_OUTPUT_PATH"] = _get_env("OPENAPI_OUTPUT_PATH", "") or ""

    app.config["JWT_SECRET"] = jwt_section.get("SECRET") or _get_env("JWT_SECRET", "") or ""
    app.config["JWT_ISSUER"] = jwt_section.get("ISSUER") or _get_env("JWT_ISSUER", "") or ""
    app.config["JWT_AUDIENCE"] = jwt_section.get("AUDIENCE") or _get_env("JWT_AUDIENCE", "") or ""
    app.config["JWT_ACCESS_TOKEN_EXPIRATION"] = jwt_section.get(
        "ACCESSTOKENEXPIRATION"
    ) or _get_env("JWT_ACCESS_TOKEN_EXPIRATION")
    app.config["JWT_REFRESH_TOKEN_EXPIRATION"] = jwt_section.get(
        "REFRESHTOKENEXPIRATION"
    ) or _get_env("JWT_REFRESH_TOKEN_EXPIRATION")
    app.config["JWT_VALIDATE_ISSUER"] = parse_bool(_get_env("JWT_VALIDATE_ISSUER"), True)
    app.config["JWT_VALIDATE_AUDIENCE"] = parse_bool(_get_env("JWT_VALIDATE_AUDIENCE"), False)
    app.config["JWT_VALIDATE_LIFETIME"] = parse_bool(_get_env("JWT_VALIDATE_LIFETIME"), False)
    app.config["JWT_CLOCK_SKEW_SECONDS"] = _get_env("JWT_CLOCK_SKEW_SECONDS", "60")
    app.config["JWT_ROLE_CLAIM"] = _get_env("JWT_ROLE_CLAIM", "role") or "role"
    app.config["JWT_NAME_CLAIM"] = _get_env("JWT_NAME_CLAIM", "nameid") or "nameid"
    app.config["ACCESS_TOKEN_NAME"] = _get_env("ACCESS_TOKEN_NAME", DEFAULT_TOKEN_NAME) or DEFAULT_TOKEN_NAME
    app.config["HUB_PATH_PREFIX"] = _get_env("HUB_PATH_PREFIX", DEFAULT_HUB_PATH_PREFIX) or DEFAULT_HUB_PATH_PREFIX
    app.config["HUB_NAMES"] = tuple(split_env_list(_get_env("HUB_NAMES", "")))

    app.config["CORS_ORIGINS"] = tuple(split_env_list(_get_env("CORS_ORIGINS", "")))

    app.config["CACHE_ENABLED"] = parse_bool(_get_env("CACHE_ENABLED"), True)
    app.config["CACHE_BACKEND"] = _get_env("CACHE_BACKEND", "memory") or "memory"
    app.config["CACHE_REDIS_URL"] = _get_env("CACHE_REDIS_URL", "") or ""
    app.config["CACHE_REDIS_NAMESPACE"] = _get_env("CACHE_REDIS_NAMESPACE", "ccg-webapi") or "ccg-webapi"
    app.config["CACHE_MAX_BODY_SIZE"] = int(_get_env("CACHE_MAX_BODY_SIZE", "1048576") or "1048576")
    app.config["CACHE_MAX_ENTRIES"] = int(_get_env("CACHE_MAX_ENTRIES", "10000") or "10000")

    app.config["COMPRESSION_ENABLED"] = parse_bool(_get_env("COMPRESSION_ENABLED"), True)
    app.config["COMPRESSION_MIN_SIZE"] = int(_get_env("COMPRESSION_MIN_SIZE", "512") or "512")
    app.config["COMPRESSION_GZIP_LEVEL"] = int(_get_env("COMPRESSION_GZIP_LEVEL", "6") or "6")
    app.config["COMPRESSION_BR_QUALITY"] = int(_get_env("COMPRESSION_BR_QUALITY", "5") or "5")

    # Transport security defaults depend on the environment, so they are only
    # set here when explicitly configured.
    for key in ("HTTPS_REDIRECT", "HSTS_ENABLED"):
        raw = _get_env(key)
        if raw is not None:
            app.config[key] = parse_bool(raw)
    app.config["HTTPS_PORT"] = _get_env("HTTPS_PORT")
    app.config["HSTS_MAX_AGE"] = int(_get_env("HSTS_MAX_AGE", str(30 * 24 * 3600)) or "2592000")
    app.config["HSTS_INCLUDE_SUBDOMAINS"] = parse_bool(_get_env("HSTS_INCLUDE_SUBDOMAINS"), False)
    app.config["HSTS_PRELOAD"] = parse_bool(_get_env("HSTS_PRELOAD"), False)

    app.config["HTTP_CLIENT_POOL_CONNECTIONS"] = int(_get_env("HTTP_CLIENT_POOL_CONNECTIONS", "10") or "10")
    app.config["HTTP_CLIENT_POOL_MAXSIZE"] = int(_get_env("HTTP_CLIENT_POOL_MAXSIZE", "10") or "10")

    app.config["LOG_LEVEL"] = (_get_env("LOG_LEVEL", "INFO") or "INFO").upper()
    app.config["LOGGER_NAME"] = _get_env("LOGGER_NAME", "ccg.webapi") or "ccg.webapi"
    app.config["TRACING_ENABLED"] = parse_bool(_get_env("TRACING_ENABLED"), True)
    app.config["OTEL_EXPORTER"] = _get_env("OTEL_EXPORTER", "none") or "none"
    app.config["OTEL_EXPORTER_OTLP_ENDPOINT"] = _get_env("OTEL_EXPORTER_OTLP_ENDPOINT", "") or ""
    app.config["OTEL_EXPORTER_OTLP_HEADERS"] = _get_env("OTEL_EXPORTER_OTLP_HEADERS", "") or ""
    app.config["OTEL_SERVICE_NAME"] = _get_env("OTEL_SERVICE_NAME", "ccg-webapi") or "ccg-webapi"
    app.config["APP_PORT"] = int(_get_env("APP_PORT") or _get_env("PORT") or "5000")


def _apply_environment_defaults(app: Flask) -> None:
    relaxed = app.testing or str(app.config["APP_ENV"]).lower() in _NON_PRODUCTION_ENVIRONMENTS
    app.config.setdefault("HTTPS_REDIRECT", not relaxed)
    app.config.setdefault("HSTS_ENABLED", not relaxed)


def _configure_http_client(app: Flask) -> requests.Session:
    """Initialise the pooled HTTP session shared by controllers."""

    session = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=int(app.config.get("HTTP_CLIENT_POOL_CONNECTIONS", 10)),
        pool_maxsize=int(app.config.get("HTTP_CLIENT_POOL_MAXSIZE", 10)),
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    app.extensions["http_client"] = session
    return session


def _cors_configuration(app: Flask) -> dict[str, Any]:
    """Build the ``AllowAll`` CORS policy, optionally narrowed to ``CORS_ORIGINS``."""

    origins = list(app.config.get("CORS_ORIGINS", ()))
    return {
        "origins": origins if origins else "*",
        "methods": ["GET", "HEAD", "POST", "OPTIONS", "PUT", "PATCH", "DELETE"],
        "allow_headers": "*",
        "expose_headers": ["X-Request-ID"],
        "supports_credentials": False,
    }


def _warn_on_relaxed_validation(app: Flask, parameters: TokenValidationParameters) -> None:
    disabled = []
    if not parameters.validate_audience:
        disabled.append("audience")
    if not parameters.validate_lifetime:
        disabled.append("lifetime")
    if disabled:
        app.logger.warning(
            "JWT validation checks disabled: %s",
            ", ".join(disabled),
            extra={"disabled_checks": disabled},
        )


def _configure_security(app: Flask) -> None:
    token_config, parameters = build_jwt_settings(app.config)
    app.extensions["jwt_token_config"] = token_config
    app.extensions["token_validation_parameters"] = parameters
    app.extensions["token_issuer"] = JwtTokenIssuer(token_config, parameters)
    _warn_on_relaxed_validation(app, parameters)

    authenticator = JwtBearerAuthenticator(
        token_config,
        parameters,
        token_name=app.config["ACCESS_TOKEN_NAME"],
        hub_prefix=app.config["HUB_PATH_PREFIX"],
    )
    configure_authentication(app, authenticator)
    configure_authorization(app)


def create_app(config_overrides: Mapping[str, Any] | None = None) -> Flask:
    """Create and configure the Flask application."""

    project_root = Path(__file__).resolve().parent.parent
    settings = load_environment_settings(project_root=project_root)
    app = Flask(__name__)
    app.json = LoopSafeJSONProvider(app)

    _load_config(app, settings)
    if config_overrides:
        app.config.update(config_overrides)
    _apply_environment_defaults(app)

    configure_structured_logging(app)
    install_shutdown_handlers(app, install_signals=not app.testing)
    configure_metrics(app)

    log_configuration_snapshot(
        logger=app.logger,
        settings=settings,
        config=app.config,
        keys_of_interest=[
            "APP_ENV",
            "CONFIG_ENV_FILES",
            "SOLUTION_NAME",
            "API_VERSION",
            "JWT_ISSUER",
            "JWT_AUDIENCE",
            "JWT_SECRET",
            "JWT_VALIDATE_AUDIENCE",
            "JWT_VALIDATE_LIFETIME",
            "HUB_PATH_PREFIX",
            "CORS_ORIGINS",
            "CACHE_ENABLED",
            "CACHE_BACKEND",
            "COMPRESSION_ENABLED",
            "HTTPS_REDIRECT",
            "HSTS_ENABLED",
            "APP_PORT",
        ],
    )

    # after_request hooks run in reverse registration order: cache storage
    # sees the uncompressed body, and the access log sees the final response.
    setup_request_logging(app)
    CORS(app, **_cors_configuration(app))
    configure_transport_security(app)
    configure_compression(app)
    _configure_security(app)
    configure_response_caching(app)
    register_error_handlers(app)

    session = _configure_http_client(app)
    register_shutdown_task(app, "http_client", session.close)

    register_blueprints(app)
    if app.config.get("TRACING_ENABLED", True):
        configure_tracing(app)
    generate_openapi_document(app)

    return app
