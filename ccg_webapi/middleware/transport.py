"""HTTPS redirection and HTTP Strict Transport Security."""

from __future__ import annotations

from urllib.parse import urlsplit

from flask import Flask, redirect, request

__all__ = ["configure_transport_security", "is_secure_request"]

_LOCAL_HOSTS = {"localhost", "127.0.0.1", "::1"}


def is_secure_request() -> bool:
    forwarded = request.headers.get("X-Forwarded-Proto", "")
    if forwarded:
        return forwarded.split(",")[0].strip().lower() == "https"
    return request.is_secure


def _hostname() -> str:
    return urlsplit(f"//{request.host}").hostname or ""


def _hsts_value(max_age: int, include_subdomains: bool, preload: bool) -> str:
    value = f"max-age={max_age}"
    if include_subdomains:
        value += "; includeSubDomains"
    if preload:
        value += "; preload"
    return value


def configure_transport_security(app: Flask) -> None:
    """Redirect plain HTTP to HTTPS and emit HSTS on secure responses."""

    redirect_enabled = bool(app.config.get("HTTPS_REDIRECT", False))
    https_port = app.config.get("HTTPS_PORT")
    hsts_enabled = bool(app.config.get("HSTS_ENABLED", False))
    hsts_header = _hsts_value(
        int(app.config.get("HSTS_MAX_AGE", 30 * 24 * 3600)),
        bool(app.config.get("HSTS_INCLUDE_SUBDOMAINS", False)),
        bool(app.config.get("HSTS_PRELOAD", False)),
    )

    if redirect_enabled:

        @app.before_request
        def _redirect_to_https():
            if is_secure_request():
                return None
            host = _hostname()
            if ":" in host:
                host = f"[{host}]"
            if https_port and int(https_port) != 443:
                host = f"{host}:{https_port}"
            target = f"https://{host}{request.full_path.rstrip('?')}"
            return redirect(target, code=307)

    if hsts_enabled:

        @app.after_request
        def _apply_hsts(response):
            if not is_secure_request():
                return response
            if _hostname() in _LOCAL_HOSTS:
                return response
            response.headers.setdefault("Strict-Transport-Security", hsts_header)
            return response
