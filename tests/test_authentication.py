from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from flask import Request
from werkzeug.test import EnvironBuilder

from ccg_webapi.app import create_app
from ccg_webapi.security.authentication import AuthenticationError, JwtBearerAuthenticator
from ccg_webapi.security.jwt_config import (
    JwtConfigurationError,
    JwtTokenConfig,
    TokenValidationParameters,
    build_jwt_settings,
)
from ccg_webapi.security.token_source import TokenSource
from ccg_webapi.security.tokens import JwtTokenIssuer

SECRET = "ccg-test-secret-0123456789abcdef0123456789abcdef0123456789abcdef"
ISSUER = "ccg-tests"


@pytest.fixture
def token_config():
    return JwtTokenConfig(secret=SECRET, issuer=ISSUER, audience="ccg-clients")


@pytest.fixture
def authenticator(token_config):
    return JwtBearerAuthenticator(token_config, TokenValidationParameters())


@pytest.fixture
def issuer(token_config):
    return JwtTokenIssuer(token_config)


@pytest.fixture
def app():
    app = create_app(
        {
            "TESTING": True,
            "JWT_SECRET": SECRET,
            "JWT_ISSUER": ISSUER,
            "TRACING_ENABLED": False,
            "CACHE_ENABLED": False,
        }
    )
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def _request(path="/api/identity/me", query=None, headers=None):
    builder = EnvironBuilder(method="GET", path=path, query_string=query or {}, headers=headers or {})
    return Request(builder.get_environ())


def test_authenticator_accepts_token_from_custom_header(authenticator, issuer):
    token = issuer.issue("alice", roles=["Admin"])
    principal = authenticator.authenticate(_request(headers={"access_token": token}))

    assert principal is not None
    assert principal.name == "alice"
    assert principal.roles == ("Admin",)
    assert principal.source is TokenSource.HEADER
    assert principal.token == token


def test_authenticator_falls_back_to_authorization_header(authenticator, issuer):
    token = issuer.issue("bob")
    resolved = authenticator.extract(_request(headers={"Authorization": f"Bearer {token}"}))

    assert resolved.token == token
    assert resolved.source is TokenSource.AUTHORIZATION


def test_custom_header_takes_precedence_over_authorization(authenticator, issuer):
    header_token = issuer.issue("header-user")
    bearer_token = issuer.issue("bearer-user")
    principal = authenticator.authenticate(
        _request(headers={"access_token": header_token, "Authorization": f"Bearer {bearer_token}"})
    )

    assert principal.name == "header-user"


def test_authenticator_returns_none_without_token(authenticator):
    assert authenticator.authenticate(_request()) is None


def test_authenticator_rejects_bad_signature(authenticator):
    forged = jwt.encode({"sub": "mallory", "iss": ISSUER}, "another-secret-that-is-long-enough!!", algorithm="HS256")

    with pytest.raises(AuthenticationError):
        authenticator.authenticate(_request(headers={"access_token": forged}))


def test_authenticator_rejects_wrong_issuer(authenticator):
    token = jwt.encode({"sub": "eve", "iss": "someone-else"}, SECRET.encode("ascii"), algorithm="HS256")

    with pytest.raises(AuthenticationError):
        authenticator.authenticate(_request(headers={"access_token": token}))


def test_expired_token_accepted_while_lifetime_validation_disabled(authenticator, issuer):
    issued = datetime.now(timezone.utc) - timedelta(days=2)
    token = issuer.issue("carol", lifetime=timedelta(minutes=5), now=issued)

    principal = authenticator.authenticate(_request(headers={"access_token": token}))

    assert principal.name == "carol"


def test_expired_token_rejected_when_lifetime_validation_enabled(token_config, issuer):
    strict = JwtBearerAuthenticator(token_config, TokenValidationParameters(validate_lifetime=True))
    issued = datetime.now(timezone.utc) - timedelta(days=2)
    token = issuer.issue("carol", lifetime=timedelta(minutes=5), now=issued)

    with pytest.raises(AuthenticationError):
        strict.authenticate(_request(headers={"access_token": token}))


def test_clock_skew_tolerates_recent_expiry(token_config, issuer):
    strict = JwtBearerAuthenticator(token_config, TokenValidationParameters(validate_lifetime=True))
    issued = datetime.now(timezone.utc) - timedelta(minutes=5, seconds=30)
    token = issuer.issue("dave", lifetime=timedelta(minutes=5), now=issued)

    assert strict.authenticate(_request(headers={"access_token": token})).name == "dave"


def test_audience_ignored_unless_enabled(token_config):
    token = jwt.encode(
        {"sub": "erin", "iss": ISSUER, "aud": "unrelated"}, SECRET.encode("ascii"), algorithm="HS256"
    )
    lenient = JwtBearerAuthenticator(token_config, TokenValidationParameters())
    strict = JwtBearerAuthenticator(token_config, TokenValidationParameters(validate_audience=True))

    assert lenient.authenticate(_request(headers={"access_token": token})).name == "erin"
    with pytest.raises(AuthenticationError):
        strict.authenticate(_request(headers={"access_token": token}))


def test_token_config_requires_ascii_secret():
    with pytest.raises(JwtConfigurationError):
        JwtTokenConfig(secret="")
    with pytest.raises(JwtConfigurationError):
        JwtTokenConfig(secret="sécret")


def test_token_config_repr_masks_secret(token_config):
    assert SECRET not in repr(token_config)


def test_build_jwt_settings_defaults():
    config, parameters = build_jwt_settings({"JWT_SECRET": SECRET})

    assert config.access_token_expiration == 60
    assert parameters.validate_issuer is True
    assert parameters.validate_audience is False
    assert parameters.validate_lifetime is False
    assert parameters.clock_skew == timedelta(minutes=1)


def test_build_jwt_settings_rejects_malformed_integers():
    with pytest.raises(JwtConfigurationError):
        build_jwt_settings({"JWT_SECRET": SECRET, "JWT_CLOCK_SKEW_SECONDS": "soon"})


def test_create_app_without_secret_fails(monkeypatch):
    monkeypatch.delenv("JWT_SECRET", raising=False)
    monkeypatch.delenv("JWTTOKENCONFIG__SECRET", raising=False)

    with pytest.raises(JwtConfigurationError):
        create_app({"TESTING": True, "TRACING_ENABLED": False})


def test_jwt_section_loaded_from_hierarchical_environment(monkeypatch):
    monkeypatch.delenv("JWT_SECRET", raising=False)
    monkeypatch.setenv("JWTTOKENCONFIG__SECRET", SECRET)
    monkeypatch.setenv("JWTTOKENCONFIG__ISSUER", "section-issuer")
    monkeypatch.setenv("JWTTOKENCONFIG__ACCESSTOKENEXPIRATION", "15")

    app = create_app({"TESTING": True, "TRACING_ENABLED": False})
    config = app.extensions["jwt_token_config"]

    assert config.secret == SECRET
    assert config.issuer == "section-issuer"
    assert config.access_token_expiration == 15


def test_request_with_query_token_on_hub_is_authenticated(app, client):
    token = app.extensions["token_issuer"].issue("frank")

    response = client.post(f"/hubs/chat/negotiate?access_token={token}")

    assert response.status_code == 200
    assert response.json["user"] == "frank"


def test_query_token_outside_hubs_is_ignored(app, client):
    token = app.extensions["token_issuer"].issue("frank")

    response = client.get(f"/api/identity/me?access_token={token}")

    assert response.status_code == 401


def test_cookie_token_authenticates(app, client):
    token = app.extensions["token_issuer"].issue("grace")
    client.set_cookie("access_token", token)

    response = client.get("/api/identity/me")

    assert response.status_code == 200
    assert response.json["token_source"] == "cookie"


def test_authentication_outcomes_are_counted(app, client):
    token = app.extensions["token_issuer"].issue("heidi")
    client.get("/api/identity/me", headers={"access_token": token})
    client.get("/api/identity/me", headers={"access_token": "not-a-jwt"})

    metrics = client.get("/metrics").get_data(as_text=True)

    assert 'ccg_webapi_authentication_attempts_total{source="header",outcome="succeeded"} 1.0' in metrics
    assert 'ccg_webapi_authentication_attempts_total{source="header",outcome="failed"} 1.0' in metrics
