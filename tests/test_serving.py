"""Requests sent over a real socket to the development server."""

from __future__ import annotations

import threading

import pytest
import requests
from werkzeug.serving import make_server

from ccg_webapi.app import create_app
from ccg_webapi.utils.serving import build_request_handler

SECRET = "ccg-test-secret-0123456789abcdef0123456789abcdef0123456789abcdef"


@pytest.fixture
def app():
    return create_app(
        {
            "TESTING": True,
            "JWT_SECRET": SECRET,
            "JWT_ISSUER": "ccg-tests",
            "TRACING_ENABLED": False,
            "CACHE_ENABLED": False,
        }
    )


@pytest.fixture
def base_url(app):
    server = make_server(
        "127.0.0.1",
        0,
        app,
        request_handler=build_request_handler([app.config["ACCESS_TOKEN_NAME"]]),
    )
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_port}"
    server.shutdown()
    thread.join(timeout=5)


def test_underscore_header_reaches_application(app, base_url):
    token = app.extensions["token_issuer"].issue("heidi", roles=["User"])

    response = requests.get(
        f"{base_url}/api/identity/me", headers={"access_token": token}, timeout=5
    )

    assert response.status_code == 200
    assert response.json()["name"] == "heidi"
    assert response.json()["token_source"] == "header"


def test_underscore_header_replaces_dashed_spelling(app, base_url):
    token = app.extensions["token_issuer"].issue("ivan")

    response = requests.get(
        f"{base_url}/api/identity/me",
        headers={"Access-Token": "not-a-jwt", "access_token": token},
        timeout=5,
    )

    assert response.status_code == 200
    assert response.json()["name"] == "ivan"


def test_other_underscore_headers_are_still_dropped(base_url):
    response = requests.get(
        f"{base_url}/api/identity/me", headers={"bearer_token": "anything"}, timeout=5
    )

    assert response.status_code == 401
