"""Tests for bearer token resolution from query, header and cookie."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Dict

import pytest
from flask import Request
from werkzeug.test import EnvironBuilder

from ccg_webapi.security.token_source import (
    ResolvedToken,
    TokenSource,
    is_hub_path,
    resolve_token,
    resolve_token_source,
)


def build_request(
    path: str,
    *,
    query: Dict[str, str] | None = None,
    headers: Dict[str, str] | None = None,
    cookies: Dict[str, str] | None = None,
) -> Request:
    request_headers = dict(headers or {})
    if cookies:
        request_headers["Cookie"] = "; ".join(f"{key}={value}" for key, value in cookies.items())
    builder = EnvironBuilder(method="GET", path=path, query_string=query or {}, headers=request_headers)
    return Request(builder.get_environ())


def test_hub_query_token_wins_over_header_and_cookie():
    request = build_request(
        "/hubs/chat",
        query={"access_token": "QABC"},
        headers={"access_token": "HXYZ"},
        cookies={"access_token": "CXYZ"},
    )
    assert resolve_token_source(request) == ResolvedToken("QABC", TokenSource.QUERY)


def test_query_token_ignored_outside_hub_paths():
    request = build_request(
        "/api/orders",
        query={"access_token": "QABC"},
        headers={"access_token": "HXYZ"},
    )
    assert resolve_token(request) == "HXYZ"


def test_query_token_alone_outside_hub_paths_resolves_nothing():
    request = build_request("/api/orders", query={"access_token": "QABC"})
    resolved = resolve_token_source(request)
    assert resolved.token is None
    assert resolved.source is TokenSource.NONE


def test_cookie_used_when_no_query_or_header_token():
    request = build_request("/api/orders", cookies={"access_token": "CXYZ"})
    assert resolve_token_source(request) == ResolvedToken("CXYZ", TokenSource.COOKIE)


def test_no_token_anywhere_resolves_to_none():
    request = build_request("/api/orders")
    assert resolve_token(request) is None
    assert not resolve_token_source(request)


def test_empty_hub_query_falls_back_to_header():
    request = build_request(
        "/hubs/chat",
        query={"access_token": ""},
        headers={"access_token": "HXYZ"},
    )
    assert resolve_token_source(request) == ResolvedToken("HXYZ", TokenSource.HEADER)


def test_empty_header_falls_back_to_cookie():
    request = build_request(
        "/api/orders",
        headers={"access_token": ""},
        cookies={"access_token": "CXYZ"},
    )
    assert resolve_token(request) == "CXYZ"


def test_empty_cookie_is_returned_as_is():
    request = build_request("/api/orders", cookies={"access_token": ""})
    resolved = resolve_token_source(request)
    assert resolved.token == ""
    assert resolved.source is TokenSource.COOKIE
    assert not resolved


def test_header_beats_cookie_on_hub_path_without_query():
    request = build_request(
        "/hubs/chat",
        headers={"access_token": "HXYZ"},
        cookies={"access_token": "CXYZ"},
    )
    assert resolve_token(request) == "HXYZ"


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("/hubs/chat", True),
        ("/HUBS/Chat", True),
        ("/hubs/", True),
        ("/hubs", False),
        ("/hubsx/chat", False),
        ("/api/hubs/chat", False),
        ("", False),
    ],
)
def test_is_hub_path(path, expected):
    assert is_hub_path(path) is expected


def test_custom_token_name_and_hub_prefix():
    request = build_request(
        "/realtime/feed",
        query={"token": "QABC"},
        headers={"access_token": "HXYZ"},
    )
    assert resolve_token(request, name="token", hub_prefix="/realtime/") == "QABC"


def test_resolver_accepts_any_request_like_object():
    request = SimpleNamespace(
        path="/hubs/notifications",
        args={"access_token": "QABC"},
        headers={},
        cookies={},
    )
    assert resolve_token(request) == "QABC"


def test_dashed_header_spelling_resolves_as_header():
    request = build_request(
        "/api/identity/me",
        headers={"Access-Token": "HXYZ"},
        cookies={"access_token": "CXYZ"},
    )
    resolved = resolve_token_source(request)

    assert resolved.token == "HXYZ"
    assert resolved.source is TokenSource.HEADER
