"""Bearer token extraction from the transport locations a client may use.

Browsers opening persistent connections to hub endpoints cannot attach custom
headers, so those endpoints accept the token in the query string. Everywhere
else a query-string token is ignored to keep credentials out of URLs and
access logs. The lookup order is fixed: hub query parameter, then the
``access_token`` header, then the ``access_token`` cookie.

Header names are matched the way WSGI presents them: case-insensitively, with
``-`` and ``_`` equivalent. ``Access-Token`` and ``access_token`` both arrive
as ``HTTP_ACCESS_TOKEN`` and are treated as the same header.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

__all__ = [
    "DEFAULT_HUB_PATH_PREFIX",
    "DEFAULT_TOKEN_NAME",
    "ResolvedToken",
    "TokenSource",
    "is_hub_path",
    "resolve_token",
    "resolve_token_source",
]

DEFAULT_TOKEN_NAME = "access_token"
DEFAULT_HUB_PATH_PREFIX = "/hubs/"


class TokenSource(str, Enum):
    """Where a resolved credential was found."""

    QUERY = "query"
    HEADER = "header"
    COOKIE = "cookie"
    # Standard ``Authorization: Bearer`` header, consulted by the authenticator
    # only after the resolver comes back empty.
    AUTHORIZATION = "authorization"
    NONE = "none"


@dataclass(frozen=True)
class ResolvedToken:
    token: Optional[str]
    source: TokenSource

    def __bool__(self) -> bool:
        return bool(self.token)


def is_hub_path(path: str, prefix: str = DEFAULT_HUB_PATH_PREFIX) -> bool:
    """Return ``True`` when ``path`` lives under the hub prefix (case-insensitive)."""

    if not path or not prefix:
        return False
    return path.lower().startswith(prefix.lower())


def _first_value(mapping: Mapping[str, Any], name: str) -> Optional[str]:
    value = mapping.get(name)
    if value is None:
        return None
    return str(value)


def resolve_token_source(
    request: Any,
    *,
    name: str = DEFAULT_TOKEN_NAME,
    hub_prefix: str = DEFAULT_HUB_PATH_PREFIX,
) -> ResolvedToken:
    """Resolve the bearer token for ``request`` and report where it came from.

    ``request`` only needs ``args``, ``headers``, ``cookies`` and ``path``
    attributes, which matches :class:`flask.Request`.
    """

    query_token = _first_value(request.args, name)
    if query_token and is_hub_path(request.path, hub_prefix):
        return ResolvedToken(query_token, TokenSource.QUERY)

    header_token = _first_value(request.headers, name)
    if header_token:
        return ResolvedToken(header_token, TokenSource.HEADER)

    cookie_token = _first_value(request.cookies, name)
    if cookie_token is not None:
        return ResolvedToken(cookie_token, TokenSource.COOKIE)
    return ResolvedToken(None, TokenSource.NONE)


def resolve_token(
    request: Any,
    *,
    name: str = DEFAULT_TOKEN_NAME,
    hub_prefix: str = DEFAULT_HUB_PATH_PREFIX,
) -> Optional[str]:
    """Return the bearer token for ``request``, or ``None`` when absent."""

    return resolve_token_source(request, name=name, hub_prefix=hub_prefix).token
