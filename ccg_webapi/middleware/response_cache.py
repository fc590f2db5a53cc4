"""Server-side response caching driven by the response's own cache headers.

Only ``GET``/``HEAD`` responses with status 200 that are explicitly marked
``Cache-Control: public`` with a ``max-age`` (or ``s-maxage``) are stored.
Requests carrying credentials never read from or write to the cache.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Iterable
from urllib.parse import urlencode

from flask import Flask, Response, g, request

from ..performance.cache import Cache, InMemoryCacheBackend, RedisCacheBackend

__all__ = ["CachedResponse", "configure_response_caching", "build_cache"]

_CACHEABLE_METHODS = {"GET", "HEAD"}
# Headers recomputed per response, never replayed from the cache.
_SKIPPED_HEADERS = {"content-length", "date", "age", "x-request-id", "set-cookie"}


@dataclass(frozen=True)
class CachedResponse:
    status_code: int
    headers: tuple[tuple[str, str], ...]
    body: bytes
    stored_at: float


def build_cache(app: Flask) -> Cache:
    """Create the cache backend selected by ``CACHE_BACKEND``."""

    backend_name = str(app.config.get("CACHE_BACKEND", "memory")).lower()
    backend: InMemoryCacheBackend | RedisCacheBackend
    if backend_name == "redis":
        redis_url = app.config.get("CACHE_REDIS_URL", "")
        namespace = app.config.get("CACHE_REDIS_NAMESPACE", "ccg-webapi")
        if redis_url:
            try:
                backend = RedisCacheBackend(redis_url, key_namespace=namespace)
            except Exception as exc:  # pragma: no cover - fallback path
                app.logger.warning(
                    "Redis cache backend unavailable (%s), falling back to in-memory", exc
                )
                backend = InMemoryCacheBackend()
        else:
            app.logger.warning(
                "CACHE_BACKEND is set to redis but CACHE_REDIS_URL is missing; using in-memory cache"
            )
            backend = InMemoryCacheBackend()
    else:
        backend = InMemoryCacheBackend(
            max_entries=int(app.config.get("CACHE_MAX_ENTRIES", 10_000))
        )
    return Cache(backend)


def _base_key() -> str:
    query = urlencode(sorted(request.args.items(multi=True)))
    return f"{request.method}:{request.path.lower()}?{query}"


def _variant_key(base: str, vary_headers: Iterable[str]) -> str:
    parts = [f"{name.lower()}={request.headers.get(name, '')}" for name in vary_headers]
    return base + "|" + "|".join(parts)


def _request_bypasses_cache() -> bool:
    if request.method not in _CACHEABLE_METHODS:
        return True
    if "Authorization" in request.headers:
        return True
    if getattr(g, "principal", None) is not None or getattr(g, "authentication_error", None):
        return True
    directives = request.cache_control
    return bool(directives.no_cache or directives.no_store)


def _vary_headers(response: Response) -> tuple[str, ...] | None:
    raw = response.headers.get("Vary", "")
    names = tuple(sorted({item.strip() for item in raw.split(",") if item.strip()}, key=str.lower))
    if "*" in names:
        return None
    return names


def _response_ttl(response: Response) -> int | None:
    if response.status_code != 200:
        return None
    if response.direct_passthrough or response.is_streamed:
        return None
    if "Set-Cookie" in response.headers:
        return None
    directives = response.cache_control
    if not directives.public or directives.private or directives.no_store or directives.no_cache:
        return None
    ttl = directives.s_maxage if directives.s_maxage is not None else directives.max_age
    if not ttl or ttl <= 0:
        return None
    return int(ttl)


def configure_response_caching(app: Flask) -> None:
    """Serve cached responses and store eligible ones."""

    if not app.config.get("CACHE_ENABLED", True):
        return

    cache = build_cache(app)
    app.extensions["response_cache"] = cache
    max_body_size = int(app.config.get("CACHE_MAX_BODY_SIZE", 1024 * 1024))

    @app.before_request
    def _serve_from_cache():
        g.response_cache_hit = False
        if _request_bypasses_cache():
            return None
        base = _base_key()
        vary = cache.get(f"vary:{base}")
        if vary is None:
            return None
        entry: CachedResponse | None = cache.get(_variant_key(base, vary))
        if entry is None:
            return None

        g.response_cache_hit = True
        response = Response(entry.body, status=entry.status_code, headers=list(entry.headers))
        response.headers["Age"] = str(max(int(time.time() - entry.stored_at), 0))
        return response

    @app.after_request
    def _store_in_cache(response: Response) -> Response:
        if getattr(g, "response_cache_hit", False) or _request_bypasses_cache():
            return response
        ttl = _response_ttl(response)
        if ttl is None:
            return response
        vary = _vary_headers(response)
        if vary is None:
            return response
        body = response.get_data()
        if len(body) > max_body_size:
            return response

        base = _base_key()
        entry = CachedResponse(
            status_code=response.status_code,
            headers=tuple(
                (name, value)
                for name, value in response.headers.items()
                if name.lower() not in _SKIPPED_HEADERS
            ),
            body=body,
            stored_at=time.time(),
        )
        cache.set(f"vary:{base}", vary, ttl)
        cache.set(_variant_key(base, vary), entry, ttl)
        return response
