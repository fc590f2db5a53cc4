"""Storage backends for the response cache.

Entries live either in process memory or in Redis. Both backends expire
entries after a per-entry TTL and support targeted invalidation by key or
by key prefix.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Protocol
import pickle
import threading
import time

import redis


class CacheBackend(Protocol):
    """Interface for cache backends."""

    def get(self, key: str) -> Any | None:  # pragma: no cover - protocol
        ...

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:  # pragma: no cover - protocol
        ...

    def invalidate(self, keys: Iterable[str] | None = None, prefix: str | None = None) -> None:  # pragma: no cover - protocol
        ...


@dataclass
class _CacheEntry:
    value: Any
    expires_at: float | None


class InMemoryCacheBackend:
    """Thread-safe in-memory cache backend supporting TTL and invalidation."""

    def __init__(self, *, max_entries: int = 10_000) -> None:
        self._store: Dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()
        self._max_entries = max_entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._store.get(key)
            if not entry:
                return None
            if entry.expires_at is not None and entry.expires_at < time.monotonic():
                self._store.pop(key, None)
                return None
            return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        expires_at = None
        if ttl is not None:
            expires_at = time.monotonic() + ttl
        with self._lock:
            if key not in self._store and len(self._store) >= self._max_entries:
                self._evict_locked()
            self._store[key] = _CacheEntry(value=value, expires_at=expires_at)

    def invalidate(self, keys: Iterable[str] | None = None, prefix: str | None = None) -> None:
        with self._lock:
            if keys:
                for key in keys:
                    self._store.pop(key, None)
            if prefix:
                for key in list(self._store.keys()):
                    if key.startswith(prefix):
                        self._store.pop(key, None)

    def _evict_locked(self) -> None:
        now = time.monotonic()
        expired = [
            key
            for key, entry in self._store.items()
            if entry.expires_at is not None and entry.expires_at < now
        ]
        for key in expired:
            self._store.pop(key, None)
        if len(self._store) >= self._max_entries:
            # Dicts keep insertion order, so the first key is the oldest write.
            oldest = next(iter(self._store))
            self._store.pop(oldest, None)


class RedisCacheBackend:
    """Redis cache backend supporting TTL and targeted invalidation."""

    def __init__(self, url: str, *, key_namespace: str = "") -> None:
        self._client = redis.Redis.from_url(url)
        self._client.ping()
        self._namespace = key_namespace.rstrip(":") + ":" if key_namespace else ""

    def _namespaced(self, key: str) -> str:
        return f"{self._namespace}{key}"

    def get(self, key: str) -> Any | None:
        raw = self._client.get(self._namespaced(key))
        if raw is None:
            return None
        return pickle.loads(raw)

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        data = pickle.dumps(value)
        namespaced = self._namespaced(key)
        if ttl is None:
            self._client.set(namespaced, data)
        else:
            self._client.set(namespaced, data, px=max(int(ttl * 1000), 1))

    def invalidate(self, keys: Iterable[str] | None = None, prefix: str | None = None) -> None:
        if keys:
            namespaced_keys = [self._namespaced(key) for key in keys]
            if namespaced_keys:
                self._client.delete(*namespaced_keys)
        if prefix:
            pattern = f"{self._namespaced(prefix)}*"
            batch: list[bytes] = []
            for key in self._client.scan_iter(match=pattern, count=1000):
                batch.append(key)
                if len(batch) >= 1000:
                    self._client.delete(*batch)
                    batch = []
            if batch:
                self._client.delete(*batch)


class Cache:
    """Cache facade applying a default TTL on top of a backend."""

    def __init__(self, backend: CacheBackend, *, default_ttl: float | None = None) -> None:
        self._backend = backend
        self._default_ttl = default_ttl

    @property
    def backend(self) -> CacheBackend:
        return self._backend

    @property
    def default_ttl(self) -> float | None:
        return self._default_ttl

    def get(self, key: str) -> Any | None:
        return self._backend.get(key)

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        ttl = self._default_ttl if ttl is None else ttl
        self._backend.set(key, value, ttl)

    def invalidate(self, *keys: str, prefix: str | None = None) -> None:
        key_iterable: Iterable[str] | None = keys if keys else None
        self._backend.invalidate(key_iterable, prefix=prefix)


__all__ = [
    "Cache",
    "CacheBackend",
    "InMemoryCacheBackend",
    "RedisCacheBackend",
]
