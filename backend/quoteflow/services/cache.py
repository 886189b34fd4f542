"""Cache-aside store for list/search endpoints.

Built once in the app factory (`build_cache`) and injected via
`quoteflow.api.deps.get_cache`. Values are JSON documents.
"""

from __future__ import annotations

import fnmatch
import json
import logging
import time
from threading import Lock
from typing import Any, Optional, Protocol

import redis
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger("quoteflow.cache")

INQUIRIES_PATTERN = "inquiries:*"
ITEMS_PATTERN = "items:*"
SEARCH_PATTERN = "search:*"


class Cache(Protocol):
    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any, ttl_seconds: int) -> None: ...

    def delete(self, key: str) -> None: ...

    def clear_pattern(self, pattern: str) -> int: ...


class MemoryCache:
    """Per-process TTL store; used when REDIS_URL is unset and in tests."""

    def __init__(self) -> None:
        self._data: dict[str, tuple[float, str]] = {}
        self._lock = Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            expires_at, raw = entry
            if expires_at <= time.monotonic():
                self._data.pop(key, None)
                return None
        return json.loads(raw)

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        raw = json.dumps(jsonable_encoder(value))
        with self._lock:
            self._data[key] = (time.monotonic() + max(1, int(ttl_seconds)), raw)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear_pattern(self, pattern: str) -> int:
        with self._lock:
            keys = [k for k in self._data if fnmatch.fnmatchcase(k, pattern)]
            for k in keys:
                self._data.pop(k, None)
        return len(keys)


class RedisCache:
    """Redis-backed store. Connection errors degrade to cache misses."""

    def __init__(self, client: "redis.Redis", *, prefix: str = "quoteflow:") -> None:
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str) -> "RedisCache":
        return cls(redis.Redis.from_url(url, decode_responses=True, socket_timeout=2))

    def _k(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self._client.get(self._k(key))
        except redis.RedisError as e:
            logger.warning("cache_get_failed", extra={"key": key, "error": str(e)})
            return None
        return json.loads(raw) if raw else None

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            self._client.set(
                self._k(key), json.dumps(jsonable_encoder(value)), ex=max(1, int(ttl_seconds))
            )
        except redis.RedisError as e:
            logger.warning("cache_set_failed", extra={"key": key, "error": str(e)})

    def delete(self, key: str) -> None:
        try:
            self._client.delete(self._k(key))
        except redis.RedisError as e:
            logger.warning("cache_delete_failed", extra={"key": key, "error": str(e)})

    def clear_pattern(self, pattern: str) -> int:
        removed = 0
        try:
            batch: list[str] = []
            for k in self._client.scan_iter(match=self._k(pattern), count=500):
                batch.append(k)
                if len(batch) >= 500:
                    removed += int(self._client.delete(*batch) or 0)
                    batch = []
            if batch:
                removed += int(self._client.delete(*batch) or 0)
        except redis.RedisError as e:
            logger.warning("cache_clear_failed", extra={"pattern": pattern, "error": str(e)})
        return removed


class NullCache:
    """CACHE_ENABLED=false: every read misses, writes are dropped."""

    def get(self, key: str) -> Optional[Any]:
        return None

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        return None

    def delete(self, key: str) -> None:
        return None

    def clear_pattern(self, pattern: str) -> int:
        return 0


def build_cache(settings) -> Cache:
    if not settings.cache_enabled:
        return NullCache()
    url = str(settings.redis_url or "").strip()
    if url:
        logger.info("cache_backend", extra={"backend": "redis"})
        return RedisCache.from_url(url)
    logger.info("cache_backend", extra={"backend": "memory"})
    return MemoryCache()


def cache_key(namespace: str, *parts: Any) -> str:
    """Stable key, e.g. cache_key("inquiries", user_id, {"page": 1}) -> inquiries:7:{"page":1}."""

    rendered = []
    for p in parts:
        if isinstance(p, dict):
            rendered.append(json.dumps(jsonable_encoder(p), sort_keys=True, separators=(",", ":")))
        else:
            rendered.append(str(p))
    return ":".join([namespace, *rendered])


def invalidate_workflow_lists(cache: Cache) -> None:
    """Drop cached inquiry/item lists and search results after a workflow write."""

    for pattern in (INQUIRIES_PATTERN, ITEMS_PATTERN, SEARCH_PATTERN):
        cache.clear_pattern(pattern)
