from __future__ import annotations

import asyncio
import copy
import hashlib
import json
import logging
import threading
from time import monotonic
from typing import Any, Awaitable, Callable, Protocol

import redis

from app.core.config import settings

_LOG = logging.getLogger("app.client.cache")

_REDIS_PREFIX = "talent:list"


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def cache_key(entity: str, descriptor: dict[str, Any] | None) -> str:
    digest = hashlib.sha256((entity + canonical_json(descriptor or {})).encode("utf-8")).hexdigest()
    return f"{entity}:{digest}"


class ResponseCache(Protocol):
    def get(self, entity: str, descriptor: dict[str, Any] | None) -> dict[str, Any] | None:
        ...

    def set(self, entity: str, descriptor: dict[str, Any] | None, value: dict[str, Any]) -> None:
        ...

    def invalidate(self, entity: str) -> None:
        ...

    async def get_or_fetch(
        self,
        entity: str,
        descriptor: dict[str, Any] | None,
        fetch: Callable[[], Awaitable[dict[str, Any]]],
    ) -> dict[str, Any]:
        ...


class _SharedFetchMixin:
    """Identical concurrent requests share one fetch.

    A fetch that started before ``invalidate(entity)`` still answers its
    waiters but is not stored.
    """

    def _init_shared_fetch(self) -> None:
        self._in_flight: dict[str, asyncio.Future] = {}
        self._generations: dict[str, int] = {}

    def _bump_generation(self, entity: str) -> None:
        self._generations[entity] = self._generations.get(entity, 0) + 1

    async def get_or_fetch(self, entity, descriptor, fetch):
        cached = self.get(entity, descriptor)
        if cached is not None:
            return cached
        key = cache_key(entity, descriptor)
        pending = self._in_flight.get(key)
        if pending is not None:
            _LOG.debug("joining in-flight fetch entity=%s", entity)
            return copy.deepcopy(await asyncio.shield(pending))

        generation = self._generations.get(entity, 0)
        future = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            value = await fetch()
        except Exception as exc:
            future.set_exception(exc)
            future.exception()
            raise
        else:
            if self._generations.get(entity, 0) == generation:
                self.set(entity, descriptor, value)
            future.set_result(value)
        finally:
            self._in_flight.pop(key, None)
            if not future.done():
                future.cancel()
        return copy.deepcopy(value)


class MemoryResponseCache(_SharedFetchMixin):
    def __init__(self, ttl_seconds: int = 300):
        self.ttl_seconds = max(int(ttl_seconds), 1)
        self._data: dict[str, tuple[float, dict[str, Any]]] = {}
        self._lock = threading.Lock()
        self._init_shared_fetch()

    def get(self, entity, descriptor):
        key = cache_key(entity, descriptor)
        now = monotonic()
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= now:
                self._data.pop(key, None)
                return None
            return copy.deepcopy(value)

    def set(self, entity, descriptor, value):
        key = cache_key(entity, descriptor)
        with self._lock:
            self._data[key] = (monotonic() + self.ttl_seconds, copy.deepcopy(value))

    def invalidate(self, entity):
        prefix = f"{entity}:"
        with self._lock:
            for key in [key for key in self._data if key.startswith(prefix)]:
                self._data.pop(key, None)
            self._bump_generation(entity)
        _LOG.debug("cache invalidated entity=%s backend=memory", entity)


class RedisResponseCache(_SharedFetchMixin):
    def __init__(self, client: redis.Redis, ttl_seconds: int = 300, prefix: str = _REDIS_PREFIX):
        self.client = client
        self.ttl_seconds = max(int(ttl_seconds), 1)
        self.prefix = prefix
        self._init_shared_fetch()

    def _redis_key(self, entity: str, descriptor: dict[str, Any] | None) -> str:
        return f"{self.prefix}:{cache_key(entity, descriptor)}"

    def get(self, entity, descriptor):
        try:
            raw = self.client.get(self._redis_key(entity, descriptor))
        except redis.RedisError:
            _LOG.warning("Redis cache read failed entity=%s; treating as miss", entity)
            return None
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, entity, descriptor, value):
        try:
            self.client.set(self._redis_key(entity, descriptor), canonical_json(value), ex=self.ttl_seconds)
        except redis.RedisError:
            _LOG.warning("Redis cache write failed entity=%s", entity)

    def invalidate(self, entity):
        self._bump_generation(entity)
        try:
            keys = list(self.client.scan_iter(match=f"{self.prefix}:{entity}:*"))
            if keys:
                self.client.delete(*keys)
        except redis.RedisError:
            _LOG.warning("Redis cache invalidation failed entity=%s", entity)
            raise
        _LOG.debug("cache invalidated entity=%s backend=redis keys=%s", entity, len(keys))


_cached_cache: ResponseCache | None = None
_cache_lock = threading.Lock()


def build_response_cache() -> ResponseCache:
    ttl = settings.CLIENT_CACHE_TTL_SECONDS
    if str(settings.CLIENT_CACHE_BACKEND).strip().lower() != "redis":
        return MemoryResponseCache(ttl)
    try:
        client = redis.Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=0.4,
            socket_connect_timeout=0.4,
        )
        client.ping()
        return RedisResponseCache(client, ttl)
    except Exception:
        _LOG.warning("Redis response cache unavailable; fallback to in-memory cache")
        return MemoryResponseCache(ttl)


def get_response_cache() -> ResponseCache:
    global _cached_cache
    if _cached_cache is None:
        with _cache_lock:
            if _cached_cache is None:
                _cached_cache = build_response_cache()
    return _cached_cache
