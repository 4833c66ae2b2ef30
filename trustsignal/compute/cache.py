"""
TrustSignal — Response Cache Layer

Every served trust payload is cached so repeated lookups skip the store and
the engine.

Key Schema:
    trust:v1:product:{sku}      → full JSON payload
    trust:v1:company:{id}       → full JSON payload

Cache Strategy:
    - Hit:   return the stored payload as-is with `cached` flipped to true
    - Miss:  compute, store with `cached: false`, return
    - TTL:   CACHE_TTL_SECONDS (default 1 hour)
    - Invalidation: new evidence for an entity deletes its key synchronously.
      There is no other invalidation path besides TTL expiry.

Backends:
    RedisCacheBackend   redis-py, SETEX / GET / DELETE (single-key, atomic)
    MemoryCacheBackend  process-local dict with TTL on the injected clock
"""
import json
import threading
from typing import Any, Callable, Dict, Optional, Tuple

import redis
import structlog

from trustsignal.clock import Clock

logger = structlog.get_logger()

KEY_NAMESPACE = "trust"
KEY_VERSION = "v1"
DEFAULT_TTL = 3600  # 1 hour


def cache_key(kind: str, identifier: str) -> str:
    return f"{KEY_NAMESPACE}:{KEY_VERSION}:{kind}:{identifier}"


class MemoryCacheBackend:

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or Clock()
        self._data: Dict[str, Tuple[float, str]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            expires_at, value = item
            if self._clock.monotonic() >= expires_at:
                del self._data[key]
                return None
            return value

    def setex(self, key: str, ttl: int, value: str) -> None:
        with self._lock:
            self._data[key] = (self._clock.monotonic() + ttl, value)

    def delete(self, key: str) -> int:
        with self._lock:
            return 1 if self._data.pop(key, None) is not None else 0

    def close(self) -> None:
        with self._lock:
            self._data.clear()


class RedisCacheBackend:

    def __init__(self, redis_url: str, client: Optional[redis.Redis] = None):
        self._url = redis_url
        self._pool = None
        self._client = client

    def _connect(self) -> redis.Redis:
        """Lazy connect. Only opens a connection when first used."""
        if self._client is None:
            self._pool = redis.ConnectionPool.from_url(
                self._url,
                max_connections=20,
                decode_responses=True,
                socket_connect_timeout=3,
                socket_timeout=2,
                retry_on_timeout=True,
            )
            self._client = redis.Redis(connection_pool=self._pool)
            logger.info("response_cache_connected", url=self._url.split("@")[-1])
        return self._client

    def get(self, key: str) -> Optional[str]:
        return self._connect().get(key)

    def setex(self, key: str, ttl: int, value: str) -> None:
        self._connect().setex(key, ttl, value)

    def delete(self, key: str) -> int:
        return int(self._connect().delete(key))

    def close(self) -> None:
        if self._pool:
            self._pool.disconnect()
            logger.info("response_cache_disconnected")


class ResponseCache:
    """
    Usage:
        cache = ResponseCache(MemoryCacheBackend())

        payload = cache.get_or_compute("product", "SKU-1", lambda: build_payload(...))
        ...
        cache.invalidate("product", "SKU-1")   # new evidence arrived
    """

    def __init__(self, backend, ttl: int = DEFAULT_TTL):
        self.backend = backend
        self.ttl = ttl

    def get(self, kind: str, identifier: str) -> Optional[Dict[str, Any]]:
        key = cache_key(kind, identifier)
        try:
            raw = self.backend.get(key)
        except redis.RedisError as e:
            logger.warning("cache_get_error", key=key, error=str(e))
            return None
        if raw is None:
            return None
        data = json.loads(raw)
        data["cached"] = True
        logger.debug("cache_hit", key=key)
        return data

    def set(self, kind: str, identifier: str, payload: Dict[str, Any]) -> bool:
        key = cache_key(kind, identifier)
        try:
            self.backend.setex(key, self.ttl, json.dumps(payload, default=str))
        except redis.RedisError as e:
            logger.warning("cache_set_error", key=key, error=str(e))
            return False
        logger.debug("cache_set", key=key, ttl=self.ttl)
        return True

    def get_or_compute(self, kind: str, identifier: str, compute: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
        cached = self.get(kind, identifier)
        if cached is not None:
            return cached

        payload = dict(compute())
        payload["cached"] = False
        self.set(kind, identifier, payload)
        return payload

    def invalidate(self, kind: str, identifier: str) -> bool:
        """Force-expire a cached payload. Backend errors propagate to the caller."""
        key = cache_key(kind, identifier)
        removed = bool(self.backend.delete(key))
        logger.info("cache_invalidated", key=key, removed=removed)
        return removed

    def close(self) -> None:
        self.backend.close()


def build_cache(redis_url: str = "", ttl: int = DEFAULT_TTL, clock: Optional[Clock] = None) -> ResponseCache:
    backend = RedisCacheBackend(redis_url) if redis_url else MemoryCacheBackend(clock)
    return ResponseCache(backend, ttl=ttl)
