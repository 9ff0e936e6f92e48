"""
Cache-Aside Store for catalog metadata.

This module provides the key-value cache the catalog service reads through.
Caching is advisory: every failure (unreachable backend, timeout, malformed
stored value) is reported to the caller as a miss and never raised.

Stores:
- RedisCacheStore: shared store backed by Redis, JSON-encoded values with
  per-entry expiration (``SET key value EX ttl``)
- MemoryCacheStore: in-process TTL + LRU store for local development and tests
- NullCacheStore: caching disabled; always misses, never stores

Contract shared by every store:
    get(key) -> (hit, value)
    set(key, value, ttl) -> bool
    delete(key) -> bool

Usage Example:
    >>> from framerate.cache import MemoryCacheStore, build_cache_key
    >>> cache = MemoryCacheStore()
    >>> key = build_cache_key("tmdb", "movie", 27205, "en-US")
    >>> cache.set(key, {"id": 27205, "title": "Inception"}, ttl=86400)
    >>> hit, value = cache.get(key)
"""

import os
import json
import time
import threading
import logging
from typing import Any, Dict, Optional, Tuple
from collections import OrderedDict
from dataclasses import dataclass

import redis
from redis.exceptions import RedisError

from framerate.metrics import track_cache_operation, track_cache_error

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = os.getenv("CACHE_KEY_PREFIX", "framerate")


def _escape_key_part(part: Any) -> str:
    # "%" must be escaped before ":"
    return str(part).replace("%", "%25").replace(":", "%3A")


def build_cache_key(*parts: Any) -> str:
    """
    Build a namespaced cache key from its parts.

    The key is a pure function of the parts, so callers must normalize
    defaults (page, language) before calling. ":" and "%" inside a part are
    percent-escaped, so free text such as a search query can't shift into
    the next segment.

    Examples:
        >>> build_cache_key("tmdb", "search", "inception", 1, "en-US")
        'framerate:tmdb:search:inception:1:en-US'
        >>> build_cache_key("tmdb", "search", "star wars: 1", 1, "en-US")
        'framerate:tmdb:search:star wars%3A 1:1:en-US'
    """
    return ":".join([CACHE_KEY_PREFIX] + [_escape_key_part(part) for part in parts])


def _check_ttl(ttl: int) -> None:
    if ttl is None or ttl <= 0:
        raise ValueError(f"Cache entries require a positive TTL, got {ttl!r}")


@dataclass
class CacheStats:
    """
    Cache statistics and metrics.

    Attributes:
        total_requests: Total number of cache lookups
        hits: Number of cache hits
        misses: Number of cache misses (including degraded lookups)
        errors: Number of backend or decoding failures
        evictions: Number of entries evicted (TTL or LRU)
    """
    total_requests: int = 0
    hits: int = 0
    misses: int = 0
    errors: int = 0
    evictions: int = 0

    @property
    def hit_ratio(self) -> float:
        """Calculate cache hit ratio."""
        if self.total_requests == 0:
            return 0.0
        return self.hits / self.total_requests


class CacheStore:
    """Base class for cache-aside stores."""

    backend = "base"

    def __init__(self):
        self._stats = CacheStats()

    def get(self, key: str) -> Tuple[bool, Any]:
        raise NotImplementedError

    def set(self, key: str, value: Any, ttl: int) -> bool:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError

    def ping(self) -> bool:
        return True

    def _record_hit(self, key: str) -> None:
        self._stats.total_requests += 1
        self._stats.hits += 1
        track_cache_operation(self.backend, hit=True)
        logger.debug(f"Cache hit: {key}")

    def _record_miss(self, key: str) -> None:
        self._stats.total_requests += 1
        self._stats.misses += 1
        track_cache_operation(self.backend, hit=False)
        logger.debug(f"Cache miss: {key}")

    def _record_error(self, operation: str, key: str, error: Exception) -> None:
        self._stats.errors += 1
        track_cache_error(self.backend, operation)
        logger.warning(
            f"Cache {operation} failed for {key}: {type(error).__name__}: {error}"
        )

    def get_stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dict with total_requests, hits, misses, errors, evictions,
            hit_ratio and backend
        """
        return {
            "backend": self.backend,
            "total_requests": self._stats.total_requests,
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "errors": self._stats.errors,
            "evictions": self._stats.evictions,
            "hit_ratio": self._stats.hit_ratio,
        }

    def reset_stats(self) -> None:
        """Reset cache statistics without clearing cached data."""
        self._stats = CacheStats()


class NullCacheStore(CacheStore):
    """Cache disabled: every lookup misses and nothing is stored."""

    backend = "disabled"

    def get(self, key: str) -> Tuple[bool, Any]:
        self._record_miss(key)
        return False, None

    def set(self, key: str, value: Any, ttl: int) -> bool:
        _check_ttl(ttl)
        return False

    def delete(self, key: str) -> bool:
        return False


class MemoryCacheStore(CacheStore):
    """
    In-process cache with TTL and LRU eviction.

    Values are stored as JSON documents, mirroring the shared store, so a
    caller mutating a returned value never alters the cached entry.

    Configuration (via environment variables):
        MEMORY_CACHE_MAX_SIZE: Maximum number of entries (default: 1000)

    Thread Safety Note:
        Entries are guarded by a lock, so request threads may share one
        store. Deployments with several worker processes should share a
        RedisCacheStore.
    """

    backend = "memory"

    def __init__(self, max_size: Optional[int] = None, clock=time.time):
        super().__init__()
        self.max_size = max_size if max_size is not None else int(os.getenv("MEMORY_CACHE_MAX_SIZE", "1000"))
        self._clock = clock
        # key -> (expires_at, encoded value)
        self._entries: "OrderedDict[str, Tuple[float, str]]" = OrderedDict()
        self._lock = threading.Lock()

        logger.info(f"MemoryCacheStore initialized: max_size={self.max_size}")

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Tuple[bool, Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._record_miss(key)
                return False, None

            expires_at, encoded = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                self._stats.evictions += 1
                self._record_miss(key)
                logger.debug(f"Cache expired: {key}")
                return False, None

            try:
                value = json.loads(encoded)
            except ValueError as e:
                del self._entries[key]
                self._record_error("decode", key, e)
                self._record_miss(key)
                return False, None

            self._entries.move_to_end(key)
            self._record_hit(key)
            return True, value

    def set(self, key: str, value: Any, ttl: int) -> bool:
        _check_ttl(ttl)
        try:
            encoded = json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            self._record_error("encode", key, e)
            return False

        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_size:
                oldest_key = next(iter(self._entries))
                del self._entries[oldest_key]
                self._stats.evictions += 1
                logger.debug(f"Cache LRU eviction: {oldest_key} (max_size reached)")

            self._entries[key] = (self._clock() + ttl, encoded)
            self._entries.move_to_end(key)
        logger.debug(f"Cache set: {key} (ttl: {ttl}s, size: {len(self._entries)})")
        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            if self._entries.pop(key, None) is None:
                return False
            self._stats.evictions += 1
            return True

    def clear(self) -> int:
        """Drop every entry. Returns the number of entries cleared."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info(f"Cache cleared: {count} entries")
        return count


class RedisCacheStore(CacheStore):
    """
    Shared cache backed by Redis.

    Every Redis call runs with a short socket timeout, much smaller than the
    catalog timeout. A timeout or connection failure is logged, counted and
    reported as a miss.

    Configuration (via environment variables):
        REDIS_URL: Connection URL (e.g. redis://localhost:6379/0)
        CACHE_SOCKET_TIMEOUT: Socket timeout in seconds (default: 0.25)
    """

    backend = "redis"

    def __init__(
        self,
        url: Optional[str] = None,
        client: Optional[redis.Redis] = None,
        socket_timeout: Optional[float] = None
    ):
        super().__init__()
        self.socket_timeout = (
            socket_timeout if socket_timeout is not None
            else float(os.getenv("CACHE_SOCKET_TIMEOUT", "0.25"))
        )
        if client is None:
            url = url or os.getenv("REDIS_URL", "redis://localhost:6379/0")
            client = redis.Redis.from_url(
                url,
                socket_timeout=self.socket_timeout,
                socket_connect_timeout=self.socket_timeout,
            )
        self.client = client

        logger.info(f"RedisCacheStore initialized: socket_timeout={self.socket_timeout}s")

    def get(self, key: str) -> Tuple[bool, Any]:
        try:
            raw = self.client.get(key)
        except RedisError as e:
            self._record_error("get", key, e)
            self._record_miss(key)
            return False, None

        if raw is None:
            self._record_miss(key)
            return False, None

        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            value = json.loads(raw)
        except ValueError as e:
            self._record_error("decode", key, e)
            self._record_miss(key)
            return False, None

        self._record_hit(key)
        return True, value

    def set(self, key: str, value: Any, ttl: int) -> bool:
        _check_ttl(ttl)
        try:
            encoded = json.dumps(value, default=str, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            self._record_error("encode", key, e)
            return False

        try:
            self.client.set(key, encoded, ex=max(1, int(ttl)))
        except RedisError as e:
            self._record_error("set", key, e)
            return False

        logger.debug(f"Cache set: {key} (ttl: {ttl}s)")
        return True

    def delete(self, key: str) -> bool:
        try:
            return bool(self.client.delete(key))
        except RedisError as e:
            self._record_error("delete", key, e)
            return False

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except RedisError as e:
            logger.warning(f"Cache ping failed: {type(e).__name__}: {e}")
            return False


def create_cache_store(
    enabled: Optional[bool] = None,
    redis_url: Optional[str] = None
) -> CacheStore:
    """
    Build the cache store selected by configuration.

    - CACHE_ENABLED=0 -> NullCacheStore
    - REDIS_URL set   -> RedisCacheStore (stays usable while Redis is down)
    - otherwise       -> MemoryCacheStore
    """
    if enabled is None:
        enabled = os.getenv("CACHE_ENABLED", "1") != "0"
    if not enabled:
        logger.info("Cache disabled, using NullCacheStore")
        return NullCacheStore()

    redis_url = redis_url or os.getenv("REDIS_URL")
    if redis_url:
        store = RedisCacheStore(url=redis_url)
        if not store.ping():
            logger.warning("Redis unreachable at startup, cache lookups will miss until it recovers")
        return store

    return MemoryCacheStore()
