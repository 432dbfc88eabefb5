"""Invalidation-aware cache for post listings and lookups.

Backed by Redis when ``REDIS_URL`` is configured and reachable; otherwise an
in-process store with expiry is used. Only JSON-serialisable data is cached,
never ORM instances, so nothing user-specific can leak between requests.
"""

from __future__ import annotations

import fnmatch
import json
import logging
import time
from threading import Lock
from typing import Any

import redis

from wikicore.core.settings import settings

logger = logging.getLogger(__name__)

ALL_POSTS_KEY = "post:all"
TITLES_KEY = "post/titles:all"


def post_key(post_id: int) -> str:
    return f"post:{post_id}"


def permission_summary_key(post_id: int) -> str:
    return f"post:{post_id}:permissions"


def revisions_key(post_id: int) -> str:
    return f"revision:{post_id}"


class ListingCache:
    """Key/value cache with TTL and pattern invalidation."""

    def __init__(self, redis_url: str | None = None, ttl_seconds: int | None = None) -> None:
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.cache_ttl_seconds
        self._redis: redis.Redis | None = None
        self._local: dict[str, tuple[float, str]] = {}
        self._lock = Lock()
        url = redis_url if redis_url is not None else settings.redis_url
        if url:
            try:
                client = redis.from_url(url, decode_responses=True)
                client.ping()
                self._redis = client
                logger.info("Listing cache connected to Redis")
            except redis.RedisError as err:
                logger.warning("Redis cache unavailable: %s. Using in-process cache.", err)

    def _drop_redis(self, err: Exception) -> None:
        logger.warning("Redis cache error, switching to in-process cache: %s", err)
        self._redis = None

    def get(self, key: str) -> Any | None:
        """Return the cached value for ``key`` or None."""
        raw: str | None = None
        if self._redis is not None:
            try:
                raw = self._redis.get(key)
            except redis.RedisError as err:
                self._drop_redis(err)
        if self._redis is None:
            with self._lock:
                entry = self._local.get(key)
                if entry is not None:
                    expiry, raw = entry
                    if expiry < time.monotonic():
                        self._local.pop(key, None)
                        raw = None
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        serialized = json.dumps(value)
        ttl = ttl if ttl is not None else self.ttl_seconds
        if self._redis is not None:
            try:
                self._redis.setex(key, ttl, serialized)
                return
            except redis.RedisError as err:
                self._drop_redis(err)
        with self._lock:
            self._local[key] = (time.monotonic() + ttl, serialized)

    def delete(self, *keys: str) -> int:
        """Delete specific keys and return how many existed."""
        if not keys:
            return 0
        if self._redis is not None:
            try:
                return int(self._redis.delete(*keys))
            except redis.RedisError as err:
                self._drop_redis(err)
        with self._lock:
            return sum(1 for key in keys if self._local.pop(key, None) is not None)

    def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob-style pattern."""
        if self._redis is not None:
            try:
                keys = list(self._redis.scan_iter(match=pattern))
                return int(self._redis.delete(*keys)) if keys else 0
            except redis.RedisError as err:
                self._drop_redis(err)
        with self._lock:
            matched = [key for key in self._local if fnmatch.fnmatchcase(key, pattern)]
            for key in matched:
                del self._local[key]
            return len(matched)

    def invalidate(self, post_id: int | None = None) -> int:
        """Forget listings, plus every entry belonging to ``post_id`` if given."""
        removed = self.delete(ALL_POSTS_KEY, TITLES_KEY)
        if post_id is not None:
            removed += self.delete(post_key(post_id), revisions_key(post_id))
            removed += self.delete_pattern(f"{post_key(post_id)}:*")
        if removed:
            logger.debug("Invalidated %d cache entries for post %s", removed, post_id)
        return removed


_cache: ListingCache | None = None
_cache_lock = Lock()


def get_cache() -> ListingCache:
    """Return the shared listing cache."""
    global _cache
    with _cache_lock:
        if _cache is None:
            _cache = ListingCache()
        return _cache


def invalidate(post_id: int) -> int:
    """Drop all cached listings and lookups for ``post_id``."""
    return get_cache().invalidate(post_id)
