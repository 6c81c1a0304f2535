"""
Multi-Level Cache for Market Data

Provides a hierarchical caching system:
- L1: In-memory LRU cache (fast, per-process)
- L2: Optional shared Redis mirror (survives restarts, shared across instances)

Reads return None both when a key is absent and when it has expired.
Shared-cache failures are logged and degrade to a miss; they never fail the
caller.
"""

import fnmatch
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, Optional

import redis

from .config import CacheConfig
from .interfaces import DataType, deserialize_record, serialize_record

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """A single cache entry with metadata."""
    key: str
    value: Any
    expires_at: float  # epoch seconds
    data_type: Optional[DataType] = None
    source: str = ""

    @property
    def is_expired(self) -> bool:
        return time.time() >= self.expires_at

    @property
    def ttl_remaining(self) -> float:
        return max(0.0, self.expires_at - time.time())


class LRUCache:
    """
    Thread-safe LRU cache with TTL support.

    Implements Least Recently Used eviction when max_size is reached.
    """

    def __init__(self, max_size: int = 1000):
        self._cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._max_size = max_size
        self._lock = threading.Lock()
        self._stats = {
            "hits": 0,
            "misses": 0,
            "evictions": 0,
            "expired": 0,
        }

    @property
    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                **self._stats,
                "size": len(self._cache),
                "max_size": self._max_size,
            }

    def __len__(self) -> int:
        return len(self._cache)

    def get(self, key: str) -> Optional[CacheEntry]:
        """
        Get entry from cache.

        Returns None if not found or expired (expired entries are evicted).
        Moves accessed entry to end (most recently used).
        """
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._stats["misses"] += 1
                return None

            if entry.is_expired:
                del self._cache[key]
                self._stats["expired"] += 1
                self._stats["misses"] += 1
                return None

            self._cache.move_to_end(key)
            self._stats["hits"] += 1
            return entry

    def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: float,
        data_type: Optional[DataType] = None,
        source: str = "",
    ) -> None:
        """Set entry, replacing any previous one (last write wins)."""
        with self._lock:
            if key in self._cache:
                del self._cache[key]

            while len(self._cache) >= self._max_size:
                oldest_key = next(iter(self._cache))
                del self._cache[oldest_key]
                self._stats["evictions"] += 1

            self._cache[key] = CacheEntry(
                key=key,
                value=value,
                expires_at=time.time() + ttl_seconds,
                data_type=data_type,
                source=source,
            )

    def delete(self, key: str) -> bool:
        """Delete entry from cache. Returns True if entry existed."""
        with self._lock:
            if key in self._cache:
                del self._cache[key]
                return True
            return False

    def delete_matching(self, pattern: str) -> int:
        """Delete every key matching a glob pattern."""
        with self._lock:
            keys = [key for key in self._cache if fnmatch.fnmatchcase(key, pattern)]
            for key in keys:
                del self._cache[key]
            return len(keys)

    def clear(self) -> int:
        with self._lock:
            count = len(self._cache)
            self._cache.clear()
            return count

    def cleanup_expired(self) -> int:
        """Remove all expired entries. Returns count of removed entries."""
        with self._lock:
            expired_keys = [
                key for key, entry in self._cache.items()
                if entry.is_expired
            ]
            for key in expired_keys:
                del self._cache[key]
            self._stats["expired"] += len(expired_keys)
            return len(expired_keys)


class MultiLevelCache:
    """
    Multi-level cache for market data.

    Keys are composite strings such as "quote:AAPL" or "search:apple".
    TTL defaults are derived from the data type.
    """

    def __init__(self, config: Optional[CacheConfig] = None, shared_client: Optional[Any] = None):
        self._config = config or CacheConfig()
        self._memory_cache = LRUCache(max_size=self._config.memory_max_size)
        self._shared = shared_client
        if self._shared is None and self._config.shared_cache_url:
            self._shared = redis.Redis.from_url(
                self._config.shared_cache_url,
                socket_timeout=self._config.shared_socket_timeout,
                socket_connect_timeout=self._config.shared_socket_timeout,
            )
            logger.info("[Cache] Shared cache configured")
        self._stats = {
            "l1_hits": 0,
            "l2_hits": 0,
            "misses": 0,
            "shared_errors": 0,
        }
        self._stats_lock = threading.Lock()

    @property
    def shared_enabled(self) -> bool:
        return self._shared is not None

    def _shared_key(self, key: str) -> str:
        return f"{self._config.key_prefix}{key}"

    def _count(self, stat: str) -> None:
        with self._stats_lock:
            self._stats[stat] += 1

    def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache.

        Returns:
            Cached value if found and not expired, None otherwise
        """
        if not self._config.memory_enabled:
            return None

        entry = self._memory_cache.get(key)
        if entry is not None:
            self._count("l1_hits")
            logger.debug(f"[Cache] HIT {key} (ttl left: {entry.ttl_remaining:.1f}s)")
            return entry.value

        value = self._get_shared(key)
        if value is not None:
            self._count("l2_hits")
            return value

        self._count("misses")
        return None

    def _get_shared(self, key: str) -> Optional[Any]:
        if self._shared is None:
            return None

        shared_key = self._shared_key(key)
        try:
            raw = self._shared.get(shared_key)
            if raw is None:
                return None
            ttl_ms = self._shared.pttl(shared_key)
            value = deserialize_record(raw)
        except redis.RedisError as e:
            self._count("shared_errors")
            logger.warning(f"[Cache] Shared cache read failed for {key}: {e}")
            return None
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"[Cache] Discarding undecodable shared entry {key}: {e}")
            return None

        if ttl_ms is None or ttl_ms <= 0:
            return None

        self._memory_cache.set(key, value, ttl_seconds=ttl_ms / 1000.0,
                               source=getattr(value, 'source', ''))
        logger.debug(f"[Cache] L2 HIT {key}")
        return value

    def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: Optional[float] = None,
        data_type: Optional[DataType] = None,
        source: str = "",
    ) -> None:
        """
        Set value in cache and mirror it to the shared cache.

        Args:
            key: Composite cache key
            value: Canonical record to cache
            ttl_seconds: Override default TTL for this data type
            data_type: Type of data being cached
            source: Which provider returned this data
        """
        if not self._config.memory_enabled:
            return

        ttl = ttl_seconds if ttl_seconds is not None else self._config.ttl_for(data_type)
        self._memory_cache.set(key, value, ttl_seconds=ttl, data_type=data_type, source=source)
        logger.debug(f"[Cache] SET {key} (ttl: {ttl}s, source: {source})")

        if self._shared is None or ttl <= 0:
            return
        try:
            self._shared.setex(self._shared_key(key), max(1, int(ttl)), serialize_record(value))
        except (redis.RedisError, TypeError) as e:
            self._count("shared_errors")
            logger.warning(f"[Cache] Shared cache write failed for {key}: {e}")

    def invalidate(self, pattern: Optional[str] = None) -> int:
        """
        Invalidate an exact key, a glob pattern, or everything.

        Returns:
            Number of in-memory entries removed
        """
        if not pattern or pattern == "*":
            cleared = self._memory_cache.clear()
        elif any(ch in pattern for ch in "*?["):
            cleared = self._memory_cache.delete_matching(pattern)
        else:
            cleared = 1 if self._memory_cache.delete(pattern) else 0

        if self._shared is not None:
            try:
                match = self._shared_key(pattern if pattern else "*")
                keys = list(self._shared.scan_iter(match=match))
                if keys:
                    self._shared.delete(*keys)
            except redis.RedisError as e:
                self._count("shared_errors")
                logger.warning(f"[Cache] Shared cache invalidate failed for {pattern}: {e}")

        logger.info(f"[Cache] Invalidated {cleared} entries (pattern: {pattern or '*'})")
        return cleared

    def cleanup_expired(self) -> int:
        """Remove expired entries from memory."""
        removed = self._memory_cache.cleanup_expired()
        logger.debug(f"[Cache] Cleanup: removed {removed}, {len(self._memory_cache)} remaining")
        return removed

    @property
    def size(self) -> int:
        return len(self._memory_cache)

    @property
    def stats(self) -> Dict[str, Any]:
        memory_stats = self._memory_cache.stats
        with self._stats_lock:
            stats = dict(self._stats)
        lookups = stats["l1_hits"] + stats["l2_hits"] + stats["misses"]
        return {
            **stats,
            "hit_rate": (stats["l1_hits"] + stats["l2_hits"]) / lookups if lookups else 0,
            "size": memory_stats["size"],
            "max_size": memory_stats["max_size"],
            "evictions": memory_stats["evictions"],
            "shared_cache": "configured" if self.shared_enabled else "not-available",
        }
