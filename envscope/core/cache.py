"""Detection cache with TTL expiry and count-bounded eviction.

This module provides the process-wide cache shared by every layer of the
monorepo pipeline. One key space is split into three logical namespaces:

- detection: monorepo root detection results (positive and negative)
- workspaces: workspace lists discovered under a root
- env_files: resolved environment file lists

Timestamps come from a monotonic clock in milliseconds. An entry is valid
while ``now - timestamp < ttl``; expired entries are logically absent even
before a cleanup pass physically removes them.

Usage:
    from envscope.core.cache import DetectionCache

    cache = DetectionCache(max_entries=1000, default_ttl=300_000)

    cache.set_detection("detection:/repo/apps/web", result, ttl=60_000)
    cached = cache.get_detection("detection:/repo/apps/web")

    cache.evict_pattern(r"^env_files:turborepo:")
    stats = cache.get_stats()
    print(f"Hit rate: {stats.hit_rate:.2%}")
"""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Callable
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from envscope.core.utils import monotonic_ms

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 1000
DEFAULT_TTL_MS = 300_000
DEFAULT_CLEANUP_INTERVAL_MS = 60_000


class CacheNamespace(str, Enum):
    """Logical namespaces sharing the cache key space."""

    DETECTION = "detection"
    WORKSPACES = "workspaces"
    ENV_FILES = "env_files"


@dataclass
class CacheEntry:
    """A single cache entry.

    Attributes:
        value: The cached payload.
        timestamp: Monotonic milliseconds at insertion or last update.
        ttl: TTL recorded at insertion, or None to use the cache default.
    """

    value: Any
    timestamp: float
    ttl: float | None = None


@dataclass
class CacheStats:
    """Statistics about cache performance and usage."""

    hits: int
    misses: int
    evictions: int
    total_entries: int
    max_entries: int

    @property
    def hit_rate(self) -> float:
        """Hit rate between 0.0 and 1.0, or 0.0 if there were no lookups."""
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["hit_rate"] = self.hit_rate
        return data


class DetectionCache:
    """TTL cache for detection, workspace and env-file results.

    Cleanup is opportunistic: every ``set_*`` call checks whether
    ``cleanup_interval`` has elapsed since the last check and, only if the
    cache holds more than ``max_entries``, evicts expired entries and then
    the oldest ones until the limit is met.

    Example:
        cache = DetectionCache(max_entries=100)
        cache.set_workspaces("provider:nx:/repo:workspaces", workspaces)
        workspaces = cache.get_workspaces("provider:nx:/repo:workspaces")
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        default_ttl: float = DEFAULT_TTL_MS,
        cleanup_interval: float = DEFAULT_CLEANUP_INTERVAL_MS,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """Initialize the cache.

        Args:
            max_entries: Maximum entries kept after a cleanup pass. Must be positive.
            default_ttl: Default time-to-live in milliseconds. Must be positive.
            cleanup_interval: Minimum milliseconds between cleanup checks.
            clock: Millisecond clock, for tests. Defaults to the monotonic clock.

        Raises:
            ValueError: If max_entries or default_ttl is not positive.
        """
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")

        self._max_entries = max_entries
        self._default_ttl = default_ttl
        self._cleanup_interval = cleanup_interval
        self._clock = clock or monotonic_ms
        self._last_cleanup: float | None = None
        self._stores: dict[CacheNamespace, dict[str, CacheEntry]] = {
            namespace: {} for namespace in CacheNamespace
        }
        # Insertion-ordered; updated keys move to the end.
        self._timestamps: dict[str, float] = {}
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    # ------------------------------------------------------------------
    # Namespace accessors
    # ------------------------------------------------------------------

    def set_detection(self, key: str, result: Any, ttl: float | None = None) -> None:
        """Store a detection result."""
        self._set(CacheNamespace.DETECTION, key, result, ttl)

    def get_detection(self, key: str, ttl: float | None = None) -> Any | None:
        """Get a detection result, or None if absent or expired."""
        return self._get(CacheNamespace.DETECTION, key, ttl)

    def set_workspaces(self, key: str, workspaces: Any, ttl: float | None = None) -> None:
        """Store a workspace list."""
        self._set(CacheNamespace.WORKSPACES, key, workspaces, ttl)

    def get_workspaces(self, key: str, ttl: float | None = None) -> Any | None:
        """Get a workspace list, or None if absent or expired."""
        return self._get(CacheNamespace.WORKSPACES, key, ttl)

    def set_env_files(self, key: str, files: Any, ttl: float | None = None) -> None:
        """Store a resolved environment file list."""
        self._set(CacheNamespace.ENV_FILES, key, files, ttl)

    def get_env_files(self, key: str, ttl: float | None = None) -> Any | None:
        """Get an environment file list, or None if absent or expired."""
        return self._get(CacheNamespace.ENV_FILES, key, ttl)

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def _set(self, namespace: CacheNamespace, key: str, value: Any, ttl: float | None) -> None:
        with self._lock:
            self._maybe_cleanup()
            now = self._clock()
            self._stores[namespace][key] = CacheEntry(value=value, timestamp=now, ttl=ttl)
            self._timestamps.pop(key, None)
            self._timestamps[key] = now
            logger.debug("Cache set: %s (ttl=%s)", key, ttl if ttl is not None else "default")

    def _get(self, namespace: CacheNamespace, key: str, ttl: float | None) -> Any | None:
        with self._lock:
            entry = self._stores[namespace].get(key)
            if entry is None or not self._is_valid(entry, ttl):
                self._misses += 1
                return None
            self._hits += 1
            logger.debug("Cache hit: %s", key)
            return entry.value

    def _is_valid(self, entry: CacheEntry, ttl: float | None) -> bool:
        effective_ttl = ttl if ttl is not None else entry.ttl
        if effective_ttl is None:
            effective_ttl = self._default_ttl
        return (self._clock() - entry.timestamp) < effective_ttl

    def evict(self, key: str) -> bool:
        """Remove a key from every namespace.

        Returns:
            True if the key was present.
        """
        with self._lock:
            present = self._timestamps.pop(key, None) is not None
            for store in self._stores.values():
                store.pop(key, None)
            return present

    def evict_pattern(self, pattern: str | re.Pattern[str]) -> int:
        """Remove every key matching a regular expression.

        Args:
            pattern: Regex searched (not anchored) against each key.

        Returns:
            The number of keys removed.
        """
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        with self._lock:
            keys = [key for key in self._timestamps if regex.search(key)]
            for key in keys:
                self.evict(key)
            if keys:
                logger.debug("Cache evict pattern '%s': %d entries", regex.pattern, len(keys))
            return len(keys)

    def clear_all(self) -> None:
        """Drop every entry and reset the eviction counter."""
        with self._lock:
            for store in self._stores.values():
                store.clear()
            self._timestamps.clear()
            self._evictions = 0
            logger.debug("Cache cleared")

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def _maybe_cleanup(self) -> None:
        now = self._clock()
        if self._last_cleanup is not None and (now - self._last_cleanup) < self._cleanup_interval:
            return
        self._last_cleanup = now
        if len(self._timestamps) <= self._max_entries:
            return
        self._cleanup(now)

    def cleanup(self) -> int:
        """Run a cleanup pass now, ignoring the cleanup interval.

        Returns:
            The number of entries evicted.
        """
        with self._lock:
            now = self._clock()
            self._last_cleanup = now
            return self._cleanup(now)

    def _cleanup(self, now: float) -> int:
        evicted = 0

        expired = [key for key, ts in self._timestamps.items() if (now - ts) > self._default_ttl]
        for key in expired:
            self.evict(key)
            evicted += 1

        overflow = len(self._timestamps) - self._max_entries
        if overflow > 0:
            # Stable sort keeps insertion order among equal timestamps.
            oldest = sorted(self._timestamps.items(), key=lambda item: item[1])[:overflow]
            for key, _ in oldest:
                self.evict(key)
                evicted += 1

        if evicted:
            self._evictions += evicted
            logger.debug(
                "Cache cleanup: evicted %d entries (%d expired), %d remain",
                evicted,
                len(expired),
                len(self._timestamps),
            )
        return evicted

    # ------------------------------------------------------------------
    # Introspection and configuration
    # ------------------------------------------------------------------

    def get_stats(self) -> CacheStats:
        """Get current cache statistics."""
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                total_entries=len(self._timestamps),
                max_entries=self._max_entries,
            )

    def reset_stats(self) -> None:
        """Reset hit/miss/eviction counters without clearing entries."""
        with self._lock:
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def configure(
        self,
        max_entries: int | None = None,
        default_ttl: float | None = None,
        cleanup_interval: float | None = None,
    ) -> None:
        """Update cache limits. Arguments left as None are unchanged."""
        with self._lock:
            if max_entries is not None:
                if max_entries <= 0:
                    raise ValueError("max_entries must be positive")
                self._max_entries = max_entries
            if default_ttl is not None:
                if default_ttl <= 0:
                    raise ValueError("default_ttl must be positive")
                self._default_ttl = default_ttl
            if cleanup_interval is not None:
                self._cleanup_interval = cleanup_interval

    def __contains__(self, key: str) -> bool:
        return key in self._timestamps

    def __len__(self) -> int:
        return len(self._timestamps)

    @property
    def max_entries(self) -> int:
        return self._max_entries

    @property
    def default_ttl(self) -> float:
        return self._default_ttl

    @property
    def cleanup_interval(self) -> float:
        return self._cleanup_interval
