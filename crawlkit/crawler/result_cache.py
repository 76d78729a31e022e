"""
In-memory acquisition result cache.

Entries are keyed by a SHA-256 fingerprint of the request, expire after a TTL
(per-entry override or cache default) and are evicted oldest-insertion-first
in blocks of 10% once the cache is full. Reads do not refresh an entry's
position, so eviction order follows insertion time only.
"""

from __future__ import annotations

import hashlib
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from crawlkit.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_MAX_SIZE = 500
DEFAULT_TTL_SECONDS = 30 * 60.0
EVICTION_RATIO = 0.1

_MAX_AGE_RE = re.compile(r"(?:^|[,\s])max-age\s*=\s*\"?(\d+)\"?", re.IGNORECASE)


@dataclass
class CacheEntry(Generic[T]):
    """Cached payload with insertion time and optional validators."""

    data: T
    timestamp: float = field(default_factory=time.time)
    etag: str | None = None
    last_modified: str | None = None
    ttl: float | None = None  # overrides the cache TTL when set

    @property
    def has_validators(self) -> bool:
        return bool(self.etag or self.last_modified)


def fingerprint(url: str, script: str | None = None, wait_for_selector: str | None = None) -> str:
    """Cache key for a request.

    Args:
        url: Target URL.
        script: Custom JavaScript, if any.
        wait_for_selector: Selector waited on, if any.

    Returns:
        Hex SHA-256 digest.
    """
    material = f"{url}{script or ''}{wait_for_selector or ''}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def parse_cache_control_max_age(header: str | None) -> float | None:
    """Extract a positive ``max-age`` (seconds) from a Cache-Control header.

    Examples:
        >>> parse_cache_control_max_age("public, max-age=600")
        600.0
        >>> parse_cache_control_max_age("max-age=0") is None
        True
    """
    if not header:
        return None
    match = _MAX_AGE_RE.search(header)
    if not match:
        return None
    seconds = int(match.group(1))
    return float(seconds) if seconds > 0 else None


class ResultCache(Generic[T]):
    """
    Bounded TTL cache.

    Args:
        max_size: Capacity before eviction kicks in.
        ttl: Default lifetime in seconds.
        clock: Time source returning seconds (injectable for tests).
    """

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        ttl: float = DEFAULT_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.time,
    ):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        if ttl < 0:
            raise ValueError("ttl must be non-negative")
        self._max_size = max_size
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def ttl(self) -> float:
        return self._ttl

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def _expired(self, entry: CacheEntry[T]) -> bool:
        ttl = entry.ttl if entry.ttl is not None else self._ttl
        return self._clock() - entry.timestamp >= ttl

    def get(self, key: str) -> CacheEntry[T] | None:
        """Return a fresh entry, or None. Expired entries are removed."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._expired(entry):
            del self._entries[key]
            return None
        return entry

    def get_stale(self, key: str) -> CacheEntry[T] | None:
        """Return the entry regardless of expiry (for conditional requests)."""
        return self._entries.get(key)

    def set(self, key: str, entry: CacheEntry[T]) -> None:
        """Insert or replace an entry, evicting when a new key hits capacity."""
        if key not in self._entries and len(self._entries) >= self._max_size:
            self._evict()
        # Replacing a key moves it to the back of insertion order.
        self._entries.pop(key, None)
        self._entries[key] = entry

    def put(
        self,
        key: str,
        data: T,
        *,
        etag: str | None = None,
        last_modified: str | None = None,
        ttl: float | None = None,
    ) -> CacheEntry[T]:
        """Build an entry stamped with the cache clock and store it."""
        entry = CacheEntry(
            data=data,
            timestamp=self._clock(),
            etag=etag,
            last_modified=last_modified,
            ttl=ttl,
        )
        self.set(key, entry)
        return entry

    def touch(self, key: str) -> CacheEntry[T] | None:
        """Reset an entry's timestamp (after a 304 revalidation)."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        entry.timestamp = self._clock()
        self._entries.pop(key)
        self._entries[key] = entry
        return entry

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def _evict(self) -> int:
        count = max(1, int(self._max_size * EVICTION_RATIO))
        oldest = sorted(self._entries.items(), key=lambda item: item[1].timestamp)[:count]
        for key, _ in oldest:
            del self._entries[key]
        logger.debug("Cache eviction", evicted=len(oldest), remaining=len(self._entries))
        return len(oldest)

    def stats(self) -> dict[str, Any]:
        return {"size": len(self._entries), "max_size": self._max_size, "ttl": self._ttl}
