"""In-memory TTL cache for secret values.

Entries are keyed by ``"{secret_name}:{version_id or ''}"`` so the latest
version of a secret and explicitly versioned reads live side by side.
``invalidate`` only removes the unversioned key; versioned entries age out
through their TTL.
"""

import logging
import threading
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Final

from pydantic import BaseModel, Field

logger: Final = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CachedSecret(BaseModel):
    """A secret value held in the cache.

    Attributes:
        name: Secret name or ARN the value was fetched for.
        value: Decoded secret string.
        version_id: Version the value belongs to, None for the current version.
        cached_at: When the value was stored.
        expires_at: When the value stops being served.
    """

    name: str
    value: str = Field(repr=False)
    version_id: str | None = None
    cached_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        """Return True once the entry's TTL has elapsed."""
        return (now or _utcnow()) >= self.expires_at


class SecretCache:
    """Thread-safe TTL cache for secret values.

    Reads and writes are serialized by a lock; concurrent writers to the same
    key follow last-write-wins. When ``max_size`` is reached, expired entries
    are dropped first and then the oldest stored entry.

    Example:
        >>> cache = SecretCache(default_ttl=timedelta(minutes=5))
        >>> cache.put("db-password", None, "hunter2")
        >>> cache.get("db-password")
        'hunter2'
    """

    def __init__(
        self,
        default_ttl: timedelta = timedelta(minutes=60),
        max_size: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the cache.

        Args:
            default_ttl: TTL applied when put() is called without one.
                Defaults to 60 minutes.
            max_size: Maximum number of entries, unbounded when None.
            clock: Source of timezone-aware "now". Defaults to UTC wall clock.
        """
        if max_size is not None and max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        self.default_ttl = default_ttl
        self.max_size = max_size
        self._clock = clock
        self._entries: dict[str, CachedSecret] = {}
        self._lock = threading.Lock()

    @staticmethod
    def make_key(secret_name: str, version_id: str | None = None) -> str:
        """Build the cache key for a secret name and optional version."""
        return f"{secret_name}:{version_id or ''}"

    def get(self, secret_name: str, version_id: str | None = None) -> str | None:
        """Return the cached value, or None on a miss or an expired entry."""
        entry = self.get_entry(secret_name, version_id)
        return entry.value if entry is not None else None

    def get_entry(self, secret_name: str, version_id: str | None = None) -> CachedSecret | None:
        """Return the cached entry with its metadata, or None on a miss."""
        key = self.make_key(secret_name, version_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return None
            return entry

    def put(
        self,
        secret_name: str,
        version_id: str | None,
        value: str,
        ttl: timedelta | None = None,
    ) -> None:
        """Store a value, overwriting any existing entry with a fresh expiry.

        Args:
            secret_name: Secret name or ARN.
            version_id: Version ID, None for the current version.
            value: Decoded secret string.
            ttl: Time to live. Defaults to the cache's default TTL.
        """
        key = self.make_key(secret_name, version_id)
        now = self._clock()
        entry = CachedSecret(
            name=secret_name,
            value=value,
            version_id=version_id,
            cached_at=now,
            expires_at=now + (self.default_ttl if ttl is None else ttl),
        )
        with self._lock:
            self._entries.pop(key, None)
            if self.max_size is not None and len(self._entries) >= self.max_size:
                self._evict(now)
            self._entries[key] = entry

    def invalidate(self, secret_name: str) -> bool:
        """Remove the unversioned entry for a secret.

        Versioned entries for the same secret are left in place.

        Returns:
            True if an entry was removed.
        """
        with self._lock:
            removed = self._entries.pop(self.make_key(secret_name), None) is not None
        logger.debug(f"Invalidated cache for secret '{secret_name}' (removed={removed})")
        return removed

    def clear(self) -> int:
        """Remove every entry.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.debug(f"Cleared {count} secret cache entries")
        return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _evict(self, now: datetime) -> None:
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        while self.max_size is not None and len(self._entries) >= self.max_size:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            logger.debug(f"Evicted secret cache entry '{oldest}' (cache full)")
