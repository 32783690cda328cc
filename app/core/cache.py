"""In-process TTL cache for computed analytics results.

The store is a plain dict guarded by a lock. Entries carry an absolute expiry
time; reads treat an expired entry as absent, so the periodic reaper only
reclaims memory and is never needed for correctness.

Capacity is a hard bound: once ``max_keys`` live entries exist, writes of new
keys are rejected instead of evicting somebody else's entry.
"""

import asyncio
import threading
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel
from starlette.requests import Request

from app.core.exceptions import CacheError
from app.core.logging import get_logger

logger = get_logger(__name__)

KEY_DELIMITER = ":"


# =============================================================================
# Key derivation
# =============================================================================


def _render_value(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    return str(value)


def derive_key(operation: str, params: Mapping[str, Any] | BaseModel | None = None) -> str:
    """Derive a deterministic cache key from an operation and its parameters.

    Fields are sorted by name and rendered as ``field:value``; fields whose
    value is ``None`` are left out, so an omitted optional filter and an
    explicit ``None`` give the same key.

    Args:
        operation: Operation name, used as the key prefix.
        params: Parameter mapping or pydantic model.

    Returns:
        Key of the form ``operation:field:value:field:value``.

    Example:
        >>> derive_key("sales", {"offset": 0, "limit": 20})
        'sales:limit:20:offset:0'
    """
    if isinstance(params, BaseModel):
        data: dict[str, Any] = params.model_dump(exclude_none=True)
    else:
        data = {field: value for field, value in (params or {}).items() if value is not None}

    parts = [f"{field}{KEY_DELIMITER}{_render_value(data[field])}" for field in sorted(data)]
    return f"{operation}{KEY_DELIMITER}{KEY_DELIMITER.join(parts)}"


# =============================================================================
# Cache store
# =============================================================================


@dataclass(slots=True)
class CacheEntry:
    """A single cached value. Never handed out of the store."""

    value: Any
    created_at: float
    expires_at: float
    access_count: int = 0

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of cache counters."""

    hits: int
    misses: int
    sets: int
    deletes: int
    keys: int

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return round(self.hits / lookups * 100, 2) if lookups else 0.0


class CacheStore:
    """Thread-safe key/value store with per-entry TTL and a capacity bound.

    Created once at application startup and passed to whoever needs it;
    ``start()``/``stop()`` manage the background reaper.
    """

    def __init__(
        self,
        default_ttl: int = 300,
        max_keys: int = 10000,
        check_period: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize an empty cache.

        Args:
            default_ttl: TTL in seconds used when ``set`` gets none.
            max_keys: Maximum number of stored entries.
            check_period: Seconds between reaper sweeps.
            clock: Monotonic time source, injectable for tests.
        """
        if default_ttl <= 0:
            raise ValueError(f"default_ttl must be positive, got {default_ttl}")
        if max_keys <= 0:
            raise ValueError(f"max_keys must be positive, got {max_keys}")

        self.default_ttl = default_ttl
        self.max_keys = max_keys
        self.check_period = check_period
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._deletes = 0
        self._reaper: asyncio.Task[None] | None = None

    @contextmanager
    def _guard(self, operation: str, key: str) -> Iterator[None]:
        """Surface any internal failure of ``operation`` as CacheError."""
        try:
            yield
        except Exception as e:
            raise CacheError(
                f"Cache {operation} failed for {key!r}",
                details={"operation": operation, "key": key, "error_type": type(e).__name__},
            ) from e

    def get(self, key: str) -> Any | None:
        """Return the cached value for ``key``, or None if absent or expired."""
        expired = False
        with self._guard("get", key), self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_expired(self._clock()):
                del self._entries[key]
                entry = None
                expired = True

            if entry is None:
                self._misses += 1
            else:
                self._hits += 1
                entry.access_count += 1

        if expired:
            logger.debug("cache.key_expired", key=key)
        if entry is None:
            logger.debug("cache.miss", key=key)
            return None

        logger.debug("cache.hit", key=key)
        return entry.value

    def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Store ``value`` under ``key``.

        Args:
            key: Cache key.
            value: Value to store.
            ttl: Time-to-live in seconds; defaults to ``default_ttl``.

        Returns:
            True if stored, False if the cache is full.
        """
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")

        with self._guard("set", key), self._lock:
            now = self._clock()
            full = False
            expired_keys: list[str] = []
            if key not in self._entries and len(self._entries) >= self.max_keys:
                expired_keys = self._purge_expired_locked(now)
                full = len(self._entries) >= self.max_keys

            if not full:
                self._entries[key] = CacheEntry(value=value, created_at=now, expires_at=now + ttl)
                self._sets += 1

        for expired_key in expired_keys:
            logger.debug("cache.key_expired", key=expired_key)
        if full:
            logger.warning("cache.set_rejected", key=key, max_keys=self.max_keys)
            return False

        logger.debug("cache.set", key=key, ttl=ttl)
        return True

    def delete(self, key: str) -> int:
        """Remove ``key``; returns the number of entries removed (0 or 1)."""
        with self._guard("delete", key), self._lock:
            removed = 1 if self._entries.pop(key, None) is not None else 0
            self._deletes += removed

        logger.debug("cache.delete", key=key, removed=removed)
        return removed

    def invalidate(self, prefix: str) -> int:
        """Remove every key starting with ``prefix``.

        Returns:
            Number of removed entries.
        """
        with self._guard("invalidate", prefix), self._lock:
            doomed = [key for key in self._entries if key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
            self._deletes += len(doomed)

        if doomed:
            logger.info("cache.invalidated", prefix=prefix, removed=len(doomed))
        return len(doomed)

    def flush(self) -> None:
        """Drop every entry. Counters are kept."""
        with self._lock:
            self._entries.clear()
        logger.info("cache.flushed")

    def purge_expired(self) -> int:
        """Physically remove expired entries; returns how many were removed."""
        with self._lock:
            expired_keys = self._purge_expired_locked(self._clock())
        for key in expired_keys:
            logger.debug("cache.key_expired", key=key)
        if expired_keys:
            logger.debug("cache.expired_purged", removed=len(expired_keys))
        return len(expired_keys)

    def _purge_expired_locked(self, now: float) -> list[str]:
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return expired

    def keys(self) -> list[str]:
        """Keys of live (unexpired) entries."""
        with self._lock:
            now = self._clock()
            return [key for key, entry in self._entries.items() if not entry.is_expired(now)]

    def __contains__(self, key: object) -> bool:
        with self._lock:
            entry = self._entries.get(key) if isinstance(key, str) else None
            return entry is not None and not entry.is_expired(self._clock())

    def __len__(self) -> int:
        return len(self.keys())

    def stats(self) -> CacheStats:
        """Return a snapshot of the running counters."""
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                sets=self._sets,
                deletes=self._deletes,
                keys=len(self._entries),
            )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._reaper is not None and not self._reaper.done()

    def start(self) -> None:
        """Start the background reaper on the running event loop."""
        if self.is_running:
            return
        self._reaper = asyncio.create_task(self._reap_forever(), name="cache-reaper")
        logger.info("cache.reaper_started", check_period=self.check_period)

    async def stop(self) -> None:
        """Cancel the reaper and drop all entries."""
        if self._reaper is not None:
            self._reaper.cancel()
            try:
                await self._reaper
            except asyncio.CancelledError:
                pass
            self._reaper = None
        self.flush()
        logger.info("cache.reaper_stopped")

    async def _reap_forever(self) -> None:
        while True:
            await asyncio.sleep(self.check_period)
            self.purge_expired()


# =============================================================================
# FastAPI dependency
# =============================================================================


def get_cache(request: Request) -> CacheStore:
    """Dependency returning the cache created during application startup."""
    cache: CacheStore = request.app.state.cache
    return cache
