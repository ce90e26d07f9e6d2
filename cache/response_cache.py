"""Thread-safe TTL cache for successful search responses."""

import asyncio
import threading
import time
import zlib
from dataclasses import dataclass
from typing import Awaitable, Callable

from sqlalchemy.exc import SQLAlchemyError

from models.search import SearchOutcome, SearchSuccess
from utils.logger import get_logger
from utils.metrics import SearchMetrics

from .keys import source_of_key
from .storage import SqliteCacheStorage

logger = get_logger(__name__)

DEFAULT_SHARDS = 16


@dataclass(frozen=True)
class CacheEntry:
    key: str
    payload: SearchSuccess
    stored_at: float
    ttl: float

    def is_fresh(self, now: float, ttl: float | None = None) -> bool:
        return now - self.stored_at < (self.ttl if ttl is None else ttl)


class _Shard:
    __slots__ = ("entries", "lock")

    def __init__(self):
        self.entries: dict[str, CacheEntry] = {}
        self.lock = threading.Lock()


class ResponseCache:
    """
    In-memory response cache with an optional persistent tier.

    Entries live in N shards, each guarded by its own threading.Lock, so
    lookups for different keys rarely contend. Only SearchSuccess values are
    stored; failures always pass straight through to the caller.

    Two concurrent misses for the same key may both fetch; the later store
    simply replaces the earlier one.
    """

    def __init__(
        self,
        shards: int = DEFAULT_SHARDS,
        storage: SqliteCacheStorage | None = None,
        metrics: SearchMetrics | None = None,
        clock: Callable[[], float] = time.time,
        enabled: bool = True,
    ):
        """
        Initialize the cache.

        Args:
            shards: Number of independently locked shards
            storage: Optional SQLite tier consulted on memory misses
            metrics: Receives hit/miss counts per source
            clock: Returns the current time in seconds
            enabled: When False every call goes straight to fetch_fn
        """
        if shards < 1:
            raise ValueError("shards must be >= 1")
        self._shards = [_Shard() for _ in range(shards)]
        self._storage = storage
        self._metrics = metrics
        self._clock = clock
        self.enabled = enabled

    def _shard(self, key: str) -> _Shard:
        return self._shards[zlib.crc32(key.encode("utf-8")) % len(self._shards)]

    # ------------------------------------------------------------------
    # Memory tier
    # ------------------------------------------------------------------

    def get(self, key: str, ttl: float) -> SearchSuccess | None:
        """Return a fresh in-memory value, dropping it if stale."""
        shard = self._shard(key)
        now = self._clock()
        with shard.lock:
            entry = shard.entries.get(key)
            if entry is None:
                return None
            if entry.is_fresh(now, ttl):
                return entry.payload
            del shard.entries[key]
            return None

    def put(self, key: str, value: SearchSuccess, ttl: float) -> CacheEntry:
        entry = CacheEntry(key=key, payload=value, stored_at=self._clock(), ttl=ttl)
        shard = self._shard(key)
        with shard.lock:
            shard.entries[key] = entry
        return entry

    def invalidate(self, key: str) -> None:
        shard = self._shard(key)
        with shard.lock:
            shard.entries.pop(key, None)
        if self._storage is not None:
            self._storage.delete(key)

    def clear(self) -> None:
        """Drop every entry in both tiers."""
        for shard in self._shards:
            with shard.lock:
                shard.entries.clear()
        if self._storage is not None:
            self._storage.clear()

    def purge_expired(self) -> int:
        """Remove entries past their stored TTL. Returns the number removed."""
        now = self._clock()
        removed = 0
        for shard in self._shards:
            with shard.lock:
                stale = [k for k, e in shard.entries.items() if not e.is_fresh(now)]
                for key in stale:
                    del shard.entries[key]
                removed += len(stale)
        if self._storage is not None:
            removed += self._storage.purge_expired(now)
        return removed

    def __len__(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.entries)
        return total

    # ------------------------------------------------------------------
    # Persistent tier
    # ------------------------------------------------------------------

    async def _load_persistent(self, key: str, ttl: float) -> SearchSuccess | None:
        loop = asyncio.get_running_loop()
        try:
            row = await loop.run_in_executor(None, self._storage.get, key)
        except SQLAlchemyError as e:
            logger.warning(
                f"Cache storage read failed: {e}",
                extra={"extra_fields": {"key": key, "error_type": type(e).__name__}},
            )
            return None
        if row is None:
            return None

        payload, stored_at, stored_ttl = row
        if self._clock() - stored_at >= ttl:
            return None
        try:
            value = SearchSuccess.from_dict(payload)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(
                f"Discarding unreadable cache row: {e}",
                extra={"extra_fields": {"key": key}},
            )
            return None

        # Promote with the original timestamp so the entry expires on schedule
        shard = self._shard(key)
        with shard.lock:
            shard.entries[key] = CacheEntry(key=key, payload=value, stored_at=stored_at, ttl=stored_ttl)
        return value

    async def _store_persistent(self, key: str, entry: CacheEntry) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None,
                self._storage.put,
                key,
                source_of_key(key),
                entry.payload.to_dict(),
                entry.stored_at,
                entry.ttl,
            )
        except SQLAlchemyError as e:
            logger.warning(
                f"Cache storage write failed: {e}",
                extra={"extra_fields": {"key": key, "error_type": type(e).__name__}},
            )

    # ------------------------------------------------------------------
    # Public read-through API
    # ------------------------------------------------------------------

    async def get_or_fetch(
        self,
        key: str,
        ttl: float,
        fetch_fn: Callable[[], Awaitable[SearchOutcome]],
        bypass: bool = False,
    ) -> SearchOutcome:
        """
        Return a fresh cached success or call `fetch_fn` and cache its success.

        Args:
            key: Cache key from make_cache_key()
            ttl: Freshness window in seconds
            fetch_fn: Zero-argument coroutine factory doing the real request
            bypass: Skip both lookup and store

        Returns:
            The cached SearchSuccess, or whatever fetch_fn returned
        """
        if bypass or not self.enabled:
            return await fetch_fn()

        source = source_of_key(key)
        value = self.get(key, ttl)
        if value is None and self._storage is not None:
            value = await self._load_persistent(key, ttl)

        if value is not None:
            if self._metrics is not None:
                self._metrics.record_cache_hit(source)
            logger.debug("Cache hit", extra={"extra_fields": {"source": source, "key": key}})
            return value

        if self._metrics is not None:
            self._metrics.record_cache_miss(source)

        outcome = await fetch_fn()
        if isinstance(outcome, SearchSuccess):
            entry = self.put(key, outcome, ttl)
            if self._storage is not None:
                await self._store_persistent(key, entry)
        return outcome

    def close(self) -> None:
        """Release the persistent tier. Memory entries are left as they are."""
        if self._storage is not None:
            self._storage.close()
