"""
Response caching for TuneBridge

Three pieces live here:

- TTLCache: in-memory key/value store with a maximum age and a size ceiling.
  It backs both the HTTP client and the resolution chain.
- PersistentCache: durable variant that keeps JSON entries in the local
  key-value store so responses survive a restart.
- CacheSweeper: background task that periodically evicts expired entries
  from a set of TTL caches, bounding memory for keys that are never read
  again.

Time is read through an injectable clock (seconds since the epoch) so that
expiry can be tested without sleeping. Failed fetches are never stored by
any of these classes' callers: there is no negative caching.
"""

import asyncio
import json
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterable, List, Optional, TypeVar

from ..storage.kvstore import KeyValueStore
from ..utils.logger import get_logger


V = TypeVar('V')

Clock = Callable[[], float]

PERSISTENT_CACHE_PREFIX = 'api_cache:'


@dataclass
class CacheEntry(Generic[V]):
    """A cached value and the clock reading taken when it was stored"""
    value: V
    inserted_at: float


class TTLCache(Generic[V]):
    """
    Key/value cache with max-age expiry and least-recently-inserted eviction

    Entries are immutable once stored: set() replaces the entry and restamps
    it. Expired entries found by get() are deleted on the spot; evict_expired()
    removes the rest. None of the methods await, so callers never observe a
    half-updated cache.

    Attributes:
        max_age: Seconds an entry stays valid
        max_size: Maximum number of entries kept
    """

    def __init__(self, max_age: float = 300.0, max_size: int = 100, clock: Optional[Clock] = None):
        """
        Initialize an empty cache

        Args:
            max_age: Seconds an entry stays valid
            max_size: Maximum number of entries kept (at least 1)
            clock: Callable returning the current time in seconds
        """
        if max_age <= 0:
            raise ValueError("max_age must be positive")

        self.max_age = max_age
        self.max_size = max(1, max_size)
        self._clock = clock or time.time
        self._entries: 'OrderedDict[str, CacheEntry[V]]' = OrderedDict()
        self.logger = get_logger(__name__)

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.inserted_at >= self.max_age

    def get(self, key: str) -> Optional[V]:
        """
        Return the cached value for key

        Args:
            key: Cache key

        Returns:
            The value, or None when absent or expired
        """
        entry = self._entries.get(key)
        if entry is None:
            return None

        if self._is_expired(entry, self._clock()):
            del self._entries[key]
            return None

        return entry.value

    def set(self, key: str, value: V) -> None:
        """
        Store value under key, replacing any previous entry

        When the cache is full, expired entries are dropped first and then the
        oldest insertions until there is room.

        Args:
            key: Cache key
            value: Value to store
        """
        now = self._clock()

        # Re-inserting moves the key to the newest position
        self._entries.pop(key, None)

        if len(self._entries) >= self.max_size:
            self._evict_expired_at(now)
            while len(self._entries) >= self.max_size:
                oldest, _ = self._entries.popitem(last=False)
                self.logger.debug(f"Cache full, dropped oldest entry: {oldest}")

        self._entries[key] = CacheEntry(value=value, inserted_at=now)

    def _evict_expired_at(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def evict_expired(self) -> int:
        """
        Remove every expired entry

        Returns:
            Number of entries removed
        """
        return self._evict_expired_at(self._clock())

    def delete(self, key: str) -> bool:
        """Remove key, returning whether it was present"""
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> List[str]:
        return list(self._entries.keys())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


class PersistentCache:
    """
    Durable response cache stored in a key-value store

    Entries are JSON documents {"data": ..., "timestamp": ...} stored under
    the "api_cache:" prefix. Storage failures are logged as warnings and
    otherwise ignored: the persistent cache is an optimization, never a
    reason for a request to fail.
    """

    def __init__(
        self,
        store: KeyValueStore,
        max_age: float = 300.0,
        clock: Optional[Clock] = None,
        prefix: str = PERSISTENT_CACHE_PREFIX
    ):
        self.store = store
        self.max_age = max_age
        self.prefix = prefix
        self._clock = clock or time.time
        self.logger = get_logger(__name__)

    def _storage_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str) -> Optional[Any]:
        """
        Read a cached payload

        Args:
            key: Cache key (without prefix)

        Returns:
            Cached data, or None when missing, expired or unreadable
        """
        storage_key = self._storage_key(key)
        try:
            raw = await self.store.get_item(storage_key)
            if raw is None:
                return None

            entry = json.loads(raw)
            if self._clock() - float(entry['timestamp']) >= self.max_age:
                await self.store.remove_item(storage_key)
                return None

            return entry['data']

        except (OSError, ValueError, KeyError, TypeError) as e:
            self.logger.warning(f"Error reading persistent cache entry {key}: {e}")
            return None

    async def set(self, key: str, data: Any) -> None:
        """
        Write a payload to the store

        Args:
            key: Cache key (without prefix)
            data: JSON-serializable payload
        """
        try:
            entry = json.dumps({'data': data, 'timestamp': self._clock()})
            await self.store.set_item(self._storage_key(key), entry)
        except (OSError, ValueError, TypeError) as e:
            self.logger.warning(f"Error writing persistent cache entry {key}: {e}")

    async def clear(self) -> int:
        """
        Remove every entry owned by this cache

        Returns:
            Number of entries removed
        """
        try:
            keys = [key for key in await self.store.get_all_keys() if key.startswith(self.prefix)]
            if keys:
                await self.store.multi_remove(keys)
            self.logger.info(f"Cleared {len(keys)} persistent cache entries")
            return len(keys)
        except OSError as e:
            self.logger.warning(f"Error clearing persistent cache: {e}")
            return 0


class CacheSweeper:
    """
    Periodically evicts expired entries from one or more TTL caches

    Runs as an asyncio task between start() and stop(). The sweep is
    independent of the read path.
    """

    def __init__(self, caches: Iterable[TTLCache], interval: float = 900.0):
        """
        Initialize sweeper

        Args:
            caches: Caches to sweep
            interval: Seconds between sweeps
        """
        self.caches = list(caches)
        self.interval = interval
        self._task: Optional[asyncio.Task] = None
        self.logger = get_logger(__name__)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep(self) -> int:
        """
        Evict expired entries from every cache once

        Returns:
            Total number of entries removed
        """
        removed = sum(cache.evict_expired() for cache in self.caches)
        if removed:
            self.logger.debug(f"Cache sweep removed {removed} expired entries")
        return removed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.sweep()

    def start(self) -> None:
        """Start the sweep task on the running loop (no-op if already running)"""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        """Cancel the sweep task and wait for it to finish"""
        task, self._task = self._task, None
        if task is None:
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
