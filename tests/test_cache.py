"""Test response caches and the cache sweeper"""

import asyncio
import json

import pytest

from conftest import FakeClock
from tunebridge.http.cache import CacheSweeper, PersistentCache, TTLCache
from tunebridge.storage.kvstore import MemoryKeyValueStore


class TestTTLCache:
    """Test in-memory cache expiry and eviction"""

    def test_get_returns_fresh_value(self, clock):
        """Value is served before max_age elapses"""
        cache = TTLCache(max_age=300, clock=clock)
        cache.set('k', {'v': 1})
        clock.advance(299)
        assert cache.get('k') == {'v': 1}

    def test_expired_value_is_absent_and_deleted(self, clock):
        """Entry at exactly max_age is expired and removed on read"""
        cache = TTLCache(max_age=300, clock=clock)
        cache.set('k', 'v')
        clock.advance(300)
        assert cache.get('k') is None
        assert 'k' not in cache.keys()

    def test_missing_key(self):
        cache = TTLCache()
        assert cache.get('nothing') is None

    def test_set_restamps_entry(self, clock):
        """Overwriting a key restarts its lifetime"""
        cache = TTLCache(max_age=100, clock=clock)
        cache.set('k', 'old')
        clock.advance(90)
        cache.set('k', 'new')
        clock.advance(90)
        assert cache.get('k') == 'new'

    def test_size_ceiling_evicts_oldest(self, clock):
        """Least recently inserted entry goes first"""
        cache = TTLCache(max_age=300, max_size=2, clock=clock)
        cache.set('a', 1)
        cache.set('b', 2)
        cache.set('c', 3)
        assert len(cache) == 2
        assert cache.get('a') is None
        assert cache.get('b') == 2
        assert cache.get('c') == 3

    def test_full_cache_prefers_evicting_expired(self, clock):
        """Expired entries are dropped before live ones when full"""
        cache = TTLCache(max_age=100, max_size=2, clock=clock)
        cache.set('old', 1)
        clock.advance(50)
        cache.set('young', 2)
        clock.advance(60)
        cache.set('new', 3)
        assert cache.keys() == ['young', 'new']

    def test_reinsert_moves_key_to_newest(self, clock):
        cache = TTLCache(max_age=300, max_size=2, clock=clock)
        cache.set('a', 1)
        cache.set('b', 2)
        cache.set('a', 10)
        cache.set('c', 3)
        assert cache.get('a') == 10
        assert cache.get('b') is None

    def test_evict_expired(self, clock):
        """Sweep removes only expired entries"""
        cache = TTLCache(max_age=100, clock=clock)
        cache.set('a', 1)
        clock.advance(60)
        cache.set('b', 2)
        clock.advance(50)
        assert cache.evict_expired() == 1
        assert cache.keys() == ['b']

    def test_delete_and_clear(self):
        cache = TTLCache()
        cache.set('a', 1)
        cache.set('b', 2)
        assert cache.delete('a') is True
        assert cache.delete('a') is False
        cache.clear()
        assert len(cache) == 0

    def test_contains(self, clock):
        cache = TTLCache(max_age=10, clock=clock)
        cache.set('a', 1)
        assert 'a' in cache
        clock.advance(10)
        assert 'a' not in cache

    def test_invalid_max_age(self):
        with pytest.raises(ValueError):
            TTLCache(max_age=0)


class TestPersistentCache:
    """Test the durable cache stored in a key-value store"""

    @pytest.mark.asyncio
    async def test_round_trip_uses_prefix(self, clock):
        """Entries are stored as JSON under the api_cache: prefix"""
        store = MemoryKeyValueStore()
        cache = PersistentCache(store, max_age=300, clock=clock)

        await cache.set('GET:https://x/search{}', {'results': [1, 2]})

        raw = await store.get_item('api_cache:GET:https://x/search{}')
        assert json.loads(raw) == {'data': {'results': [1, 2]}, 'timestamp': clock.now}
        assert await cache.get('GET:https://x/search{}') == {'results': [1, 2]}

    @pytest.mark.asyncio
    async def test_expired_entry_is_removed(self, clock):
        store = MemoryKeyValueStore()
        cache = PersistentCache(store, max_age=300, clock=clock)
        await cache.set('k', [1])

        clock.advance(300)

        assert await cache.get('k') is None
        assert await store.get_all_keys() == []

    @pytest.mark.asyncio
    async def test_corrupt_entry_is_ignored(self):
        """Unreadable entries behave like misses"""
        store = MemoryKeyValueStore({'api_cache:k': 'not json'})
        cache = PersistentCache(store)
        assert await cache.get('k') is None

    @pytest.mark.asyncio
    async def test_clear_only_touches_own_prefix(self):
        store = MemoryKeyValueStore({'api_cache:a': '{}', 'api_cache:b': '{}', 'preferences:quality': '160kbps'})
        cache = PersistentCache(store)

        assert await cache.clear() == 2
        assert await store.get_all_keys() == ['preferences:quality']

    @pytest.mark.asyncio
    async def test_unserializable_data_is_not_stored(self):
        store = MemoryKeyValueStore()
        cache = PersistentCache(store)
        await cache.set('k', object())
        assert await store.get_all_keys() == []


class TestCacheSweeper:
    """Test periodic expiry"""

    def test_sweep_covers_every_cache(self):
        clock = FakeClock()
        first = TTLCache(max_age=10, clock=clock)
        second = TTLCache(max_age=10, clock=clock)
        first.set('a', 1)
        second.set('b', 2)
        second.set('c', 3)
        clock.advance(11)

        sweeper = CacheSweeper([first, second], interval=900)
        assert sweeper.sweep() == 3

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        clock = FakeClock()
        cache = TTLCache(max_age=1, clock=clock)
        cache.set('a', 1)
        clock.advance(5)

        sweeper = CacheSweeper([cache], interval=0.01)
        sweeper.start()
        assert sweeper.running

        await asyncio.sleep(0.05)
        assert len(cache) == 0

        await sweeper.stop()
        assert not sweeper.running

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        sweeper = CacheSweeper([])
        await sweeper.stop()
        assert not sweeper.running
