"""
Unit tests for the generation-keyed Redis cache.
"""

from decimal import Decimal

from redis.exceptions import ConnectionError

from storefront.services.cache_service import StoreCache


class MemoryRedis:
    """The handful of Redis commands the cache issues, kept in a dict."""

    def __init__(self):
        self.data = {}
        self.ttls = {}

    def ping(self):
        return True

    def get(self, key):
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl

    def incr(self, key):
        self.data[key] = str(int(self.data.get(key, 0)) + 1)
        return int(self.data[key])


class DownRedis(MemoryRedis):
    def ping(self):
        raise ConnectionError('down')

    def get(self, key):
        raise ConnectionError('down')


def _cache(client):
    cache = StoreCache()
    cache.client = client
    return cache


class TestMemoize:
    def test_loads_once_then_serves_cached_value(self):
        calls = []
        cache = _cache(MemoryRedis())

        def loader():
            calls.append(1)
            return [{'code': 'EGP', 'exchange_rate': Decimal('48.5000')}]

        first = cache.memoize('currencies', 'active', loader, ttl=120)
        second = cache.memoize('currencies', 'active', loader, ttl=120)

        assert len(calls) == 1
        assert second == first
        assert second[0]['exchange_rate'] == Decimal('48.5000')
        assert cache.client.ttls['shop:currencies:g0:active'] == 120

    def test_invalidate_moves_module_to_new_generation(self):
        cache = _cache(MemoryRedis())
        cache.memoize('currencies', 'active', lambda: 'old')

        cache.invalidate_module('currencies')

        assert cache.memoize('currencies', 'active', lambda: 'new') == 'new'
        assert 'shop:currencies:g1:active' in cache.client.data

    def test_other_modules_keep_their_entries(self):
        cache = _cache(MemoryRedis())
        cache.memoize('shipping', 'zones', lambda: 'zones-v1')

        cache.invalidate_module('currencies')

        assert cache.memoize('shipping', 'zones', lambda: 'zones-v2') == 'zones-v1'


class TestWithoutRedis:
    def test_disabled_cache_always_loads(self):
        cache = StoreCache()
        assert cache.is_available() is False
        assert cache.memoize('currencies', 'active', lambda: 'fresh') == 'fresh'
        cache.invalidate_module('currencies')

    def test_connection_errors_fall_through_to_loader(self):
        cache = _cache(DownRedis())
        assert cache.is_available() is False
        assert cache.memoize('currencies', 'active', lambda: 'fresh') == 'fresh'
