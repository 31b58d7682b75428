"""
Redis read-through cache for slow-changing storefront data (currency rates).

Each module name owns a generation counter; entry keys embed the current
generation, so invalidating a module is a single INCR and stale entries
simply age out through their TTL. When Redis is disabled or unreachable
every lookup misses and callers read the database.
"""

import logging
import json
from typing import Any, Optional, Callable
from decimal import Decimal

import redis
from redis.exceptions import RedisError
from flask import Flask

logger = logging.getLogger(__name__)


def _encode(value: Any) -> str:
    def default(obj):
        if isinstance(obj, Decimal):
            return {'__decimal__': str(obj)}
        raise TypeError(f"Cannot cache value of type {type(obj).__name__}")
    return json.dumps(value, default=default)


def _decode(raw: str) -> Any:
    def hook(dct):
        if '__decimal__' in dct:
            return Decimal(dct['__decimal__'])
        return dct
    return json.loads(raw, object_hook=hook)


class StoreCache:
    """Keys: {prefix}:{module}:g{generation}:{key}"""

    def __init__(self, app: Optional[Flask] = None):
        self.client: Optional[redis.Redis] = None
        self.prefix = 'shop'
        self.default_ttl = 60
        if app:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        self.prefix = app.config.get('CACHE_KEY_PREFIX', 'shop')
        self.default_ttl = app.config.get('CACHE_DEFAULT_TTL', 60)
        if not app.config.get('CACHE_ENABLED', True):
            logger.info("[CACHE] Disabled via config")
            return

        redis_url = app.config.get('REDIS_URL', 'redis://redis:6379/0')
        try:
            client = redis.from_url(redis_url, decode_responses=True,
                                    socket_connect_timeout=3, socket_timeout=3)
            client.ping()
        except RedisError as e:
            logger.warning(f"[CACHE] Redis unreachable at {redis_url}: {e}. Running without cache.")
            return
        self.client = client
        logger.info(f"[CACHE] Redis connected: {redis_url}")

    def is_available(self) -> bool:
        if self.client is None:
            return False
        try:
            return bool(self.client.ping())
        except RedisError:
            return False

    def _generation(self, module: str) -> int:
        return int(self.client.get(f"{self.prefix}:{module}:gen") or 0)

    def memoize(self, module: str, key: str, loader_fn: Callable[[], Any], ttl: Optional[int] = None) -> Any:
        """Return the cached value for (module, key) or load, store and return it."""
        if self.client is None:
            return loader_fn()

        try:
            full_key = f"{self.prefix}:{module}:g{self._generation(module)}:{key}"
            raw = self.client.get(full_key)
            if raw is not None:
                return _decode(raw)
        except (RedisError, ValueError) as e:
            logger.warning(f"[CACHE] Read failed for {module}:{key}: {e}")
            return loader_fn()

        value = loader_fn()
        try:
            self.client.setex(full_key, ttl or self.default_ttl, _encode(value))
        except (RedisError, TypeError) as e:
            logger.warning(f"[CACHE] Write failed for {module}:{key}: {e}")
        return value

    def invalidate_module(self, module: str) -> None:
        if self.client is None:
            return
        try:
            generation = self.client.incr(f"{self.prefix}:{module}:gen")
            logger.info(f"[CACHE] {module} moved to generation {generation}")
        except RedisError as e:
            logger.warning(f"[CACHE] Invalidate failed for {module}: {e}")


_cache: Optional[StoreCache] = None


def init_cache(app: Flask) -> None:
    global _cache
    _cache = StoreCache(app)
    app.extensions['cache'] = _cache


def get_cache() -> Optional[StoreCache]:
    return _cache
