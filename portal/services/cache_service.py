"""
Company-scoped Redis cache.

Keys look like ``{prefix}:company:{company_id}:{module}:{key}``, so a company's
entries can be dropped module by module without touching other tenants.
When Redis is down or disabled every read misses and every write is skipped.
"""

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Optional

import redis
from redis.exceptions import RedisError
from flask import Flask, current_app

logger = logging.getLogger(__name__)

# Modules a company's data is cached under
SCOPED_MODULES = ('catalog', 'orders', 'users', 'companies')


def _encode(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return {'__decimal__': str(obj)}
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    raise TypeError(f"{type(obj).__name__} cannot be cached")


def _decode(obj: dict) -> Any:
    if '__decimal__' in obj:
        return Decimal(obj['__decimal__'])
    return obj


class CacheService:
    """Thin wrapper over a Redis client, namespaced per company and module."""

    def __init__(self, app: Optional[Flask] = None):
        self.client: Optional[redis.Redis] = None
        self.prefix = 'portal'
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        self.prefix = app.config.get('CACHE_KEY_PREFIX', 'portal')
        if not app.config.get('CACHE_ENABLED', True):
            logger.info("[CACHE] disabled by configuration")
            return

        url = app.config.get('REDIS_URL', 'redis://localhost:6379/0')
        client = redis.from_url(url, decode_responses=True, socket_connect_timeout=3, socket_timeout=3)
        try:
            client.ping()
        except RedisError as e:
            logger.warning(f"[CACHE] Redis unreachable at {url}: {e}; running uncached")
            return
        self.client = client
        logger.info(f"[CACHE] connected to {url}")

    def is_available(self) -> bool:
        if self.client is None:
            return False
        try:
            return bool(self.client.ping())
        except RedisError:
            return False

    def key(self, company_id: int, module: str, key: str) -> str:
        return f"{self.prefix}:company:{company_id}:{module}:{key}"

    def get(self, company_id: int, module: str, key: str) -> Optional[Any]:
        if self.client is None:
            return None
        try:
            raw = self.client.get(self.key(company_id, module, key))
            return None if raw is None else json.loads(raw, object_hook=_decode)
        except (RedisError, ValueError) as e:
            logger.warning(f"[CACHE] read failed for {module}/{key}: {e}")
            return None

    def set(self, company_id: int, module: str, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if self.client is None:
            return False
        if ttl is None:
            ttl = current_app.config.get('CACHE_DEFAULT_TTL', 60)
        try:
            self.client.setex(self.key(company_id, module, key), ttl, json.dumps(value, default=_encode))
            return True
        except (RedisError, TypeError) as e:
            logger.warning(f"[CACHE] write failed for {module}/{key}: {e}")
            return False

    def memoize(self, company_id: int, module: str, key: str, loader: Callable[[], Any],
                ttl: Optional[int] = None) -> Any:
        """Return the cached value, or call loader() and cache its result."""
        value = self.get(company_id, module, key)
        if value is None:
            value = loader()
            self.set(company_id, module, key, value, ttl)
        return value

    def invalidate_module(self, company_id: int, module: str) -> int:
        """Drop every key a company holds under one module."""
        if self.client is None:
            return 0
        pattern = self.key(company_id, module, '*')
        try:
            keys = list(self.client.scan_iter(match=pattern, count=100))
            if keys:
                self.client.delete(*keys)
        except RedisError as e:
            logger.warning(f"[CACHE] invalidation of {pattern} failed: {e}")
            return 0
        if keys:
            logger.info(f"[CACHE] invalidated {len(keys)} keys under {pattern}")
        return len(keys)

    def invalidate_company(self, company_id: int) -> int:
        return sum(self.invalidate_module(company_id, module) for module in SCOPED_MODULES)


_cache: Optional[CacheService] = None


def init_cache(app: Flask) -> None:
    global _cache
    _cache = CacheService(app)
    app.extensions['cache'] = _cache


def get_cache() -> CacheService:
    """The app's cache; RuntimeError before init_cache ran."""
    if _cache is None:
        raise RuntimeError("Cache not initialized.")
    return _cache
