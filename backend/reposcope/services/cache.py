import json
import logging

import redis

from reposcope.config import settings


logger = logging.getLogger("reposcope.services.cache")

KEY_PREFIX = "reposcope:github:"


class ResponseCache:
    """Read-through JSON cache for upstream API responses.

    Disabled when no Redis URL is configured; Redis errors are logged and
    treated as cache misses.
    """

    def __init__(self, redis_url: str | None, ttl_seconds: int) -> None:
        self.ttl_seconds = ttl_seconds
        self._client = redis.Redis.from_url(redis_url, decode_responses=True) if redis_url else None

    @property
    def enabled(self) -> bool:
        return self._client is not None and self.ttl_seconds > 0

    def get(self, key: str):
        if not self.enabled:
            return None
        try:
            raw = self._client.get(KEY_PREFIX + key)
        except redis.RedisError as exc:
            logger.warning("cache.get_failed key=%s error=%s", key, exc)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("cache.decode_failed key=%s", key)
            return None

    def set(self, key: str, value) -> None:
        if not self.enabled:
            return
        try:
            self._client.set(KEY_PREFIX + key, json.dumps(value), ex=self.ttl_seconds)
        except redis.RedisError as exc:
            logger.warning("cache.set_failed key=%s error=%s", key, exc)

    def get_or_load(self, key: str, loader):
        cached = self.get(key)
        if cached is not None:
            return cached
        value = loader()
        self.set(key, value)
        return value


def build_response_cache() -> ResponseCache:
    return ResponseCache(settings.redis_url, settings.github_cache_ttl_seconds)
