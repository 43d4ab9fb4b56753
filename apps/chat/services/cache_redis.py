"""Redis cache backend (redis-py, decode_responses=True). TTL is enforced by Redis itself."""

import logging

from redis import Redis
from redis.exceptions import RedisError

from apps.chat.services.cache import CacheBackendError

logger = logging.getLogger(__name__)


class RedisCacheBackend:
    """Thin wrapper over a shared Redis client. Client is injected; from_url() builds one."""

    def __init__(self, client: Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, redis_url: str) -> "RedisCacheBackend":
        """Connect and ping. A failed ping at startup is fatal."""
        client = Redis.from_url(redis_url, decode_responses=True)
        try:
            client.ping()
        except RedisError as e:
            client.close()
            raise CacheBackendError(f"Redis unavailable at startup: {e}") from e
        logger.info("Redis client connected")
        return cls(client)

    def get(self, key: str) -> str | None:
        try:
            return self._client.get(key)
        except RedisError as e:
            raise CacheBackendError(str(e)) from e

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        try:
            if ttl_seconds is not None and ttl_seconds > 0:
                self._client.setex(key, ttl_seconds, value)
            else:
                self._client.set(key, value)
        except RedisError as e:
            raise CacheBackendError(str(e)) from e

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except RedisError as e:
            raise CacheBackendError(str(e)) from e

    def exists(self, key: str) -> bool:
        try:
            return self._client.exists(key) == 1
        except RedisError as e:
            raise CacheBackendError(str(e)) from e

    def keys(self, pattern: str) -> list[str]:
        # cursor-based SCAN, not KEYS
        try:
            return list(self._client.scan_iter(match=pattern))
        except RedisError as e:
            raise CacheBackendError(str(e)) from e

    def expire(self, key: str, seconds: int) -> bool:
        try:
            return bool(self._client.expire(key, seconds))
        except RedisError as e:
            raise CacheBackendError(str(e)) from e

    def ttl(self, key: str) -> int:
        try:
            return int(self._client.ttl(key))
        except RedisError as e:
            raise CacheBackendError(str(e)) from e

    def close(self) -> None:
        self._client.close()
        logger.info("Redis client disconnected")
