"""JSON key-value cache with per-key TTL on top of a pluggable string backend.

Reads degrade: backend errors and corrupt payloads are logged and reported as absent.
Writes propagate CacheBackendError to the caller.
"""

import json
import logging
from datetime import date, datetime
from typing import Any, Protocol, runtime_checkable

from apps.chat.utils.clock import to_iso

logger = logging.getLogger(__name__)

TTL_MISSING = -2
TTL_NO_EXPIRY = -1


class CacheBackendError(RuntimeError):
    """Raised by backends when the underlying store fails (connection, query, protocol)."""

    pass


@runtime_checkable
class CacheBackend(Protocol):
    """String store with optional per-key TTL. Keys are passed through untouched."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None: ...

    def delete(self, key: str) -> None: ...

    def exists(self, key: str) -> bool: ...

    def keys(self, pattern: str) -> list[str]: ...

    def expire(self, key: str, seconds: int) -> bool: ...

    def ttl(self, key: str) -> int: ...

    def close(self) -> None: ...


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, date):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dumps(value: Any) -> str:
    """Canonical JSON form used for every cached payload."""
    return json.dumps(value, ensure_ascii=False, default=_json_default)


class KeyValueCache:
    """
    Namespaced JSON cache. key_prefix is prepended to every key on the way in
    and stripped from keys() results on the way out.
    """

    def __init__(self, backend: CacheBackend, key_prefix: str = "") -> None:
        self._backend = backend
        self._prefix = key_prefix or ""

    @property
    def backend(self) -> CacheBackend:
        return self._backend

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """Serialize value and store it. ttl_seconds None = no expiry."""
        payload = dumps(value)
        self._backend.set(self._key(key), payload, ttl_seconds)

    def get(self, key: str, *, strict: bool = False) -> Any | None:
        """
        Return the cached value, or None if never set, expired, unreadable or corrupt.
        strict=True re-raises backend errors (for read-modify-write callers); corrupt JSON is still None.
        """
        try:
            raw = self._backend.get(self._key(key))
        except CacheBackendError as e:
            logger.error("Cache read failed for key %s: %s", key, e)
            if strict:
                raise
            return None
        if not raw:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.error("Failed to parse JSON for key %s: %s", key, e)
            return None

    def delete(self, key: str) -> None:
        """Remove key. No error if absent."""
        self._backend.delete(self._key(key))

    def exists(self, key: str) -> bool:
        try:
            return self._backend.exists(self._key(key))
        except CacheBackendError as e:
            logger.error("Cache exists check failed for key %s: %s", key, e)
            return False

    def keys(self, pattern: str) -> list[str]:
        """Live keys matching a glob pattern (* and ?), prefix stripped, sorted."""
        try:
            found = self._backend.keys(self._key(pattern))
        except CacheBackendError as e:
            logger.error("Cache key listing failed for pattern %s: %s", pattern, e)
            return []
        n = len(self._prefix)
        return sorted(k[n:] for k in found if k.startswith(self._prefix))

    def expire(self, key: str, seconds: int) -> bool:
        """Reset TTL on an existing key. Returns False if the key is absent."""
        return self._backend.expire(self._key(key), seconds)

    def ttl(self, key: str) -> int:
        """Remaining TTL in seconds; -1 = no expiry, -2 = absent."""
        try:
            return self._backend.ttl(self._key(key))
        except CacheBackendError as e:
            logger.error("Cache ttl lookup failed for key %s: %s", key, e)
            return TTL_MISSING

    def close(self) -> None:
        self._backend.close()
