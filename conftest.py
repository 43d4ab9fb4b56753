"""Root conftest: offline, deterministic environment and shared fixtures for ALL test paths (tests/, apps/chat/tests/)."""

import os
from datetime import datetime, timedelta, timezone
from fnmatch import fnmatchcase

import pytest

# Deterministic providers: no network, no API key needed
os.environ.setdefault("ENV", "test")
os.environ.setdefault("PYTEST_RUNNING", "1")
os.environ["EMBED_PROVIDER"] = "deterministic"
os.environ["LLM_PROVIDER"] = "deterministic"

from apps.chat.config import Settings
from apps.chat.services.cache import TTL_MISSING, TTL_NO_EXPIRY, CacheBackendError, KeyValueCache
from apps.chat.services.cache_sql import SqlCacheBackend

START = datetime(2026, 1, 29, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class DictBackend:
    """In-memory CacheBackend with clock-driven expiry and switchable failures."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.data: dict[str, tuple[str, datetime | None]] = {}
        self.fail_reads = False
        self.fail_writes = False
        self.set_calls = 0
        self.closed = False

    def _check(self, write: bool) -> None:
        if (write and self.fail_writes) or (not write and self.fail_reads):
            raise CacheBackendError("connection refused")

    def _live(self, key: str) -> str | None:
        item = self.data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and expires_at <= self.clock():
            del self.data[key]
            return None
        return value

    def get(self, key):
        self._check(False)
        return self._live(key)

    def set(self, key, value, ttl_seconds=None):
        self._check(True)
        self.set_calls += 1
        expires_at = self.clock() + timedelta(seconds=ttl_seconds) if ttl_seconds else None
        self.data[key] = (value, expires_at)

    def delete(self, key):
        self._check(True)
        self.data.pop(key, None)

    def exists(self, key):
        self._check(False)
        return self._live(key) is not None

    def keys(self, pattern):
        self._check(False)
        return [k for k in list(self.data) if self._live(k) is not None and fnmatchcase(k, pattern)]

    def expire(self, key, seconds):
        self._check(True)
        value = self._live(key)
        if value is None:
            return False
        self.data[key] = (value, self.clock() + timedelta(seconds=seconds))
        return True

    def ttl(self, key):
        self._check(False)
        if self._live(key) is None:
            return TTL_MISSING
        expires_at = self.data[key][1]
        if expires_at is None:
            return TTL_NO_EXPIRY
        return int((expires_at - self.clock()).total_seconds())

    def close(self):
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(env="test")


@pytest.fixture
def sql_backend(clock):
    """SQL backend on a private in-memory SQLite database."""
    backend = SqlCacheBackend.from_url("sqlite://", clock=clock)
    yield backend
    backend.close()


@pytest.fixture
def dict_backend(clock) -> DictBackend:
    return DictBackend(clock)


@pytest.fixture
def cache(sql_backend) -> KeyValueCache:
    return KeyValueCache(sql_backend)
