"""SQL cache backend. Stores payloads in the cache_entry table; expiry is checked on read."""

import logging
import math
from datetime import timedelta
from fnmatch import fnmatchcase

from sqlalchemy import delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from apps.chat.db import ensure_tables, make_engine, make_session_factory, session_scope
from apps.chat.models.cache_entry import CacheEntry
from apps.chat.services.cache import TTL_MISSING, TTL_NO_EXPIRY, CacheBackendError
from apps.chat.utils.clock import Clock, as_utc, utcnow

logger = logging.getLogger(__name__)

_GLOB_CHARS = "*?["


def _literal_prefix(pattern: str) -> str:
    """Part of a glob pattern before the first wildcard. Used to narrow the SQL scan."""
    for i, ch in enumerate(pattern):
        if ch in _GLOB_CHARS:
            return pattern[:i]
    return pattern


class SqlCacheBackend:
    """
    Key-value backend on a SQLAlchemy engine.

    Expired rows are invisible to every read and are deleted lazily when a read
    touches them; purge_expired() removes them in bulk.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        engine: Engine | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._factory = session_factory
        self._engine = engine
        self._clock = clock

    @classmethod
    def from_url(cls, database_url: str, *, echo: bool = False, clock: Clock = utcnow) -> "SqlCacheBackend":
        """Create engine, ensure the cache table exists. Connection failures are fatal here."""
        engine = make_engine(database_url, echo=echo)
        try:
            ensure_tables(engine)
        except SQLAlchemyError as e:
            engine.dispose()
            raise CacheBackendError(f"cache database unavailable: {e}") from e
        logger.info("SQL cache backend ready: %s", engine.url.render_as_string(hide_password=True))
        return cls(make_session_factory(engine), engine=engine, clock=clock)

    def _expired(self, row: CacheEntry) -> bool:
        return row.expires_at is not None and as_utc(row.expires_at) <= self._clock()

    def _live_row(self, session: Session, key: str) -> CacheEntry | None:
        row = session.get(CacheEntry, key)
        if row is None:
            return None
        if self._expired(row):
            session.delete(row)
            return None
        return row

    def get(self, key: str) -> str | None:
        try:
            with session_scope(self._factory) as session:
                row = self._live_row(session, key)
                return row.payload_json if row is not None else None
        except SQLAlchemyError as e:
            raise CacheBackendError(str(e)) from e

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        expires_at = None
        if ttl_seconds is not None and ttl_seconds > 0:
            expires_at = self._clock() + timedelta(seconds=ttl_seconds)
        try:
            with session_scope(self._factory) as session:
                row = session.get(CacheEntry, key)
                if row:
                    row.payload_json = value
                    row.expires_at = expires_at
                else:
                    session.add(CacheEntry(cache_key=key, payload_json=value, expires_at=expires_at))
        except SQLAlchemyError as e:
            raise CacheBackendError(str(e)) from e

    def delete(self, key: str) -> None:
        try:
            with session_scope(self._factory) as session:
                session.execute(delete(CacheEntry).where(CacheEntry.cache_key == key))
        except SQLAlchemyError as e:
            raise CacheBackendError(str(e)) from e

    def exists(self, key: str) -> bool:
        return self.get(key) is not None

    def keys(self, pattern: str) -> list[str]:
        prefix = _literal_prefix(pattern)
        stmt = select(CacheEntry.cache_key, CacheEntry.expires_at)
        if prefix:
            stmt = stmt.where(CacheEntry.cache_key.startswith(prefix, autoescape=True))
        try:
            with session_scope(self._factory) as session:
                rows = session.execute(stmt).all()
        except SQLAlchemyError as e:
            raise CacheBackendError(str(e)) from e
        now = self._clock()
        return [
            key
            for key, expires_at in rows
            if (expires_at is None or as_utc(expires_at) > now) and fnmatchcase(key, pattern)
        ]

    def expire(self, key: str, seconds: int) -> bool:
        try:
            with session_scope(self._factory) as session:
                row = self._live_row(session, key)
                if row is None:
                    return False
                row.expires_at = self._clock() + timedelta(seconds=seconds)
                return True
        except SQLAlchemyError as e:
            raise CacheBackendError(str(e)) from e

    def ttl(self, key: str) -> int:
        try:
            with session_scope(self._factory) as session:
                row = self._live_row(session, key)
                if row is None:
                    return TTL_MISSING
                if row.expires_at is None:
                    return TTL_NO_EXPIRY
                remaining = (as_utc(row.expires_at) - self._clock()).total_seconds()
                return max(int(math.ceil(remaining)), 0)
        except SQLAlchemyError as e:
            raise CacheBackendError(str(e)) from e

    def purge_expired(self) -> int:
        """Delete all expired rows. Returns number of rows removed."""
        try:
            with session_scope(self._factory) as session:
                result = session.execute(
                    delete(CacheEntry).where(
                        CacheEntry.expires_at.is_not(None),
                        CacheEntry.expires_at <= self._clock(),
                    )
                )
                removed = result.rowcount or 0
        except SQLAlchemyError as e:
            raise CacheBackendError(str(e)) from e
        if removed:
            logger.info("Purged %d expired cache entries", removed)
        return removed

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            logger.info("SQL cache backend disconnected")
