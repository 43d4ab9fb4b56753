"""Pytest fixtures for root-level tests (end-to-end flow, offline guarantees)."""

import os

import pytest
from sqlalchemy import create_engine

os.environ.setdefault("ENV", "test")
os.environ.setdefault("PYTEST_RUNNING", "1")
os.environ.setdefault("EMBED_PROVIDER", "deterministic")


def database_reachable(url: str, timeout: int = 2) -> bool:
    """Return True if the database at url accepts a connection. Short timeout to avoid flaky CI."""
    if not url or not url.strip().lower().startswith("postgresql"):
        return False
    eng = None
    try:
        eng = create_engine(url, connect_args={"connect_timeout": timeout})
        with eng.connect():
            return True
    except Exception:
        return False
    finally:
        if eng is not None:
            eng.dispose()


def _db_available_for_tests() -> bool:
    """True if DATABASE_TEST_URL is set and Postgres is reachable."""
    url = os.environ.get("DATABASE_TEST_URL")
    if not url:
        return False
    return database_reachable(url)


# Marker for tests against a real server database; SQLite runs always
requires_db = pytest.mark.skipif(
    not _db_available_for_tests(),
    reason="DATABASE_TEST_URL not set or Postgres not reachable",
)


@pytest.fixture
def sqlite_url(tmp_path) -> str:
    """File-backed SQLite so separate engines see the same data."""
    return f"sqlite:///{tmp_path / 'chat_cache.db'}"
