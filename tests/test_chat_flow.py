"""End-to-end chat flow through bootstrap on a real SQL cache database."""

import os
from unittest.mock import MagicMock

import pytest
from sqlalchemy import text

from apps.chat.bootstrap import build_chat_service, chat_service_scope
from apps.chat.config import Settings, load_settings
from apps.chat.db import make_engine
from tests.conftest import requires_db


def _run_conversation(database_url: str) -> None:
    settings = Settings(env="test", database_url=database_url, cache_key_prefix="e2e:")
    with chat_service_scope(settings) as service:
        service.clear_history("Ann")
        assert service.create_chat("Hi", user_name="Ann", timestamp="2026-01-29T12:00:00.000Z") == (
            "[gpt-3.5-turbo] Hi"
        )
        service.create_chat("And again", user_name="Ann", model="gpt-4o-mini")

    # fresh service, same database: state survives restart
    with chat_service_scope(settings) as service:
        history = service.history_response("Ann").model_dump(by_alias=True, exclude_none=True)
        assert history["userName"] == "Ann"
        assert [(t["role"], t["content"]) for t in history["history"]] == [
            ("user", "Hi"),
            ("assistant", "[gpt-3.5-turbo] Hi"),
            ("user", "And again"),
            ("assistant", "[gpt-4o-mini] And again"),
        ]
        assert service.get_cached_user("Ann").name == "Ann"
        assert service.list_snapshots("Ann") == ["2026-01-29T12:00:00.000Z"]

        ack = service.clear_history("Ann")
        assert ack.message == "Conversation history cleared for Ann"
        assert service.get_history("Ann") == []
        assert service.get_snapshot("Ann", "2026-01-29T12:00:00.000Z") is not None


def test_conversation_persists_across_services_sqlite(sqlite_url) -> None:
    _run_conversation(sqlite_url)


def test_cache_rows_stored_as_json(sqlite_url) -> None:
    service = build_chat_service(Settings(env="test", database_url=sqlite_url))
    try:
        service.create_chat("Hi", user_name="Ann")
    finally:
        service.close()

    engine = make_engine(sqlite_url)
    try:
        with engine.connect() as conn:
            rows = dict(conn.execute(text("SELECT cache_key, payload_json FROM cache_entry")).all())
    finally:
        engine.dispose()
    assert set(rows) == {"user:Ann:profile", "conversation_history:Ann"}
    assert rows["conversation_history:Ann"].startswith("[")


@requires_db
def test_conversation_persists_across_services_postgres() -> None:
    _run_conversation(os.environ["DATABASE_TEST_URL"])


def test_requires_db_skipped_when_database_test_url_missing(monkeypatch) -> None:
    monkeypatch.delenv("DATABASE_TEST_URL", raising=False)

    from tests.conftest import _db_available_for_tests

    assert _db_available_for_tests() is False


@pytest.mark.parametrize("mode,expect_system", [("replace", False), ("merge", True)])
def test_rag_history_mode_from_environment(monkeypatch, sqlite_url, mode, expect_system) -> None:
    monkeypatch.setenv("DATABASE_URL", sqlite_url)
    monkeypatch.setenv("RAG_HISTORY_MODE", mode)
    completion = MagicMock()
    completion.complete.return_value = "ok"
    with chat_service_scope(load_settings(), completion=completion) as service:
        service.create_chat("q", user_name="Ann", use_rag=True, documents=["a", "b"])
    roles = [m["role"] for m in completion.complete.call_args.args[0]]
    assert ("system" in roles) is expect_system
