"""Fixtures for chat service tests: mocked providers over the SQL cache."""

from unittest.mock import MagicMock

import pytest

from apps.chat.services.chat import ChatService


@pytest.fixture
def completion() -> MagicMock:
    m = MagicMock()
    m.complete.return_value = "Hello"
    return m


@pytest.fixture
def embedder() -> MagicMock:
    m = MagicMock()
    # query first, then one vector per document
    m.embed.side_effect = lambda texts, model, timeout=None: [[1.0, 0.0]] + [
        [1.0, 0.0] if t.startswith("relevant") else [0.0, 1.0] for t in texts[1:]
    ]
    return m


@pytest.fixture
def service(settings, cache, completion, embedder, clock) -> ChatService:
    return ChatService(settings, cache, completion, embedder, clock=clock)

