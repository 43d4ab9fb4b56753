"""
Chat-completion provider. messages in, reply text out.

LLM_PROVIDER=deterministic or ENV=test => DeterministicCompletionProvider (no network).
Otherwise an OpenAI-compatible /chat/completions endpoint over httpx.
"""

import logging
import os
from typing import Protocol, runtime_checkable

import httpx

from apps.chat.config import Settings
from apps.chat.services.upstream import UpstreamError, post_json

logger = logging.getLogger(__name__)

ChatMessage = dict[str, str]


@runtime_checkable
class CompletionProvider(Protocol):
    """Protocol for chat completion. Returns the assistant message content ("" if none)."""

    def complete(
        self,
        messages: list[ChatMessage],
        model: str,
        temperature: float,
        timeout: float | None = None,
    ) -> str:
        ...


class DeterministicCompletionProvider:
    """Echoes the last user message. No network."""

    def complete(
        self,
        messages: list[ChatMessage],
        model: str,
        temperature: float,
        timeout: float | None = None,
    ) -> str:
        last_user = next((m["content"] for m in reversed(messages) if m.get("role") == "user"), "")
        return f"[{model}] {last_user}"


class OpenAIChatProvider:
    def __init__(
        self,
        api_key: str | None,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._url = f"{base_url.rstrip('/')}/chat/completions"
        self._timeout = timeout
        self._transport = transport

    def complete(
        self,
        messages: list[ChatMessage],
        model: str,
        temperature: float,
        timeout: float | None = None,
    ) -> str:
        data = post_json(
            self._url,
            {"model": model, "messages": messages, "temperature": temperature},
            api_key=self._api_key,
            timeout=timeout or self._timeout,
            transport=self._transport,
        )
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamError("malformed completion response: missing choices[0].message") from e
        return content or ""


def get_llm_provider(settings: Settings) -> CompletionProvider:
    """Build the completion provider for these settings."""
    explicit = settings.llm_provider
    deterministic = explicit == "deterministic" or (
        explicit != "openai" and (settings.is_test or bool(os.getenv("PYTEST_CURRENT_TEST")))
    )
    if deterministic:
        logger.info("Using deterministic LLM provider")
        return DeterministicCompletionProvider()
    logger.info("Using OpenAI chat provider at %s", settings.openai_base_url)
    return OpenAIChatProvider(
        settings.openai_api_key,
        base_url=settings.openai_base_url,
        timeout=settings.llm_timeout_seconds,
    )
