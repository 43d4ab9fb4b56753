"""
Embedding provider abstraction for dependency injection.

EMBED_PROVIDER=deterministic or ENV=test or PYTEST_CURRENT_TEST => no network, hash-based vectors.
Otherwise an OpenAI-compatible /embeddings endpoint over httpx.
"""

import hashlib
import logging
import os
from typing import Protocol, runtime_checkable

import httpx

from apps.chat.config import Settings
from apps.chat.services.upstream import UpstreamError, post_json

logger = logging.getLogger(__name__)

EMBEDDING_DIM = 384


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Protocol for embedding generation. Output has the same length and order as texts."""

    def embed(self, texts: list[str], model: str, timeout: float | None = None) -> list[list[float]]:
        ...


class DeterministicEmbeddingProvider:
    """
    Deterministic provider: fixed-size vectors from stable hash of text.
    Pure: no network, no randomness. Same input => same output. model is ignored.
    """

    def __init__(self, dim: int = EMBEDDING_DIM) -> None:
        self._dim = dim

    def embed(self, texts: list[str], model: str, timeout: float | None = None) -> list[list[float]]:
        return [_hash_to_vector(t, self._dim) for t in texts]


def _hash_to_vector(text: str, dim: int = EMBEDDING_DIM) -> list[float]:
    """Produce deterministic dim-dim vector from text hash. Pure, no randomness."""
    out: list[float] = []
    for i in range(dim):
        h = hashlib.sha256((text + "|" + str(i)).encode()).hexdigest()
        x = int(h[:8], 16) / (2**32) * 2 - 1
        out.append(x)
    return out


class OpenAIEmbeddingProvider:
    """OpenAI-compatible embeddings over HTTP. One request per embed() call."""

    def __init__(
        self,
        api_key: str | None,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._url = f"{base_url.rstrip('/')}/embeddings"
        self._timeout = timeout
        self._transport = transport

    def embed(self, texts: list[str], model: str, timeout: float | None = None) -> list[list[float]]:
        if not texts:
            return []
        data = post_json(
            self._url,
            {"model": model, "input": texts},
            api_key=self._api_key,
            timeout=timeout or self._timeout,
            transport=self._transport,
        )
        items = data.get("data")
        if not isinstance(items, list) or len(items) != len(texts):
            raise UpstreamError(
                f"embedding response has {len(items) if isinstance(items, list) else 'no'} vectors for {len(texts)} inputs"
            )
        try:
            # Providers may return items out of order; index is authoritative when present
            ordered = sorted(items, key=lambda it: it.get("index", 0)) if all("index" in it for it in items) else items
            return [[float(x) for x in it["embedding"]] for it in ordered]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise UpstreamError("malformed embedding response") from e


def _use_deterministic_provider(settings: Settings) -> bool:
    """
    EMBED_PROVIDER=deterministic => always deterministic.
    EMBED_PROVIDER=openai => always HTTP.
    Otherwise: ENV=test or PYTEST_CURRENT_TEST => deterministic.
    """
    explicit = settings.embed_provider
    if explicit == "deterministic":
        return True
    if explicit == "openai":
        return False
    if settings.is_test:
        return True
    if os.getenv("PYTEST_CURRENT_TEST"):
        return True
    return False


def get_embedding_provider(settings: Settings) -> EmbeddingProvider:
    """Build the embedding provider for these settings."""
    if _use_deterministic_provider(settings):
        logger.info("Using deterministic embedding provider (no network)")
        return DeterministicEmbeddingProvider()
    logger.info("Using OpenAI embedding provider at %s", settings.openai_base_url)
    return OpenAIEmbeddingProvider(
        settings.openai_api_key,
        base_url=settings.openai_base_url,
        timeout=settings.llm_timeout_seconds,
    )
