"""Wiring: logging, cache backend and providers into a ChatService. Backend lifetime = service lifetime."""

import logging
from contextlib import contextmanager
from typing import Generator

from apps.chat.config import Settings, load_settings
from apps.chat.services.cache import CacheBackend, KeyValueCache
from apps.chat.services.cache_redis import RedisCacheBackend
from apps.chat.services.cache_sql import SqlCacheBackend
from apps.chat.services.chat import ChatService
from apps.chat.services.embedding_provider import EmbeddingProvider, get_embedding_provider
from apps.chat.services.llm_provider import CompletionProvider, get_llm_provider

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def create_cache_backend(settings: Settings) -> CacheBackend:
    """CACHE_BACKEND=redis => Redis at REDIS_URL; otherwise SQL at DATABASE_URL. Raises if unreachable."""
    if settings.cache_backend == "redis":
        return RedisCacheBackend.from_url(settings.redis_url)
    return SqlCacheBackend.from_url(settings.database_url, echo=settings.sql_echo)


def build_chat_service(
    settings: Settings | None = None,
    *,
    backend: CacheBackend | None = None,
    completion: CompletionProvider | None = None,
    embedder: EmbeddingProvider | None = None,
) -> ChatService:
    """Construct a ChatService. Any collaborator not given is built from settings."""
    settings = settings or load_settings()
    backend = backend or create_cache_backend(settings)
    cache = KeyValueCache(backend, key_prefix=settings.cache_key_prefix)
    service = ChatService(
        settings,
        cache,
        completion or get_llm_provider(settings),
        embedder or get_embedding_provider(settings),
    )
    logger.info("Chat service ready (cache_backend=%s env=%s)", settings.cache_backend, settings.env)
    return service


@contextmanager
def chat_service_scope(settings: Settings | None = None, **overrides) -> Generator[ChatService, None, None]:
    """Yield a ChatService and close its cache backend on exit."""
    service = build_chat_service(settings, **overrides)
    try:
        yield service
    finally:
        service.close()
