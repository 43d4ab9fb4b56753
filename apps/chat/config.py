"""Chat core configuration from environment.

All defaults that call sites used to inline (model, temperature, top-k, embedding model)
live in ChatDefaults and are resolved once by ChatService.
"""

import os
from dataclasses import dataclass, field

PROFILE_TTL_SECONDS = 86400  # 24 hours
HISTORY_TTL_SECONDS = 2592000  # 30 days
SNAPSHOT_TTL_SECONDS = 604800  # 7 days
HISTORY_MAX_TURNS = 50

RAG_HISTORY_MODES = ("replace", "merge")
RAG_FAILURE_MODES = ("abort", "skip")


def _int(val: str | None, default: int) -> int:
    if val is None or val.strip() == "":
        return default
    try:
        return int(val.strip())
    except ValueError:
        return default


def _float(val: str | None, default: float) -> float:
    if val is None or val.strip() == "":
        return default
    try:
        return float(val.strip())
    except ValueError:
        return default


def _bool(val: str | None, default: bool) -> bool:
    if val is None or val.strip() == "":
        return default
    return val.strip().lower() in ("1", "true", "yes")


def _choice(val: str | None, choices: tuple[str, ...], default: str) -> str:
    v = (val or "").strip().lower()
    return v if v in choices else default


@dataclass(frozen=True)
class ChatDefaults:
    """Request defaults applied when the caller leaves a field unset."""

    model: str = "gpt-3.5-turbo"
    temperature: float = 0.7
    top_k: int = 3
    embedding_model: str = "text-embedding-3-small"
    # replace: history wins over RAG context (legacy). merge: RAG system message kept ahead of history.
    rag_history_mode: str = "replace"
    # abort: embedding failure fails the request. skip: continue without RAG context.
    rag_on_embed_failure: str = "abort"


@dataclass(frozen=True)
class Settings:
    """Chat core settings. Build with load_settings(); construct directly in tests."""

    env: str = "dev"
    cache_backend: str = "sql"
    database_url: str = "sqlite:///./chat_cache.db"
    redis_url: str = "redis://localhost:6379/0"
    cache_key_prefix: str = ""
    sql_echo: bool = False

    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    llm_provider: str = ""
    embed_provider: str = ""
    llm_timeout_seconds: float = 30.0

    profile_ttl_seconds: int = PROFILE_TTL_SECONDS
    history_ttl_seconds: int = HISTORY_TTL_SECONDS
    snapshot_ttl_seconds: int = SNAPSHOT_TTL_SECONDS
    history_max_turns: int = HISTORY_MAX_TURNS

    log_level: str = "INFO"
    defaults: ChatDefaults = field(default_factory=ChatDefaults)

    @property
    def is_test(self) -> bool:
        return self.env == "test"


def load_settings(environ: dict[str, str] | None = None) -> Settings:
    """Read Settings from environment (or the given mapping). Invalid numbers fall back to defaults."""
    env = os.environ if environ is None else environ
    base = Settings()
    base_defaults = base.defaults

    defaults = ChatDefaults(
        model=(env.get("DEFAULT_MODEL") or "").strip() or base_defaults.model,
        temperature=_float(env.get("DEFAULT_TEMPERATURE"), base_defaults.temperature),
        top_k=_int(env.get("DEFAULT_TOP_K"), base_defaults.top_k),
        embedding_model=(env.get("DEFAULT_EMBEDDING_MODEL") or "").strip() or base_defaults.embedding_model,
        rag_history_mode=_choice(env.get("RAG_HISTORY_MODE"), RAG_HISTORY_MODES, base_defaults.rag_history_mode),
        rag_on_embed_failure=_choice(
            env.get("RAG_ON_EMBED_FAILURE"), RAG_FAILURE_MODES, base_defaults.rag_on_embed_failure
        ),
    )

    return Settings(
        env=(env.get("ENV") or env.get("ENVIRONMENT") or base.env).strip().lower(),
        cache_backend=_choice(env.get("CACHE_BACKEND"), ("sql", "redis"), base.cache_backend),
        database_url=(env.get("DATABASE_URL") or "").strip() or base.database_url,
        redis_url=(env.get("REDIS_URL") or "").strip() or base.redis_url,
        cache_key_prefix=env.get("CACHE_KEY_PREFIX", base.cache_key_prefix),
        sql_echo=_bool(env.get("SQL_ECHO"), base.sql_echo),
        openai_api_key=(env.get("OPENAI_API_KEY") or "").strip() or None,
        openai_base_url=((env.get("OPENAI_BASE_URL") or "").strip() or base.openai_base_url).rstrip("/"),
        llm_provider=(env.get("LLM_PROVIDER") or "").strip().lower(),
        embed_provider=(env.get("EMBED_PROVIDER") or "").strip().lower(),
        llm_timeout_seconds=_float(env.get("LLM_TIMEOUT_SECONDS"), base.llm_timeout_seconds),
        profile_ttl_seconds=_int(env.get("PROFILE_TTL_SECONDS"), base.profile_ttl_seconds),
        history_ttl_seconds=_int(env.get("HISTORY_TTL_SECONDS"), base.history_ttl_seconds),
        snapshot_ttl_seconds=_int(env.get("SNAPSHOT_TTL_SECONDS"), base.snapshot_ttl_seconds),
        history_max_turns=_int(env.get("HISTORY_MAX_TURNS"), base.history_max_turns),
        log_level=(env.get("LOG_LEVEL") or base.log_level).strip().upper(),
        defaults=defaults,
    )
