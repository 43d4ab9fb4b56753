"""
Context assembler. Builds the message sequence for one chat request, calls the
completion provider, and persists the turn.

Per request, strictly in order:
    profile cache -> RAG select -> history load -> prompt append
    -> completion -> history persist -> snapshot persist

Upstream failures (embedding, completion) abort the request with UpstreamError and
nothing is written for the turn. Cache writes around a successful completion are
logged on failure; the caller still receives the reply.
"""

import json
import logging
from dataclasses import dataclass
from functools import partial

from apps.chat.config import Settings
from apps.chat.schemas.records import ConversationSnapshot, ConversationTurn, UserProfile
from apps.chat.schemas.requests import ChatRequest
from apps.chat.schemas.responses import ChatResponse, ClearHistoryResponse, HistoryResponse
from apps.chat.services.cache import KeyValueCache
from apps.chat.services.embedding_provider import EmbeddingProvider
from apps.chat.services.history import ConversationHistoryStore
from apps.chat.services.llm_provider import ChatMessage, CompletionProvider
from apps.chat.services.profile import UserProfileCache
from apps.chat.services.rank import select_top_k
from apps.chat.services.snapshot import ConversationSnapshotStore
from apps.chat.services.upstream import UpstreamError
from apps.chat.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)

RAG_PREAMBLE = (
    "You are a helpful assistant. Use the provided context to answer the user. "
    "If the answer is not in the context, say you do not know."
)
EMPTY_COMPLETION = "No response"
UPSTREAM_ERROR_PREFIX = "OpenAI API error"
GENERIC_UPSTREAM_MESSAGE = "upstream request failed"


@dataclass(frozen=True)
class ResolvedOptions:
    """Per-request options after defaults are applied."""

    model: str
    temperature: float
    top_k: int
    embedding_model: str
    timeout: float


def build_rag_message(documents: list[str]) -> ChatMessage:
    """System message with the fixed preamble and numbered documents, one per line."""
    context_block = "\n".join(f"({i + 1}) {doc}" for i, doc in enumerate(documents))
    return {"role": "system", "content": f"{RAG_PREAMBLE}\n\nContext:\n{context_block}"}


def history_to_messages(history: list[ConversationTurn]) -> list[ChatMessage]:
    """Map stored turns to provider messages, dropping turns with empty content."""
    return [{"role": t.role, "content": t.content} for t in history if t.role and t.content]


def _wrap_upstream(exc: Exception) -> UpstreamError:
    provider_message = getattr(exc, "provider_message", None)
    detail = provider_message or str(exc) or GENERIC_UPSTREAM_MESSAGE
    return UpstreamError(
        f"{UPSTREAM_ERROR_PREFIX}: {detail}",
        provider_message=provider_message,
        status_code=getattr(exc, "status_code", None),
    )


class ChatService:
    """Entry point for chat creation, history read and history clear."""

    def __init__(
        self,
        settings: Settings,
        cache: KeyValueCache,
        completion: CompletionProvider,
        embedder: EmbeddingProvider,
        *,
        history: ConversationHistoryStore | None = None,
        profiles: UserProfileCache | None = None,
        snapshots: ConversationSnapshotStore | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.settings = settings
        self.defaults = settings.defaults
        self.cache = cache
        self.completion = completion
        self.embedder = embedder
        self.history = history or ConversationHistoryStore(
            cache,
            max_turns=settings.history_max_turns,
            ttl_seconds=settings.history_ttl_seconds,
            clock=clock,
        )
        self.profiles = profiles or UserProfileCache(cache, ttl_seconds=settings.profile_ttl_seconds, clock=clock)
        self.snapshots = snapshots or ConversationSnapshotStore(
            cache, ttl_seconds=settings.snapshot_ttl_seconds, clock=clock
        )

    def resolve_options(
        self,
        model: str | None = None,
        temperature: float | None = None,
        top_k: int | None = None,
        embedding_model: str | None = None,
        timeout: float | None = None,
    ) -> ResolvedOptions:
        d = self.defaults
        return ResolvedOptions(
            model=model or d.model,
            temperature=d.temperature if temperature is None else temperature,
            top_k=d.top_k if top_k is None else top_k,
            embedding_model=embedding_model or d.embedding_model,
            timeout=timeout or self.settings.llm_timeout_seconds,
        )

    def create_chat(
        self,
        prompt: str,
        model: str | None = None,
        temperature: float | None = None,
        timestamp: str | None = None,
        user_name: str | None = None,
        now: str | None = None,
        init_time: str | None = None,
        use_rag: bool | None = None,
        documents: list[str] | None = None,
        top_k: int | None = None,
        embedding_model: str | None = None,
        timeout: float | None = None,
    ) -> str:
        """Assemble context, call the model, persist the turn. Returns the reply text."""
        opts = self.resolve_options(model, temperature, top_k, embedding_model, timeout)
        logger.info(
            json.dumps(
                {
                    "event": "createChat",
                    "prompt": prompt,
                    "model": opts.model,
                    "temperature": opts.temperature,
                    "timestamp": timestamp,
                    "userName": user_name,
                    "now": now,
                    "initTime": init_time,
                    "useRag": bool(use_rag),
                    "documentsCount": len(documents or []),
                    "topK": opts.top_k,
                    "embeddingModel": opts.embedding_model,
                },
                ensure_ascii=False,
            )
        )

        if user_name:
            self._cache_profile(user_name)

        messages: list[ChatMessage] = []
        if use_rag and documents:
            rag_message = self._rag_context(prompt, documents, opts)
            if rag_message is not None:
                messages.append(rag_message)

        if user_name:
            history_messages = history_to_messages(self.history.get_history(user_name))
            logger.info("Loaded %d history messages for %s", len(history_messages), user_name)
            if self.defaults.rag_history_mode == "merge":
                messages = messages + history_messages
            else:
                messages = history_messages

        messages.append({"role": "user", "content": prompt})

        try:
            content = self.completion.complete(messages, opts.model, opts.temperature, timeout=opts.timeout)
        except Exception as e:
            err = _wrap_upstream(e)
            logger.error(json.dumps({"event": "openaiError", "error": err.provider_message or str(e)}))
            raise err from e
        reply = content or EMPTY_COMPLETION

        if user_name:
            self._persist_turns(user_name, prompt, reply)
        if timestamp and user_name:
            self._persist_snapshot(user_name, timestamp, prompt, reply)
        return reply

    def handle(self, request: ChatRequest) -> ChatResponse:
        """Run create_chat for an already-validated request."""
        reply = self.create_chat(
            request.prompt,
            model=request.model,
            temperature=request.temperature,
            timestamp=request.timestamp,
            user_name=request.user_name,
            now=request.now,
            init_time=request.init_time,
            use_rag=request.use_rag,
            documents=request.documents,
            top_k=request.top_k,
            embedding_model=request.embedding_model,
        )
        return ChatResponse(response=reply)

    def _rag_context(self, prompt: str, documents: list[str], opts: ResolvedOptions) -> ChatMessage | None:
        embed = partial(self.embedder.embed, timeout=opts.timeout)
        try:
            selected = select_top_k(prompt, documents, opts.top_k, embed, opts.embedding_model)
        except Exception as e:
            if self.defaults.rag_on_embed_failure == "skip":
                logger.warning("RAG selection failed, continuing without context: %s", e)
                return None
            err = _wrap_upstream(e)
            logger.error(json.dumps({"event": "embeddingError", "error": err.provider_message or str(e)}))
            raise err from e
        return build_rag_message(selected)

    def _cache_profile(self, user_name: str) -> None:
        try:
            self.profiles.cache_user_name(user_name)
        except Exception as e:
            logger.error("Failed to cache profile for %s: %s", user_name, e)

    def _persist_turns(self, user_name: str, prompt: str, reply: str) -> None:
        try:
            self.history.append(user_name, "user", prompt)
            self.history.append(user_name, "assistant", reply)
        except Exception as e:
            logger.error("Failed to persist history for %s: %s", user_name, e)

    def _persist_snapshot(self, user_name: str, timestamp: str, prompt: str, reply: str) -> None:
        try:
            self.snapshots.save(user_name, timestamp, prompt, reply)
        except Exception as e:
            logger.error("Failed to cache conversation for %s at %s: %s", user_name, timestamp, e)

    def get_history(self, user_name: str) -> list[ConversationTurn]:
        return self.history.get_history(user_name)

    def history_response(self, user_name: str) -> HistoryResponse:
        return HistoryResponse(user_name=user_name, history=self.get_history(user_name))

    def clear_history(self, user_name: str) -> ClearHistoryResponse:
        self.history.clear(user_name)
        return ClearHistoryResponse(message=f"Conversation history cleared for {user_name}")

    def get_cached_user(self, user_name: str) -> UserProfile | None:
        return self.profiles.get_cached_user_name(user_name)

    def get_snapshot(self, user_name: str, timestamp: str) -> ConversationSnapshot | None:
        return self.snapshots.get(user_name, timestamp)

    def list_snapshots(self, user_name: str) -> list[str]:
        return self.snapshots.list_timestamps(user_name)

    def close(self) -> None:
        self.cache.close()
