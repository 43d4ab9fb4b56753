"""Per-user rolling conversation history, stored as one JSON list per user.

append() is read-modify-write over two cache round-trips. Appends for the same
user are serialized through one of a fixed set of in-process locks chosen by
user name; writers in other processes can still race (last write wins). A
backend read failure during append propagates, so a stored history is never
rewritten from an empty read.
"""

import logging
import threading

from pydantic import ValidationError

from apps.chat.config import HISTORY_MAX_TURNS, HISTORY_TTL_SECONDS
from apps.chat.schemas.records import ConversationTurn, Role
from apps.chat.services.cache import KeyValueCache
from apps.chat.utils.clock import Clock, to_iso, utcnow

logger = logging.getLogger(__name__)

LOCK_STRIPES = 64


def history_key(user_name: str) -> str:
    return f"conversation_history:{user_name}"


class ConversationHistoryStore:
    """Bounded, chronologically ordered log of chat turns per user."""

    def __init__(
        self,
        cache: KeyValueCache,
        *,
        max_turns: int = HISTORY_MAX_TURNS,
        ttl_seconds: int = HISTORY_TTL_SECONDS,
        clock: Clock = utcnow,
    ) -> None:
        self._cache = cache
        self._max_turns = max_turns
        self._ttl = ttl_seconds
        self._clock = clock
        # striped by user name; pool size is fixed
        self._locks = [threading.Lock() for _ in range(LOCK_STRIPES)]

    def _lock_for(self, user_name: str) -> threading.Lock:
        return self._locks[hash(user_name) % LOCK_STRIPES]

    def get_history(self, user_name: str) -> list[ConversationTurn]:
        """Return cached turns oldest-first. Empty list when nothing is cached or unreadable."""
        return self._load(user_name, strict=False)

    def _load(self, user_name: str, *, strict: bool) -> list[ConversationTurn]:
        raw = self._cache.get(history_key(user_name), strict=strict)
        if raw is None:
            return []
        if not isinstance(raw, list):
            logger.warning("History for %s is not a list (%s); ignoring", user_name, type(raw).__name__)
            return []
        turns: list[ConversationTurn] = []
        for item in raw:
            try:
                turns.append(ConversationTurn.model_validate(item))
            except ValidationError:
                logger.warning("Skipping malformed history entry for %s: %r", user_name, item)
        return turns

    def append(self, user_name: str, role: Role, content: str) -> ConversationTurn:
        """
        Append one turn, keep the newest max_turns, rewrite with a fresh TTL.
        Raises CacheBackendError if the current history cannot be read.
        """
        with self._lock_for(user_name):
            history = self._load(user_name, strict=True)
            turn = ConversationTurn(role=role, content=content, timestamp=to_iso(self._clock()))
            history.append(turn)
            trimmed = history[-self._max_turns :]
            self._cache.set(
                history_key(user_name),
                [t.model_dump() for t in trimmed],
                ttl_seconds=self._ttl,
            )
        logger.info("Message added to history for %s (total: %d)", user_name, len(trimmed))
        return turn

    def clear(self, user_name: str) -> None:
        self._cache.delete(history_key(user_name))
        logger.info("Conversation history cleared for %s", user_name)
