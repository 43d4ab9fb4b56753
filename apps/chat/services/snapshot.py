"""Point-in-time conversation snapshots keyed by (user, client timestamp). 7-day TTL."""

import logging

from pydantic import ValidationError

from apps.chat.config import SNAPSHOT_TTL_SECONDS
from apps.chat.schemas.records import ConversationSnapshot
from apps.chat.services.cache import KeyValueCache
from apps.chat.utils.clock import Clock, to_iso, utcnow

logger = logging.getLogger(__name__)


def snapshot_key(user_name: str, timestamp: str) -> str:
    return f"conversation:{user_name}:{timestamp}"


class ConversationSnapshotStore:
    """Archive of single prompt/response pairs, independent of the rolling history."""

    def __init__(self, cache: KeyValueCache, *, ttl_seconds: int = SNAPSHOT_TTL_SECONDS, clock: Clock = utcnow) -> None:
        self._cache = cache
        self._ttl = ttl_seconds
        self._clock = clock

    def save(self, user_name: str, timestamp: str, prompt: str, response: str) -> ConversationSnapshot:
        snapshot = ConversationSnapshot(
            timestamp=timestamp,
            prompt=prompt,
            response=response,
            created_at=to_iso(self._clock()),
        )
        self._cache.set(
            snapshot_key(user_name, timestamp),
            snapshot.model_dump(by_alias=True),
            ttl_seconds=self._ttl,
        )
        logger.info("Conversation cached for %s at %s", user_name, timestamp)
        return snapshot

    def get(self, user_name: str, timestamp: str) -> ConversationSnapshot | None:
        raw = self._cache.get(snapshot_key(user_name, timestamp))
        if raw is None:
            return None
        try:
            return ConversationSnapshot.model_validate(raw)
        except ValidationError:
            logger.warning("Malformed snapshot for %s at %s", user_name, timestamp)
            return None

    def list_timestamps(self, user_name: str) -> list[str]:
        """Timestamps of the user's live snapshots, sorted."""
        prefix = snapshot_key(user_name, "")
        return sorted(k[len(prefix) :] for k in self._cache.keys(f"{prefix}*"))
