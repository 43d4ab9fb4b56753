"""User profile cache. One small record per user, 24h TTL, overwritten on every call."""

import logging

from pydantic import ValidationError

from apps.chat.config import PROFILE_TTL_SECONDS
from apps.chat.schemas.records import UserProfile
from apps.chat.services.cache import KeyValueCache
from apps.chat.utils.clock import Clock, to_iso, utcnow

logger = logging.getLogger(__name__)


def profile_key(user_name: str) -> str:
    return f"user:{user_name}:profile"


class UserProfileCache:
    def __init__(self, cache: KeyValueCache, *, ttl_seconds: int = PROFILE_TTL_SECONDS, clock: Clock = utcnow) -> None:
        self._cache = cache
        self._ttl = ttl_seconds
        self._clock = clock

    def cache_user_name(self, user_name: str) -> UserProfile:
        """Write {name, cachedAt}. No merge: any prior record is replaced."""
        profile = UserProfile(name=user_name, cached_at=to_iso(self._clock()))
        self._cache.set(profile_key(user_name), profile.model_dump(by_alias=True), ttl_seconds=self._ttl)
        logger.info("User name cached: %s", user_name)
        return profile

    def get_cached_user_name(self, user_name: str) -> UserProfile | None:
        raw = self._cache.get(profile_key(user_name))
        if raw is None:
            return None
        try:
            return UserProfile.model_validate(raw)
        except ValidationError:
            logger.warning("Malformed profile record for %s: %r", user_name, raw)
            return None
