"""SQLAlchemy models."""

from apps.chat.models.base import Base
from apps.chat.models.cache_entry import CacheEntry

__all__ = [
    "Base",
    "CacheEntry",
]
