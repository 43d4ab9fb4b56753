"""cache_entry model. Backing table for the SQL key-value cache backend."""

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from apps.chat.models.base import Base


class CacheEntry(Base):
    """One JSON payload per namespaced key. expires_at NULL = no expiry."""

    __tablename__ = "cache_entry"
    __table_args__ = (Index("ix_cache_entry_expires_at", "expires_at"),)

    cache_key: Mapped[str] = mapped_column(String(512), primary_key=True)
    payload_json: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[DateTime | None] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=True,
    )
    expires_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
