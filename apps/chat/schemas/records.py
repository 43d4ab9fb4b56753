"""Cached record shapes. Field aliases match the stored JSON (camelCase)."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["user", "assistant"]


class ConversationTurn(BaseModel):
    """One chat turn in a user's rolling history. Immutable once written."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    role: Role
    content: str
    timestamp: str | None = Field(None, description="ISO-8601 time the turn was appended")


class UserProfile(BaseModel):
    """Per-user profile record. Fully replaced on every cache call."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str
    cached_at: str = Field(..., alias="cachedAt")


class ConversationSnapshot(BaseModel):
    """Point-in-time archive of one prompt/response pair. Never fed back into prompts."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    timestamp: str
    prompt: str
    response: str
    created_at: str = Field(..., alias="createdAt")
