"""Response shapes returned by ChatService to its callers."""

from pydantic import BaseModel, ConfigDict, Field

from apps.chat.schemas.records import ConversationTurn


class ChatResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    response: str


class HistoryResponse(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    user_name: str = Field(..., alias="userName")
    history: list[ConversationTurn] = Field(default_factory=list)


class ClearHistoryResponse(BaseModel):
    """Acknowledgement for a history clear."""

    model_config = ConfigDict(extra="forbid")

    message: str
