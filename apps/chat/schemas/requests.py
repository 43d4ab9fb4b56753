"""Request schema for chat creation. Range checks here; ChatService applies defaults."""

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    """Validated input for ChatService.handle()."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    prompt: str = Field(..., description="The prompt message to send to the model")
    model: str | None = Field(None, description="Chat model name")
    temperature: float | None = Field(None, ge=0, le=2, description="Sampling temperature (0.0 to 2.0)")
    timestamp: str | None = Field(None, description="Client timestamp; keys the conversation snapshot")
    user_name: str | None = Field(None, alias="userName", description="User name for history and profile caching")
    now: str | None = Field(None, description="Client time of the request (ISO string)")
    init_time: str | None = Field(None, alias="initTime", description="Client time of page load (ISO string)")
    use_rag: bool | None = Field(None, alias="useRag", description="Enable retrieval-augmented generation")
    documents: list[str] | None = Field(None, min_length=1, description="Candidate documents for RAG")
    top_k: int | None = Field(None, alias="topK", ge=1, le=20, description="Documents to keep for RAG context")
    embedding_model: str | None = Field(None, alias="embeddingModel", description="Embedding model for RAG")
