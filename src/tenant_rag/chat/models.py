"""Request / response models for the chat engine."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from tenant_rag.config import settings

EXCERPT_LENGTH = 200


class ChatbotConfig(BaseModel):
    """Per-chatbot generation and retrieval settings."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    model: str = settings.llm_model_name
    temperature: float = Field(default=settings.llm_temperature, ge=0.0, le=2.0)
    max_tokens: int = Field(default=settings.llm_max_tokens, ge=1)
    memory_duration: int = Field(default=60, ge=5, le=1440, description="Session TTL in minutes")
    max_documents: int = Field(default=5, ge=1, le=20)
    system_prompt: str | None = None


class SourceReference(BaseModel):
    """Citation returned to the caller alongside an answer."""

    text: str
    url: str = ""
    name: str = "unknown"
    score: float = 0.0

    @classmethod
    def excerpt(cls, text: str, **kwargs: object) -> SourceReference:
        if len(text) > EXCERPT_LENGTH:
            text = text[:EXCERPT_LENGTH] + "..."
        return cls(text=text, **kwargs)


class ChatResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    response: str
    session_id: str
    sources: list[SourceReference] = Field(default_factory=list)
