"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # LLM
    openai_api_key: str = Field(default="", description="OpenAI API key (or dummy value for a local endpoint)")
    llm_model_name: str = Field(default="gpt-3.5-turbo", description="Default chat model identifier")
    llm_base_url: str = Field(
        default="",
        description=(
            "Base URL for an OpenAI-compatible chat API. Leave empty to use "
            "OpenAI cloud, e.g. 'http://llm-server.internal/v1'"
        ),
    )
    llm_temperature: float = 0.7
    llm_max_tokens: int = 1000

    # Embedding
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_dimension: int = 384
    embedding_fallback: bool = Field(
        default=False,
        description="Substitute a synthetic vector (flagged) when the embedding call fails.",
    )
    embedding_call_delay: float = 0.1

    # Vector store
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    vector_upsert_batch_size: int = 100

    # Redis (sessions, document store, notifications)
    redis_url: str = "redis://localhost:6379/0"

    # Object store
    object_store_root: str = "./data/objects"

    # Crawler / API fetch
    crawl_batch_size: int = 5
    crawl_batch_delay: float = 1.0
    crawl_request_timeout: float = 10.0
    crawl_user_agent: str = "Mozilla/5.0 ChatbotCrawler/1.0"
    api_request_timeout: float = 30.0
    api_user_agent: str = "AI-Workflow-Manager/1.0"

    # Chunking / retrieval
    max_chunk_size: int = 1000
    relevance_threshold: float = 0.5
    history_turns: int = 10

    # Retry policy for network-bound pipeline stages
    retry_max_attempts: int = Field(default=3, description="Retries after the first attempt")
    retry_base_delay: float = 2.0
    retry_backoff_rate: float = 2.0
    retry_max_delay: float = 60.0

    # Document analysis polling
    document_poll_interval: float = 1.0
    document_poll_max_attempts: int = 60

    # Orchestrator
    max_parallel_sources: int = 10
    recrawl_interval_hours: int = 24

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton — import `settings` wherever needed.
settings = Settings()
