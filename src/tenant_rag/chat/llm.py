"""LLM initialisation — single place to swap providers.

Supports two modes:

1. **OpenAI cloud** (default) — set ``OPENAI_API_KEY``.
2. **OpenAI-compatible endpoint** — set ``LLM_BASE_URL`` to a self-hosted
   server (vLLM, TGI …) exposing ``/v1/chat/completions``; ``ChatOpenAI``
   works unchanged.
"""

from __future__ import annotations

import logging

from langchain_openai import ChatOpenAI

from tenant_rag.config import settings

logger = logging.getLogger(__name__)


def get_llm(
    model: str | None = None,
    temperature: float = settings.llm_temperature,
    max_tokens: int | None = settings.llm_max_tokens,
) -> ChatOpenAI:
    """Return the chat model configured for one chatbot.

    When ``settings.llm_base_url`` is set the client is pointed at that
    endpoint instead of the OpenAI cloud API.  A dummy API key
    (``"EMPTY"``) is used because self-hosted servers usually do not
    require authentication.
    """
    kwargs: dict = {
        "model": model or settings.llm_model_name,
        "temperature": temperature,
    }
    if max_tokens:
        kwargs["max_tokens"] = max_tokens

    if settings.llm_base_url:
        logger.info("Using OpenAI-compatible endpoint: %s", settings.llm_base_url)
        kwargs["base_url"] = settings.llm_base_url
        # LangChain requires a non-empty key even when the server ignores it.
        kwargs["api_key"] = settings.openai_api_key or "EMPTY"
    else:
        kwargs["api_key"] = settings.openai_api_key

    return ChatOpenAI(**kwargs)
