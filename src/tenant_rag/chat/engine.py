"""Chat engine — answer a query from the tenant's knowledge base.

Request flow
------------
1. Load the session's conversation history.
2. Retrieve relevant chunks from the tenant's index (score ≥ threshold).
3. Build the prompt: preamble + context, recent turns, current query.
4. Generate the answer with the chatbot's model settings.
5. Append both turns to the session and reset its TTL.
6. Record query analytics.

Only steps 2 and 4 influence the answer; every failure is absorbed so the
caller always gets a :class:`ChatResponse`.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from tenant_rag.chat.llm import get_llm
from tenant_rag.chat.memory import ConversationTurn, SessionMemory
from tenant_rag.chat.models import ChatbotConfig, ChatResponse, SourceReference
from tenant_rag.chat.prompts import build_chat_prompt
from tenant_rag.config import settings
from tenant_rag.retrieval.models import RetrievalResult
from tenant_rag.retrieval.retriever import SemanticRetriever
from tenant_rag.stores.base import DocumentStoreBase

logger = logging.getLogger(__name__)

APOLOGY_MESSAGE = (
    "I apologize, but I encountered an issue generating a response. Please try again later."
)


class ChatEngine:
    """Grounded question answering over a tenant's vector index.

    Parameters
    ----------
    retriever:
        Tenant-scoped semantic retriever (embeds the query itself).
    memory:
        Session memory store.
    document_store:
        Receives one analytics item per answered query.
    llm_factory:
        ``(model, temperature, max_tokens) -> chat model``.
    history_turns:
        Number of most recent turns included in the prompt.
    """

    def __init__(
        self,
        retriever: SemanticRetriever,
        memory: SessionMemory,
        document_store: DocumentStoreBase | None = None,
        *,
        llm_factory: Callable[..., Any] = get_llm,
        history_turns: int = settings.history_turns,
    ) -> None:
        self._retriever = retriever
        self._memory = memory
        self._documents = document_store
        self._llm_factory = llm_factory
        self.history_turns = history_turns

    def answer(
        self,
        tenant_id: str,
        chatbot_id: str,
        session_id: str | None,
        query: str,
        config: ChatbotConfig | None = None,
    ) -> ChatResponse:
        """Answer *query* for one chatbot session; never raises."""
        config = config or ChatbotConfig()
        session_id = session_id or str(uuid.uuid4())

        history = self._load_history(tenant_id, chatbot_id, session_id)
        results = self._search(tenant_id, query, config.max_documents)
        response = self._generate(query, results, history, config)

        self._remember(tenant_id, chatbot_id, session_id, query, response, config.memory_duration)
        self._record_query(tenant_id, chatbot_id, session_id, query, response, len(results))

        sources = [
            SourceReference.excerpt(
                r.content,
                url=r.citation.source_url,
                name=r.citation.source_name,
                score=r.citation.score,
            )
            for r in results
        ]
        return ChatResponse(response=response, session_id=session_id, sources=sources)

    # -- steps ----------------------------------------------------------------

    def _load_history(self, tenant_id: str, chatbot_id: str, session_id: str) -> list[ConversationTurn]:
        try:
            turns = self._memory.load(tenant_id, chatbot_id, session_id)
        except Exception:
            logger.exception("Could not load history for session %s", session_id)
            return []
        return turns[-self.history_turns :] if self.history_turns > 0 else []

    def _search(self, tenant_id: str, query: str, k: int) -> list[RetrievalResult]:
        try:
            return self._retriever.search(tenant_id, query, k=k)
        except Exception:
            logger.exception("Error searching relevant content for tenant %s", tenant_id)
            return []

    def _generate(
        self,
        query: str,
        results: list[RetrievalResult],
        history: list[ConversationTurn],
        config: ChatbotConfig,
    ) -> str:
        messages = build_chat_prompt(query, results, history, system_prompt=config.system_prompt)
        try:
            llm = self._llm_factory(
                model=config.model,
                temperature=config.temperature,
                max_tokens=config.max_tokens,
            )
            reply = llm.invoke(messages)
        except Exception:
            logger.exception("Error generating response")
            return APOLOGY_MESSAGE
        content = reply.content if isinstance(reply.content, str) else str(reply.content)
        return content.strip() or APOLOGY_MESSAGE

    def _remember(
        self,
        tenant_id: str,
        chatbot_id: str,
        session_id: str,
        query: str,
        response: str,
        ttl_minutes: int,
    ) -> None:
        turns = [
            ConversationTurn(role="user", content=query),
            ConversationTurn(role="assistant", content=response),
        ]
        try:
            self._memory.append(tenant_id, chatbot_id, session_id, turns, ttl_minutes=ttl_minutes)
        except Exception:
            logger.exception("Could not update history for session %s", session_id)

    def _record_query(
        self,
        tenant_id: str,
        chatbot_id: str,
        session_id: str,
        query: str,
        response: str,
        source_count: int,
    ) -> None:
        if self._documents is None:
            return
        now = datetime.now(timezone.utc)
        item_id = f"query-{uuid.uuid4()}"
        try:
            self._documents.put(
                tenant_id,
                item_id,
                {
                    "itemType": "query",
                    "chatbotId": chatbot_id,
                    "sessionId": session_id,
                    "queryLength": len(query),
                    "responseLength": len(response),
                    "sourceCount": source_count,
                    "timestamp": now.isoformat(),
                    "date": now.date().isoformat(),
                },
            )
        except Exception:
            logger.exception("Error recording query analytics for tenant %s", tenant_id)
