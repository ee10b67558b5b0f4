"""
Chat — retrieval-grounded answers with per-session conversation memory.

Public surface
--------------
- :class:`ChatEngine` — answer a query for a chatbot session.
- :class:`SessionMemory` — Redis-backed conversation history.
- :class:`ChatbotConfig`, :class:`ChatResponse` — request / response models.
"""

from tenant_rag.chat.engine import APOLOGY_MESSAGE, ChatEngine
from tenant_rag.chat.memory import ConversationTurn, SessionMemory
from tenant_rag.chat.models import ChatbotConfig, ChatResponse, SourceReference

__all__ = [
    "APOLOGY_MESSAGE",
    "ChatEngine",
    "ChatResponse",
    "ChatbotConfig",
    "ConversationTurn",
    "SessionMemory",
    "SourceReference",
]
