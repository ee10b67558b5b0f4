"""Redis-backed conversation memory with a sliding expiry."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Literal

import redis
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class ConversationTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def history_key(tenant_id: str, chatbot_id: str, session_id: str) -> str:
    return f"{tenant_id}:{chatbot_id}:{session_id}:history"


class SessionMemory:
    """Conversation turns kept in a Redis list per session.

    Every append resets the list's TTL to the chatbot's memory duration,
    so a session disappears once it has been idle that long.
    """

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    def load(self, tenant_id: str, chatbot_id: str, session_id: str) -> list[ConversationTurn]:
        """Return every stored turn, oldest first."""
        raw_turns = self._client.lrange(history_key(tenant_id, chatbot_id, session_id), 0, -1)
        turns: list[ConversationTurn] = []
        for raw in raw_turns:
            try:
                turns.append(ConversationTurn.model_validate_json(raw))
            except ValueError:
                logger.warning("Skipping malformed history entry in session %s", session_id)
        return turns

    def append(
        self,
        tenant_id: str,
        chatbot_id: str,
        session_id: str,
        turns: list[ConversationTurn],
        *,
        ttl_minutes: int,
    ) -> None:
        """Append *turns* and reset the session TTL in a single transaction."""
        key = history_key(tenant_id, chatbot_id, session_id)
        pipe = self._client.pipeline(transaction=True)
        pipe.rpush(key, *[json.dumps(t.model_dump(mode="json")) for t in turns])
        pipe.expire(key, ttl_minutes * 60)
        pipe.execute()
