"""Prompt construction for grounded chat answers."""

from __future__ import annotations

from typing import TYPE_CHECKING

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

if TYPE_CHECKING:
    from langchain_core.messages import BaseMessage

    from tenant_rag.chat.memory import ConversationTurn
    from tenant_rag.retrieval.models import RetrievalResult

SYSTEM_PREAMBLE = "You are a helpful AI assistant answering questions based on the provided context."

CONTEXT_TEMPLATE = 'Context information:\n"""\n{context}\n"""'


def format_context(results: list[RetrievalResult]) -> str:
    """Join retained passages, most relevant first, separated by blank lines."""
    return "\n\n".join(r.content for r in results if r.content)


def build_chat_prompt(
    query: str,
    results: list[RetrievalResult],
    history: list[ConversationTurn],
    *,
    system_prompt: str | None = None,
) -> list[BaseMessage]:
    """Build the message list sent to the chat model.

    Layout: one system message (preamble, optional chatbot instructions,
    retrieved context), then prior turns oldest-first as role-typed
    messages, then the current question.
    """
    system_parts = [SYSTEM_PREAMBLE]
    if system_prompt:
        system_parts.append(system_prompt.strip())
    context = format_context(results)
    if context:
        system_parts.append(CONTEXT_TEMPLATE.format(context=context))

    messages: list[BaseMessage] = [SystemMessage(content="\n\n".join(system_parts))]
    for turn in history:
        if turn.role == "user":
            messages.append(HumanMessage(content=turn.content))
        else:
            messages.append(AIMessage(content=turn.content))
    messages.append(HumanMessage(content=query))
    return messages
