"""FastAPI application exposing ingestion and chat over REST."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from tenant_rag.chat.engine import ChatEngine
from tenant_rag.chat.memory import SessionMemory
from tenant_rag.chat.models import ChatbotConfig, ChatResponse
from tenant_rag.config import settings
from tenant_rag.errors import InputValidationError
from tenant_rag.orchestration.orchestrator import IngestionOrchestrator
from tenant_rag.orchestration.validation import TENANT_CONFIG_ID, collect_errors
from tenant_rag.retrieval.base import VectorIndexBase
from tenant_rag.stores.base import DocumentStoreBase

logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Tenant RAG API",
    version="0.1.0",
    description="Multi-tenant ingestion pipeline and retrieval-grounded chat.",
)


# ── Dependencies (overridable in tests) ───────────────────────────────
@lru_cache(maxsize=1)
def get_orchestrator() -> IngestionOrchestrator:
    return IngestionOrchestrator()


@lru_cache(maxsize=1)
def get_document_store() -> DocumentStoreBase:
    return get_orchestrator().services.document_store


@lru_cache(maxsize=1)
def get_vector_index() -> VectorIndexBase:
    from tenant_rag.retrieval.chroma_store import ChromaVectorIndex

    return ChromaVectorIndex()


@lru_cache(maxsize=1)
def get_chat_engine() -> ChatEngine:
    from tenant_rag.retrieval.retriever import SemanticRetriever
    from tenant_rag.stores.redis_store import get_redis_client

    return ChatEngine(
        retriever=SemanticRetriever(index=get_vector_index()),
        memory=SessionMemory(get_redis_client()),
        document_store=get_document_store(),
    )


# ── Request / Response schemas ────────────────────────────────────────
class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class IngestionRequest(_CamelModel):
    """Data sources and options for one ingestion run."""

    data_sources: list[dict[str, Any]] = Field(default_factory=list)
    config: dict[str, Any] = Field(default_factory=dict)


class IngestionAccepted(_CamelModel):
    run_id: str
    status: str = "RUNNING"


class QueryRequest(_CamelModel):
    """Incoming question from an end user."""

    query: str = ""
    session_id: str | None = None


# ── Routes ────────────────────────────────────────────────────────────
@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok"}


@app.get("/ready")
def ready(index: VectorIndexBase = Depends(get_vector_index)) -> dict[str, str]:
    """Readiness probe: the vector index must be reachable."""
    if not index.health_check():
        raise HTTPException(status_code=503, detail="Vector index unavailable")
    return {"status": "ready"}


@app.post(
    "/tenants/{tenant_id}/ingestion-runs",
    response_model=IngestionAccepted,
    response_model_by_alias=True,
    status_code=202,
)
def start_ingestion(
    tenant_id: str,
    request: IngestionRequest,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
    documents: DocumentStoreBase = Depends(get_document_store),
) -> IngestionAccepted:
    """Validate the request and start the ingestion run in the background."""
    errors = collect_errors(tenant_id, request.data_sources, request.config, documents)
    if errors:
        raise HTTPException(status_code=400, detail={"errors": errors})
    try:
        run_id = orchestrator.start_ingestion_run(tenant_id, request.data_sources, request.config)
    except InputValidationError as exc:
        raise HTTPException(status_code=400, detail={"errors": exc.errors}) from exc
    return IngestionAccepted(run_id=run_id)


@app.post(
    "/tenants/{tenant_id}/chatbots/{chatbot_id}/query",
    response_model=ChatResponse,
    response_model_by_alias=True,
)
def query_chatbot(
    tenant_id: str,
    chatbot_id: str,
    request: QueryRequest,
    engine: ChatEngine = Depends(get_chat_engine),
    documents: DocumentStoreBase = Depends(get_document_store),
) -> ChatResponse:
    """Answer a question with the chatbot's configuration and session memory."""
    if not request.query.strip():
        raise HTTPException(status_code=400, detail="Missing required parameter: query")

    item = documents.get(tenant_id, f"chatbot-{chatbot_id}")
    if item is None:
        raise HTTPException(status_code=404, detail=f"Chatbot {chatbot_id} not found")

    chatbot_settings = dict(item.get("config") or {})
    if "memoryDuration" not in chatbot_settings:
        tenant_config = documents.get(tenant_id, TENANT_CONFIG_ID) or {}
        if tenant_config.get("memoryDuration") is not None:
            chatbot_settings["memoryDuration"] = tenant_config["memoryDuration"]
    config = ChatbotConfig.model_validate(chatbot_settings)

    return engine.answer(tenant_id, chatbot_id, request.session_id, request.query, config)
