"""Unit tests for the serving layer."""

from __future__ import annotations

from collections.abc import Iterator
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from tenant_rag.chat.models import ChatbotConfig, ChatResponse, SourceReference
from tenant_rag.serving.app import app, get_chat_engine, get_document_store, get_orchestrator, get_vector_index


@pytest.fixture()
def orchestrator() -> MagicMock:
    orchestrator = MagicMock()
    orchestrator.start_ingestion_run.return_value = "run123"
    return orchestrator


@pytest.fixture()
def engine() -> MagicMock:
    engine = MagicMock()
    engine.answer.return_value = ChatResponse(
        response="Thirty days.",
        session_id="s1",
        sources=[SourceReference(text="Refunds within 30 days.", url="https://example.com", name="faq", score=0.9)],
    )
    return engine


@pytest.fixture()
def client(orchestrator: MagicMock, engine: MagicMock, document_store, vector_index) -> Iterator[TestClient]:
    document_store.put("acme", "chatbot-bot1", {"itemType": "chatbot", "config": {"maxDocuments": 3}})
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_chat_engine] = lambda: engine
    app.dependency_overrides[get_document_store] = lambda: document_store
    app.dependency_overrides[get_vector_index] = lambda: vector_index
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health_endpoint(client: TestClient) -> None:
    """GET /health should return 200 with status ok."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


class TestReadiness:
    def test_ready_when_index_is_reachable(self, client: TestClient) -> None:
        response = client.get("/ready")
        assert response.status_code == 200
        assert response.json() == {"status": "ready"}

    def test_unavailable_index(self, client: TestClient) -> None:
        index = MagicMock()
        index.health_check.return_value = False
        app.dependency_overrides[get_vector_index] = lambda: index
        assert client.get("/ready").status_code == 503


class TestIngestionEndpoint:
    def test_valid_request_is_accepted(self, client: TestClient, orchestrator: MagicMock) -> None:
        body = {
            "dataSources": [{"type": "website", "name": "site", "url": "https://example.com"}],
            "config": {"crawlDepth": 2},
        }
        response = client.post("/tenants/acme/ingestion-runs", json=body)
        assert response.status_code == 202
        assert response.json() == {"runId": "run123", "status": "RUNNING"}
        orchestrator.start_ingestion_run.assert_called_once_with("acme", body["dataSources"], {"crawlDepth": 2})

    def test_invalid_request_lists_every_error(self, client: TestClient, orchestrator: MagicMock) -> None:
        response = client.post("/tenants/initech/ingestion-runs", json={"dataSources": [], "config": {}})
        assert response.status_code == 400
        assert response.json()["detail"]["errors"] == [
            "Tenant not found: initech",
            "Missing or invalid dataSources: must be a non-empty array",
        ]
        orchestrator.start_ingestion_run.assert_not_called()


class TestQueryEndpoint:
    def test_answers_with_sources(self, client: TestClient, engine: MagicMock) -> None:
        response = client.post("/tenants/acme/chatbots/bot1/query", json={"query": "Refunds?", "sessionId": "s1"})
        assert response.status_code == 200
        payload = response.json()
        assert payload["response"] == "Thirty days."
        assert payload["sessionId"] == "s1"
        assert payload["sources"][0]["name"] == "faq"

        tenant, chatbot, session, query, config = engine.answer.call_args.args
        assert (tenant, chatbot, session, query) == ("acme", "bot1", "s1", "Refunds?")
        assert isinstance(config, ChatbotConfig)
        assert config.max_documents == 3

    def test_tenant_memory_duration_is_the_default(self, client: TestClient, engine: MagicMock, document_store) -> None:
        document_store.update("acme", "tenant-config", {"memoryDuration": 15})
        client.post("/tenants/acme/chatbots/bot1/query", json={"query": "hi"})
        config = engine.answer.call_args.args[4]
        assert config.memory_duration == 15

    def test_empty_query_is_rejected(self, client: TestClient) -> None:
        response = client.post("/tenants/acme/chatbots/bot1/query", json={"query": "  "})
        assert response.status_code == 400
        assert response.json()["detail"] == "Missing required parameter: query"

    def test_unknown_chatbot(self, client: TestClient) -> None:
        response = client.post("/tenants/acme/chatbots/nope/query", json={"query": "hi"})
        assert response.status_code == 404
