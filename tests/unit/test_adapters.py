"""Unit tests for the source adapters and the document job poller."""

from __future__ import annotations

import base64
from unittest.mock import MagicMock

import pytest
import requests

from tenant_rag.errors import (
    ApiError,
    DocumentAccessDenied,
    DocumentError,
    DocumentNotFoundError,
    DocumentTimeoutError,
    InvalidSourceType,
    UnsupportedDocumentType,
)
from tenant_rag.ingestion.adapters import (
    ApiAdapter,
    DocumentAdapter,
    WebsiteAdapter,
    build_adapter_registry,
    get_adapter,
)
from tenant_rag.ingestion.documents import (
    DocumentAnalyzerBase,
    DocumentJob,
    DocumentJobStatus,
    LocalDocumentAnalyzer,
    wait_for_completion,
)
from tenant_rag.ingestion.models import (
    ApiSource,
    DocumentSource,
    IngestionConfig,
    RawPage,
    WebsiteSource,
    parse_data_source,
)


# ── Fake document analyzer ──────────────────────────────────────────────


class FakeAnalyzer(DocumentAnalyzerBase):
    """Job stays IN_PROGRESS for ``pending_polls`` polls, then finishes."""

    def __init__(self, text: str = "extracted text", pending_polls: int = 0, fail: bool = False) -> None:
        self.text = text
        self.pending_polls = pending_polls
        self.fail = fail
        self.started: list[tuple[bytes, str]] = []
        self.polls = 0

    def start_text_detection(self, data: bytes, content_type: str) -> str:
        self.started.append((data, content_type))
        return "job-1"

    def get_text_detection(self, job_id: str) -> DocumentJob:
        self.polls += 1
        if self.polls <= self.pending_polls:
            return DocumentJob(job_id, DocumentJobStatus.IN_PROGRESS)
        if self.fail:
            return DocumentJob(job_id, DocumentJobStatus.FAILED, message="corrupt file")
        return DocumentJob(job_id, DocumentJobStatus.SUCCEEDED, text=self.text)


def _api_response(text: str = '{"ok": true}', status: int = 200) -> MagicMock:
    response = MagicMock()
    response.status_code = status
    response.text = text
    response.headers = {"Content-Type": "application/json"}
    if status >= 400:
        error = requests.HTTPError(f"{status} error")
        error.response = response
        response.raise_for_status.side_effect = error
    return response


CONFIG = IngestionConfig()


# ── Source models ───────────────────────────────────────────────────────


class TestParseDataSource:
    def test_parses_camel_case_api_source(self) -> None:
        source = parse_data_source({
            "type": "api",
            "name": "crm",
            "url": "https://api.example.com",
            "auth": {"authType": "api-key", "apiKey": "k", "apiKeyHeader": "X-Key"},
        })
        assert isinstance(source, ApiSource)
        assert source.auth is not None
        assert source.auth.api_key_header == "X-Key"

    def test_unknown_type_raises(self) -> None:
        with pytest.raises(InvalidSourceType):
            parse_data_source({"type": "ftp", "name": "x", "url": "ftp://x"})


# ── Website ─────────────────────────────────────────────────────────────


class TestWebsiteAdapter:
    def test_wraps_crawled_pages(self) -> None:
        crawler = MagicMock()
        crawler.crawl.return_value = [RawPage(url="https://example.com", content="Hi")]
        raw = WebsiteAdapter(crawler).fetch(
            WebsiteSource(name="site", url="https://example.com"), "acme", IngestionConfig(crawl_depth=2)
        )
        crawler.crawl.assert_called_once_with("https://example.com", 2)
        assert raw.source_type == "website"
        assert raw.metadata == {"pageCount": 1}
        assert raw.pages[0].content == "Hi"


# ── API ─────────────────────────────────────────────────────────────────


class TestApiAdapter:
    def test_get_request_returns_body(self) -> None:
        session = MagicMock()
        session.request.return_value = _api_response('{"items": []}')
        raw = ApiAdapter(session=session).fetch(
            ApiSource(name="crm", url="https://api.example.com/items"), "acme", CONFIG
        )
        method, url = session.request.call_args.args
        assert (method, url) == ("GET", "https://api.example.com/items")
        assert "json" not in session.request.call_args.kwargs
        assert raw.text == '{"items": []}'
        assert raw.content_type == "application/json"
        assert raw.metadata == {"apiStatus": 200}

    def test_post_sends_json_body_and_custom_headers(self) -> None:
        session = MagicMock()
        session.request.return_value = _api_response()
        source = ApiSource(
            name="crm", url="https://api.example.com", method="post", headers={"X-Trace": "1"}, body={"q": 1}
        )
        ApiAdapter(session=session, user_agent="Agent/2").fetch(source, "acme", CONFIG)
        kwargs = session.request.call_args.kwargs
        assert session.request.call_args.args[0] == "POST"
        assert kwargs["json"] == {"q": 1}
        assert kwargs["headers"]["X-Trace"] == "1"
        assert kwargs["headers"]["User-Agent"] == "Agent/2"

    def test_bearer_token_inline(self) -> None:
        session = MagicMock()
        session.request.return_value = _api_response()
        source = parse_data_source({
            "type": "api", "name": "crm", "url": "https://api.example.com",
            "auth": {"authType": "bearer", "token": "abc"},
        })
        ApiAdapter(session=session).fetch(source, "acme", CONFIG)
        assert session.request.call_args.kwargs["headers"]["Authorization"] == "Bearer abc"

    def test_basic_auth_from_tenant_secret(self, secret_store) -> None:
        secret_store.secrets["acme/crm-creds"] = {"username": "u", "password": "p"}
        session = MagicMock()
        session.request.return_value = _api_response()
        source = parse_data_source({
            "type": "api", "name": "crm", "url": "https://api.example.com",
            "auth": {"authType": "basic", "secretName": "crm-creds"},
        })
        ApiAdapter(secret_store, session=session).fetch(source, "acme", CONFIG)
        expected = "Basic " + base64.b64encode(b"u:p").decode()
        assert session.request.call_args.kwargs["headers"]["Authorization"] == expected

    def test_api_key_header_from_secret(self, secret_store) -> None:
        secret_store.secrets["acme/key"] = {"apiKey": "s3cr3t", "headerName": "X-Custom-Key"}
        session = MagicMock()
        session.request.return_value = _api_response()
        source = parse_data_source({
            "type": "api", "name": "crm", "url": "https://api.example.com",
            "auth": {"authType": "api-key", "secretName": "key"},
        })
        ApiAdapter(secret_store, session=session).fetch(source, "acme", CONFIG)
        assert session.request.call_args.kwargs["headers"]["X-Custom-Key"] == "s3cr3t"

    def test_secret_of_another_tenant_is_not_visible(self, secret_store) -> None:
        secret_store.secrets["globex/key"] = {"apiKey": "theirs"}
        source = parse_data_source({
            "type": "api", "name": "crm", "url": "https://api.example.com",
            "auth": {"authType": "api-key", "secretName": "key"},
        })
        with pytest.raises(ApiError, match="acme/key"):
            ApiAdapter(secret_store, session=MagicMock()).fetch(source, "acme", CONFIG)

    def test_oauth2_is_rejected(self) -> None:
        source = parse_data_source({
            "type": "api", "name": "crm", "url": "https://api.example.com",
            "auth": {"authType": "oauth2", "token": "t"},
        })
        with pytest.raises(ApiError, match="Unsupported authentication"):
            ApiAdapter(session=MagicMock()).fetch(source, "acme", CONFIG)

    @pytest.mark.parametrize(("status", "transient"), [(503, True), (429, True), (404, False)])
    def test_http_errors_are_classified(self, status: int, transient: bool) -> None:
        session = MagicMock()
        session.request.return_value = _api_response(status=status)
        with pytest.raises(ApiError) as exc_info:
            ApiAdapter(session=session).fetch(ApiSource(name="crm", url="https://api.example.com"), "acme", CONFIG)
        assert exc_info.value.transient is transient
        assert exc_info.value.details["status"] == status

    def test_invalid_url_is_rejected_without_a_request(self) -> None:
        session = MagicMock()
        with pytest.raises(ApiError, match="Invalid API URL"):
            ApiAdapter(session=session).fetch(ApiSource(name="crm", url="not-a-url"), "acme", CONFIG)
        session.request.assert_not_called()


# ── Document ────────────────────────────────────────────────────────────


class TestDocumentAdapter:
    def _adapter(self, object_store, document_store, analyzer: DocumentAnalyzerBase | None = None) -> DocumentAdapter:
        return DocumentAdapter(
            object_store,
            document_store,
            analyzer or FakeAnalyzer(),
            interval=0,
            max_attempts=3,
            sleep=lambda _: None,
        )

    def test_text_file_is_read_directly(self, object_store, document_store) -> None:
        object_store.put("acme/docs/faq.txt", "Question? Answer.", content_type="text/plain")
        raw = self._adapter(object_store, document_store).fetch(
            DocumentSource(name="faq", url="acme/docs/faq.txt"), "acme", CONFIG
        )
        assert raw.text == "Question? Answer."
        assert raw.metadata == {"objectKey": "acme/docs/faq.txt", "extractionMethod": "direct"}

    def test_pdf_goes_through_the_analyzer(self, object_store, document_store) -> None:
        object_store.put("acme/docs/guide.pdf", b"%PDF-1.4", content_type="application/pdf")
        analyzer = FakeAnalyzer(text="Guide text", pending_polls=2)
        raw = self._adapter(object_store, document_store, analyzer).fetch(
            DocumentSource(name="guide", url="s3://bucket/acme/docs/guide.pdf"), "acme", CONFIG
        )
        assert raw.text == "Guide text"
        assert raw.metadata["extractionMethod"] == "analysis"
        assert analyzer.started == [(b"%PDF-1.4", "application/pdf")]
        assert analyzer.polls == 3

    def test_document_id_is_resolved_through_the_document_store(self, object_store, document_store) -> None:
        object_store.put("acme/uploads/x.md", "# Notes", content_type="text/markdown")
        document_store.put("acme", "doc-42", {"itemType": "document", "s3Key": "acme/uploads/x.md"})
        raw = self._adapter(object_store, document_store).fetch(
            DocumentSource(name="notes", url="doc-42"), "acme", CONFIG
        )
        assert raw.locator == "acme/uploads/x.md"

    def test_unknown_document_id(self, object_store, document_store) -> None:
        with pytest.raises(DocumentNotFoundError, match="Document ID doc-9 not found for tenant acme"):
            self._adapter(object_store, document_store).fetch(
                DocumentSource(name="missing", url="doc-9"), "acme", CONFIG
            )

    def test_missing_object(self, object_store, document_store) -> None:
        with pytest.raises(DocumentNotFoundError):
            self._adapter(object_store, document_store).fetch(
                DocumentSource(name="missing", url="acme/none.pdf"), "acme", CONFIG
            )

    def test_other_tenants_document_is_denied(self, object_store, document_store) -> None:
        object_store.put("globex/secret.txt", "theirs", content_type="text/plain")
        with pytest.raises(DocumentAccessDenied):
            self._adapter(object_store, document_store).fetch(
                DocumentSource(name="steal", url="globex/secret.txt"), "acme", CONFIG
            )

    def test_unsupported_type(self, object_store, document_store) -> None:
        object_store.put("acme/a.zip", b"PK", content_type="application/zip")
        with pytest.raises(UnsupportedDocumentType):
            self._adapter(object_store, document_store).fetch(
                DocumentSource(name="zip", url="acme/a.zip"), "acme", CONFIG
            )

    def test_analysis_timeout_is_transient(self, object_store, document_store) -> None:
        object_store.put("acme/slow.pdf", b"%PDF", content_type="application/pdf")
        analyzer = FakeAnalyzer(pending_polls=10)
        with pytest.raises(DocumentTimeoutError) as exc_info:
            self._adapter(object_store, document_store, analyzer).fetch(
                DocumentSource(name="slow", url="acme/slow.pdf"), "acme", CONFIG
            )
        assert exc_info.value.transient is True
        assert analyzer.polls == 3


class TestWaitForCompletion:
    def test_failed_job_raises_document_error(self) -> None:
        with pytest.raises(DocumentError, match="corrupt file"):
            wait_for_completion(FakeAnalyzer(fail=True), "job-1", interval=0, sleep=lambda _: None)

    def test_local_analyzer_rejects_images(self) -> None:
        with pytest.raises(UnsupportedDocumentType):
            LocalDocumentAnalyzer().start_text_detection(b"\x89PNG", "image/png")

    def test_local_analyzer_reports_unknown_jobs_as_failed(self) -> None:
        job = LocalDocumentAnalyzer().get_text_detection("nope")
        assert job.status == DocumentJobStatus.FAILED


# ── Registry ────────────────────────────────────────────────────────────


class TestAdapterRegistry:
    def test_dispatches_on_source_type(self) -> None:
        website = WebsiteAdapter(MagicMock())
        api = ApiAdapter(session=MagicMock())
        registry = build_adapter_registry(website, api)
        assert get_adapter(registry, "website") is website
        assert get_adapter(registry, "api") is api

    def test_unregistered_type_raises(self) -> None:
        with pytest.raises(InvalidSourceType):
            get_adapter(build_adapter_registry(), "document")
