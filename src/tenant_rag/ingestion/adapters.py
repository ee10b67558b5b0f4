"""Source adapters — one per data-source type, all returning :class:`RawContent`.

Dispatch goes through :func:`get_adapter`, which looks the source's
``type`` up in an adapter registry built by :func:`build_adapter_registry`.
"""

from __future__ import annotations

import base64
import logging
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import urlparse

import requests

from tenant_rag.config import settings
from tenant_rag.errors import (
    ApiError,
    DocumentAccessDenied,
    DocumentError,
    DocumentNotFoundError,
    InvalidSourceType,
    UnsupportedDocumentType,
    is_transient,
)
from tenant_rag.ingestion.crawler import WebCrawler, is_valid_url
from tenant_rag.ingestion.documents import DocumentAnalyzerBase, wait_for_completion
from tenant_rag.ingestion.models import (
    ApiAuth,
    ApiSource,
    DocumentSource,
    IngestionConfig,
    RawContent,
    WebsiteSource,
)
from tenant_rag.stores.base import DocumentStoreBase, ObjectStoreBase, SecretStoreBase

logger = logging.getLogger(__name__)

BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})
DEFAULT_API_KEY_HEADER = "X-API-Key"


class SourceAdapter(ABC):
    """Fetch the raw content of one data source."""

    source_type: str = ""

    @abstractmethod
    def fetch(self, source: Any, tenant_id: str, config: IngestionConfig) -> RawContent:
        """Return the source's content; raise a stage-specific ``PipelineError`` on failure."""
        ...


# ── Website ───────────────────────────────────────────────────────────


class WebsiteAdapter(SourceAdapter):
    source_type = "website"

    def __init__(self, crawler: WebCrawler | None = None) -> None:
        self._crawler = crawler or WebCrawler()

    def fetch(self, source: WebsiteSource, tenant_id: str, config: IngestionConfig) -> RawContent:
        pages = self._crawler.crawl(source.url, config.crawl_depth)
        return RawContent(
            source_type=self.source_type,
            source_name=source.name,
            locator=source.url,
            pages=pages,
            content_type="text/html",
            metadata={"pageCount": len(pages)},
        )


# ── API ───────────────────────────────────────────────────────────────


class ApiAdapter(SourceAdapter):
    """Call an HTTP API once and return its response body.

    Parameters
    ----------
    secrets:
        Store used to resolve ``auth.secret_name``; secret names are scoped
        as ``{tenant_id}/{secret_name}``.
    session:
        HTTP session (injectable for tests).
    """

    source_type = "api"

    def __init__(
        self,
        secrets: SecretStoreBase | None = None,
        session: requests.Session | None = None,
        *,
        timeout: float = settings.api_request_timeout,
        user_agent: str = settings.api_user_agent,
    ) -> None:
        self._secrets = secrets
        self._session = session or requests.Session()
        self.timeout = timeout
        self.user_agent = user_agent

    def fetch(self, source: ApiSource, tenant_id: str, config: IngestionConfig) -> RawContent:
        if not is_valid_url(source.url):
            raise ApiError(f"Invalid API URL: {source.url}")

        method = source.method.upper()
        headers = {"User-Agent": self.user_agent, **source.headers}
        if source.auth is not None:
            headers.update(self._auth_headers(source.auth, tenant_id))

        kwargs: dict[str, Any] = {"headers": headers, "timeout": self.timeout}
        if method in BODY_METHODS and source.body is not None:
            if isinstance(source.body, (dict, list)):
                kwargs["json"] = source.body
            else:
                kwargs["data"] = source.body

        logger.info("Making %s request to %s", method, source.url)
        try:
            response = self._session.request(method, source.url, **kwargs)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise ApiError(
                f"API request to {source.url} failed: {exc}",
                transient=is_transient(exc),
                details={"status": getattr(exc.response, "status_code", None)},
            ) from exc

        return RawContent(
            source_type=self.source_type,
            source_name=source.name,
            locator=source.url,
            text=response.text,
            content_type=response.headers.get("Content-Type", ""),
            metadata={"apiStatus": response.status_code},
        )

    def _auth_headers(self, auth: ApiAuth, tenant_id: str) -> dict[str, str]:
        secret = self._resolve_secret(auth, tenant_id) if auth.secret_name else {}

        if auth.auth_type == "bearer":
            token = auth.token or secret.get("token")
            if not token:
                raise ApiError("Bearer authentication requires a token")
            return {"Authorization": f"Bearer {token}"}

        if auth.auth_type == "basic":
            username = auth.username or secret.get("username")
            password = auth.password or secret.get("password")
            if not username or password is None:
                raise ApiError("Basic authentication requires a username and password")
            encoded = base64.b64encode(f"{username}:{password}".encode()).decode("ascii")
            return {"Authorization": f"Basic {encoded}"}

        if auth.auth_type == "api-key":
            key = auth.api_key or secret.get("apiKey")
            header = auth.api_key_header or secret.get("headerName") or DEFAULT_API_KEY_HEADER
            if not key:
                raise ApiError("API-key authentication requires a key")
            return {header: key}

        raise ApiError(f"Unsupported authentication type: {auth.auth_type}")

    def _resolve_secret(self, auth: ApiAuth, tenant_id: str) -> dict[str, Any]:
        if self._secrets is None:
            raise ApiError("No secret store configured for API authentication")
        name = f"{tenant_id}/{auth.secret_name}"
        try:
            return self._secrets.get_secret(name)
        except KeyError as exc:
            raise ApiError(f"Secret {name} not found") from exc


# ── Document ──────────────────────────────────────────────────────────

_ANALYZED_MARKERS = ("pdf", "image", "word", "office")
_DIRECT_MARKERS = ("text", "markdown", "json")


class DocumentAdapter(SourceAdapter):
    """Extract text from a document held in the tenant's object store.

    The locator is one of:

    * ``s3://bucket/key`` — the key is used (a single object store backs
      every bucket name);
    * ``tenant/path/file.pdf`` — used as the object key directly;
    * a bare document id — resolved through the document store item's
      ``s3Key``.
    """

    source_type = "document"

    def __init__(
        self,
        object_store: ObjectStoreBase,
        document_store: DocumentStoreBase,
        analyzer: DocumentAnalyzerBase,
        **poll_kwargs: Any,
    ) -> None:
        self._objects = object_store
        self._documents = document_store
        self._analyzer = analyzer
        self._poll_kwargs = poll_kwargs

    def fetch(self, source: DocumentSource, tenant_id: str, config: IngestionConfig) -> RawContent:
        key = self.resolve_key(source.url, tenant_id)
        if not key.startswith(f"{tenant_id}/"):
            raise DocumentAccessDenied("Access denied: Document does not belong to the specified tenant")

        info = self._objects.head(key)
        if info is None:
            raise DocumentNotFoundError(f"Document {key} not found for tenant {tenant_id}")

        content_type = info.content_type.lower()
        logger.info("Processing document %s (%s) for tenant %s", key, content_type, tenant_id)
        if any(marker in content_type for marker in _ANALYZED_MARKERS):
            job_id = self._analyzer.start_text_detection(self._objects.get(key), info.content_type)
            text = wait_for_completion(self._analyzer, job_id, **self._poll_kwargs)
            method = "analysis"
        elif any(marker in content_type for marker in _DIRECT_MARKERS):
            text = self._objects.get(key).decode("utf-8", errors="replace")
            method = "direct"
        else:
            raise UnsupportedDocumentType(f"Unsupported document type: {info.content_type}")

        return RawContent(
            source_type=self.source_type,
            source_name=source.name,
            locator=key,
            text=text,
            content_type=info.content_type,
            metadata={"objectKey": key, "extractionMethod": method},
        )

    def resolve_key(self, locator: str, tenant_id: str) -> str:
        if locator.startswith("s3://"):
            key = urlparse(locator).path.lstrip("/")
            if not key:
                raise DocumentError(f"Invalid document locator: {locator}")
            return key
        if "/" in locator:
            return locator
        item = self._documents.get(tenant_id, locator)
        if not item or not item.get("s3Key"):
            raise DocumentNotFoundError(f"Document ID {locator} not found for tenant {tenant_id}")
        return item["s3Key"]


# ── Registry ──────────────────────────────────────────────────────────


def build_adapter_registry(*adapters: SourceAdapter) -> dict[str, SourceAdapter]:
    """Index *adapters* by their ``source_type``."""
    return {adapter.source_type: adapter for adapter in adapters}


def get_adapter(registry: dict[str, SourceAdapter], source_type: str | None) -> SourceAdapter:
    adapter = registry.get(source_type or "")
    if adapter is None:
        raise InvalidSourceType(f"Invalid source type: {source_type}")
    return adapter
