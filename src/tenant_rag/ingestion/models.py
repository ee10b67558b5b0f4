"""Domain models for ingestion requests and the artifacts each stage produces.

Wire input uses camelCase keys (``crawlDepth``, ``authType`` …); every
model accepts both the alias and the Python field name.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from tenant_rag.config import settings
from tenant_rag.errors import InvalidSourceType

SOURCE_TYPES = ("website", "api", "document")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Data sources ──────────────────────────────────────────────────────


class ApiAuth(_WireModel):
    """Authentication settings for an API source.

    Credentials are given inline or resolved from the tenant's secret
    store via ``secret_name``.
    """

    model_config = ConfigDict(frozen=True)

    auth_type: Literal["bearer", "basic", "api-key", "oauth2"]
    token: str | None = None
    username: str | None = None
    password: str | None = None
    api_key: str | None = None
    api_key_header: str | None = None
    secret_name: str | None = None


class _SourceBase(_WireModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    url: str = Field(min_length=1, description="Locator: page URL, endpoint or document reference")


class WebsiteSource(_SourceBase):
    type: Literal["website"] = "website"


class ApiSource(_SourceBase):
    type: Literal["api"] = "api"
    method: str = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None
    auth: ApiAuth | None = None


class DocumentSource(_SourceBase):
    type: Literal["document"] = "document"


DataSource = Annotated[Union[WebsiteSource, ApiSource, DocumentSource], Field(discriminator="type")]

_data_source_adapter: TypeAdapter[DataSource] = TypeAdapter(DataSource)


def parse_data_source(raw: dict[str, Any]) -> WebsiteSource | ApiSource | DocumentSource:
    """Parse one wire data-source dict into its typed variant.

    Raises
    ------
    InvalidSourceType
        When ``type`` is missing / unknown or the payload is malformed.
    """
    try:
        return _data_source_adapter.validate_python(raw)
    except PydanticValidationError as exc:
        raise InvalidSourceType(
            f"Invalid data source {raw.get('name', '<unnamed>')!r}: {exc.errors()[0]['msg']}",
            details={"type": raw.get("type")},
        ) from exc


# ── Run configuration ─────────────────────────────────────────────────


class IngestionConfig(_WireModel):
    """Per-run ingestion options."""

    model_config = ConfigDict(frozen=True)

    crawl_depth: int = Field(default=1, ge=1, le=3)
    memory_duration: int = Field(default=60, ge=5, le=1440, description="Session memory TTL in minutes")
    max_documents: int = Field(default=5, ge=1, le=20)
    embedding_model: str = settings.embedding_model
    max_chunk_size: int = Field(default=settings.max_chunk_size, ge=1)
    recrawl_interval_hours: int = Field(default=settings.recrawl_interval_hours, ge=1)


# ── Stage artifacts ───────────────────────────────────────────────────


class RawPage(BaseModel):
    """One crawled page after markup reduction."""

    url: str
    content: str
    fetched_at: datetime = Field(default_factory=_utcnow)


class RawContent(BaseModel):
    """Source-specific payload produced by an adapter.

    Attributes
    ----------
    source_type:
        ``website``, ``api`` or ``document``.
    pages:
        Crawled pages (website sources only).
    text:
        Response body or extracted document text (api / document sources).
    content_type:
        MIME type reported by the API or object store.
    """

    source_type: str
    source_name: str
    locator: str
    pages: list[RawPage] = Field(default_factory=list)
    text: str = ""
    content_type: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    fetched_at: datetime = Field(default_factory=_utcnow)


class Chunk(BaseModel):
    """An ordered text segment within the configured size limit."""

    text: str
    index: int
    source_name: str
    source_locator: str


class VectorRecord(BaseModel):
    """An embedded chunk ready to be written to the tenant's vector index."""

    model_config = ConfigDict(frozen=True)

    id: str
    embedding: list[float]
    text: str
    source_locator: str
    source_name: str
    tenant_id: str
    chunk_index: int
    created_at: datetime = Field(default_factory=_utcnow)
    synthetic: bool = False

    def index_metadata(self) -> dict[str, Any]:
        """Flat metadata stored next to the vector."""
        return {
            "text": self.text,
            "source_url": self.source_locator,
            "source_name": self.source_name,
            "tenant_id": self.tenant_id,
            "chunk_index": self.chunk_index,
            "timestamp": self.created_at.isoformat(),
            "synthetic": self.synthetic,
        }
