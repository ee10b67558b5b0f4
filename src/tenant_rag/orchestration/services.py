"""Service container passed to every graph node.

Nodes receive it through ``config["configurable"]["services"]`` so the
same compiled graph runs against real backends or in-memory fakes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from tenant_rag.config import settings
from tenant_rag.retry import RetryPolicy

if TYPE_CHECKING:
    from langchain_core.runnables import RunnableConfig

    from tenant_rag.ingestion.adapters import SourceAdapter
    from tenant_rag.ingestion.embedder import EmbeddingWriter
    from tenant_rag.stores.base import DocumentStoreBase, NotifierBase, ObjectStoreBase


@dataclass
class PipelineServices:
    """Backends and policies used by the ingestion pipeline.

    Attributes
    ----------
    adapters:
        ``source type → adapter`` registry.
    writer:
        Embedding writer bound to the vector index.
    retry_policy:
        Applied to every network-bound stage and to the first three
        tenant-level steps.
    """

    adapters: dict[str, SourceAdapter]
    writer: EmbeddingWriter
    object_store: ObjectStoreBase
    document_store: DocumentStoreBase
    notifier: NotifierBase
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy.from_settings)
    max_parallel_sources: int = settings.max_parallel_sources

    @classmethod
    def from_settings(cls) -> PipelineServices:
        """Wire the default production backends from :data:`settings`."""
        from tenant_rag.ingestion.adapters import (
            ApiAdapter,
            DocumentAdapter,
            WebsiteAdapter,
            build_adapter_registry,
        )
        from tenant_rag.ingestion.crawler import WebCrawler
        from tenant_rag.ingestion.documents import LocalDocumentAnalyzer
        from tenant_rag.ingestion.embedder import EmbeddingWriter
        from tenant_rag.retrieval.chroma_store import ChromaVectorIndex
        from tenant_rag.stores import (
            EnvSecretStore,
            LocalObjectStore,
            RedisDocumentStore,
            RedisNotifier,
            get_redis_client,
        )

        client = get_redis_client()
        object_store = LocalObjectStore()
        document_store = RedisDocumentStore(client)
        adapters = build_adapter_registry(
            WebsiteAdapter(WebCrawler()),
            ApiAdapter(EnvSecretStore()),
            DocumentAdapter(object_store, document_store, LocalDocumentAnalyzer()),
        )
        return cls(
            adapters=adapters,
            writer=EmbeddingWriter(ChromaVectorIndex()),
            object_store=object_store,
            document_store=document_store,
            notifier=RedisNotifier(client),
        )


def get_services(config: RunnableConfig | None) -> PipelineServices:
    """Extract the :class:`PipelineServices` from a node's runnable config."""
    services = ((config or {}).get("configurable") or {}).get("services")
    if services is None:
        raise RuntimeError("Graph invoked without configurable 'services'")
    return services
