"""
Retrieval — tenant-scoped vector search and citation tracking.

This module wraps the vector index behind a clean interface so that the
ingestion pipeline and the chat engine never need to know which DB is
backing retrieval.

Public surface
--------------
- :class:`SemanticRetriever` — main entry point for retrieval with citations.
- :class:`VectorIndexBase` — abstract backend (subclass for other engines).
- :class:`ChromaVectorIndex` — default Chroma backend.
- :class:`Citation`, :class:`RetrievalResult`, :class:`BulkResult` — data models.
"""

from tenant_rag.retrieval.base import BulkResult, VectorIndexBase
from tenant_rag.retrieval.models import Citation, RetrievalResult
from tenant_rag.retrieval.retriever import SemanticRetriever

__all__ = [
    "BulkResult",
    "ChromaVectorIndex",
    "Citation",
    "RetrievalResult",
    "SemanticRetriever",
    "VectorIndexBase",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaVectorIndex to avoid pulling in chromadb at import time."""
    if name == "ChromaVectorIndex":
        from tenant_rag.retrieval.chroma_store import ChromaVectorIndex

        return ChromaVectorIndex
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
