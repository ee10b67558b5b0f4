"""Semantic retriever — tenant-scoped k-NN search with a relevance cut-off.

Usage::

    from tenant_rag.retrieval.retriever import SemanticRetriever

    retriever = SemanticRetriever()
    results   = retriever.search("acme", "What is the refund policy?", k=5)
    for r in results:
        print(r.citation.short_ref(), r.content[:80])
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from tenant_rag.config import settings
from tenant_rag.retrieval.base import VectorIndexBase
from tenant_rag.retrieval.models import Citation, RetrievalResult

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

logger = logging.getLogger(__name__)


class SemanticRetriever:
    """High-level retriever that wraps any :class:`VectorIndexBase`.

    Parameters
    ----------
    index:
        A concrete vector-index backend.  When *None*, a default
        :class:`~tenant_rag.retrieval.chroma_store.ChromaVectorIndex`
        is created from the global settings.
    embeddings:
        Embedding function for queries; must be the one used at ingestion.
        Defaults to the configured sentence-transformer model.
    default_k:
        Default number of results returned by :meth:`search`.
    score_threshold:
        Minimum similarity score; results below this are discarded.
    """

    def __init__(
        self,
        index: VectorIndexBase | None = None,
        embeddings: Embeddings | None = None,
        *,
        default_k: int = 5,
        score_threshold: float = settings.relevance_threshold,
    ) -> None:
        if index is None:
            from tenant_rag.retrieval.chroma_store import ChromaVectorIndex

            index = ChromaVectorIndex()
        if embeddings is None:
            from tenant_rag.ingestion.embedder import get_embedding_function

            embeddings = get_embedding_function()
        self._index = index
        self._embeddings = embeddings
        self.default_k = default_k
        self.score_threshold = score_threshold

    # -- public API -----------------------------------------------------------

    def search(self, tenant_id: str, query: str, *, k: int | None = None) -> list[RetrievalResult]:
        """Embed *query* and search the tenant's index.

        Parameters
        ----------
        tenant_id:
            Tenant whose index is searched; no other index is touched.
        query:
            Natural-language query string.
        k:
            Number of neighbours requested (defaults to ``self.default_k``).

        Returns
        -------
        list[RetrievalResult]
            Results scoring at least ``score_threshold``, best first.
        """
        embedding = self._embeddings.embed_query(query)
        return self.search_by_embedding(tenant_id, embedding, k=k)

    def search_by_embedding(
        self,
        tenant_id: str,
        embedding: list[float],
        *,
        k: int | None = None,
    ) -> list[RetrievalResult]:
        """Same as :meth:`search` but accepts a pre-computed embedding."""
        k = k or self.default_k
        raw_hits = self._index.knn_search(tenant_id, embedding, k=k)
        return self._to_results(raw_hits)

    # -- internals ------------------------------------------------------------

    def _to_results(self, raw_hits: list[dict[str, Any]]) -> list[RetrievalResult]:
        results: list[RetrievalResult] = []
        for hit in raw_hits:
            score = float(hit.get("score") or 0.0)
            if score < self.score_threshold:
                continue

            meta = hit.get("metadata", {})
            citation = Citation(
                record_id=hit.get("id"),
                source_name=meta.get("source_name", "unknown"),
                source_url=meta.get("source_url", ""),
                chunk_index=meta.get("chunk_index"),
                score=score,
                metadata=meta,
            )
            results.append(RetrievalResult(content=hit.get("content", ""), citation=citation))

        results.sort(key=lambda r: r.citation.score, reverse=True)
        logger.debug("Retrieved %d of %d hit(s) above threshold", len(results), len(raw_hits))
        return results
