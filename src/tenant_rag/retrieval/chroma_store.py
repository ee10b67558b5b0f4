"""Chroma implementation of the tenant vector-index abstraction."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import chromadb

from tenant_rag.config import settings
from tenant_rag.retrieval.base import BulkResult, VectorIndexBase

if TYPE_CHECKING:
    from tenant_rag.ingestion.models import VectorRecord

logger = logging.getLogger(__name__)

HNSW_SETTINGS: dict[str, Any] = {
    "hnsw:space": "cosine",
    "hnsw:construction_ef": 128,
    "hnsw:M": 24,
}


def collection_name(index_name: str) -> str:
    """Coerce *index_name* into Chroma's collection naming rules."""
    name = re.sub(r"[^a-zA-Z0-9._-]", "-", index_name)
    name = name.strip("._-") or "tenant"
    if len(name) < 3:
        name = name.ljust(3, "0")
    return name[:63]


class ChromaVectorIndex(VectorIndexBase):
    """Chroma-backed index: one collection per tenant.

    Parameters
    ----------
    client:
        A chromadb client; when *None* an ``HttpClient`` is created from
        the global settings.
    host:
        Chroma server hostname.
    port:
        Chroma server port.
    """

    def __init__(
        self,
        client: Any = None,
        *,
        host: str = settings.chroma_host,
        port: int = settings.chroma_port,
    ) -> None:
        self._client = client if client is not None else chromadb.HttpClient(host=host, port=port)

    def _name(self, tenant_id: str) -> str:
        return collection_name(self.index_name(tenant_id))

    # -- VectorIndexBase overrides --------------------------------------------

    def index_exists(self, tenant_id: str) -> bool:
        target = self._name(tenant_id)
        # chromadb >= 0.6 returns names, older releases return Collection objects
        names = {getattr(c, "name", c) for c in self._client.list_collections()}
        return target in names

    def create_index(self, tenant_id: str, *, dimension: int) -> None:
        name = self._name(tenant_id)
        self._client.get_or_create_collection(
            name,
            metadata={**HNSW_SETTINGS, "dimension": dimension, "tenant_id": tenant_id},
        )
        logger.info("Created vector index %s (dimension=%d)", name, dimension)

    def bulk_upsert(self, tenant_id: str, records: Sequence[VectorRecord]) -> BulkResult:
        if not records:
            return BulkResult()
        collection = self._client.get_collection(self._name(tenant_id))
        try:
            collection.upsert(
                ids=[r.id for r in records],
                embeddings=[r.embedding for r in records],
                documents=[r.text for r in records],
                metadatas=[r.index_metadata() for r in records],
            )
        except Exception as exc:
            logger.warning("Chroma upsert of %d record(s) failed: %s", len(records), exc)
            return BulkResult(failed=[{"id": r.id, "error": str(exc)} for r in records])
        return BulkResult(indexed=len(records))

    def knn_search(self, tenant_id: str, vector: list[float], *, k: int = 5) -> list[dict[str, Any]]:
        if not self.index_exists(tenant_id):
            return []
        collection = self._client.get_collection(self._name(tenant_id))
        results = collection.query(
            query_embeddings=[vector],
            n_results=k,
            include=["documents", "metadatas", "distances"],
        )

        hits: list[dict[str, Any]] = []
        ids = results.get("ids", [[]])[0]
        docs = (results.get("documents") or [[]])[0]
        metas = (results.get("metadatas") or [[]])[0]
        distances = (results.get("distances") or [[]])[0]

        for doc_id, content, meta, dist in zip(ids, docs, metas, distances):
            # Cosine distance (0-2) mapped onto a 0-1 similarity score.
            score = 1.0 / (1.0 + dist)
            hits.append(
                {
                    "id": doc_id,
                    "content": content or "",
                    "score": score,
                    "metadata": meta or {},
                }
            )
        return hits

    def health_check(self) -> bool:
        try:
            self._client.heartbeat()
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False
