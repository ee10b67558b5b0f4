"""Embedding generation and vector-index persistence."""

from __future__ import annotations

import hashlib
import logging
import random
import time
from collections.abc import Callable, Sequence
from functools import lru_cache
from typing import TYPE_CHECKING

from tenant_rag.config import settings
from tenant_rag.errors import EmbeddingError, StorageError, is_transient
from tenant_rag.ingestion.models import Chunk, VectorRecord

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

    from tenant_rag.retrieval.base import VectorIndexBase

logger = logging.getLogger(__name__)


@lru_cache(maxsize=4)
def get_embedding_function(model: str = settings.embedding_model) -> Embeddings:
    """Return the sentence-transformer embedding function for *model* (cached)."""
    from langchain_huggingface import HuggingFaceEmbeddings

    return HuggingFaceEmbeddings(model_name=model)


def make_record_id(tenant_id: str, run_id: str, chunk: Chunk) -> str:
    """Build an id unique per tenant, run, source and chunk position."""
    digest = hashlib.sha256(f"{chunk.source_name}\n{chunk.source_locator}".encode()).hexdigest()[:12]
    return f"{tenant_id}-{run_id}-{digest}-{chunk.index}"


class EmbeddingWriter:
    """Turn chunks into :class:`VectorRecord` objects and write them to the index.

    Parameters
    ----------
    index:
        Tenant-partitioned vector index.
    embeddings_factory:
        Returns the LangChain ``Embeddings`` for a model name.
    fallback:
        When ``True`` a failed embedding call yields a pseudo-random vector
        flagged ``synthetic=True`` instead of failing the source.
    dimension:
        Size of synthetic vectors.
    call_delay:
        Pause between consecutive embedding calls, in seconds.
    upsert_batch_size:
        Number of records sent per bulk upsert.
    """

    def __init__(
        self,
        index: VectorIndexBase,
        *,
        embeddings_factory: Callable[[str], Embeddings] = get_embedding_function,
        fallback: bool = settings.embedding_fallback,
        dimension: int = settings.embedding_dimension,
        call_delay: float = settings.embedding_call_delay,
        upsert_batch_size: int = settings.vector_upsert_batch_size,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._index = index
        self._embeddings_factory = embeddings_factory
        self.fallback = fallback
        self.dimension = dimension
        self.call_delay = call_delay
        self.upsert_batch_size = max(1, upsert_batch_size)
        self._sleep = sleep

    # -- embedding ------------------------------------------------------------

    def embed(
        self,
        chunks: Sequence[Chunk],
        *,
        model: str,
        tenant_id: str,
        run_id: str,
    ) -> list[VectorRecord]:
        """Embed every chunk, one call at a time, preserving order.

        Raises
        ------
        EmbeddingError
            On the first failed call, unless ``fallback`` is enabled.
        """
        if not chunks:
            return []
        try:
            embeddings = self._embeddings_factory(model)
        except Exception as exc:
            raise EmbeddingError(f"Could not load embedding model {model}: {exc}") from exc

        records: list[VectorRecord] = []
        for i, chunk in enumerate(chunks):
            if i > 0 and self.call_delay > 0:
                self._sleep(self.call_delay)
            synthetic = False
            try:
                vector = [float(v) for v in embeddings.embed_query(chunk.text)]
            except Exception as exc:
                if not self.fallback:
                    raise EmbeddingError(
                        f"Embedding failed for chunk {chunk.index} of {chunk.source_name}: {exc}",
                        transient=is_transient(exc),
                    ) from exc
                logger.warning(
                    "Embedding failed for chunk %d of %s; using a synthetic vector",
                    chunk.index,
                    chunk.source_name,
                )
                vector = [random.uniform(-1.0, 1.0) for _ in range(self.dimension)]
                synthetic = True

            records.append(
                VectorRecord(
                    id=make_record_id(tenant_id, run_id, chunk),
                    embedding=vector,
                    text=chunk.text,
                    source_locator=chunk.source_locator,
                    source_name=chunk.source_name,
                    tenant_id=tenant_id,
                    chunk_index=chunk.index,
                    synthetic=synthetic,
                )
            )
        logger.info("Generated %d embedding(s) for tenant %s", len(records), tenant_id)
        return records

    # -- storage --------------------------------------------------------------

    def store(self, records: Sequence[VectorRecord], tenant_id: str) -> int:
        """Write *records* to the tenant's index and return how many were indexed.

        Raises
        ------
        StorageError
            When a record belongs to another tenant, or when any item of a
            batch was rejected by the index.
        """
        if not records:
            return 0
        foreign = [r.id for r in records if r.tenant_id != tenant_id]
        if foreign:
            raise StorageError(
                f"Refusing to write {len(foreign)} record(s) of another tenant into {tenant_id}",
                details={"recordIds": foreign[:10]},
            )

        indexed = 0
        try:
            self._index.ensure_index(tenant_id, dimension=len(records[0].embedding))
            for start in range(0, len(records), self.upsert_batch_size):
                batch = list(records[start : start + self.upsert_batch_size])
                result = self._index.bulk_upsert(tenant_id, batch)
                if result.failed:
                    raise StorageError(
                        f"{len(result.failed)} of {len(batch)} vector(s) failed to index",
                        details={"failedItems": result.failed},
                    )
                indexed += result.indexed
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(
                f"Vector index write failed for tenant {tenant_id}: {exc}",
                transient=is_transient(exc),
            ) from exc

        logger.info("Indexed %d vector(s) into %s", indexed, self._index.index_name(tenant_id))
        return indexed
