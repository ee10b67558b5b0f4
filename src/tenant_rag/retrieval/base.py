"""Abstract base class for tenant-partitioned vector-index backends.

Adding a new backend (OpenSearch, Qdrant …) only requires subclassing
:class:`VectorIndexBase` and implementing the abstract methods.  Every
call takes the tenant id; a backend keeps one index per tenant.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from tenant_rag.ingestion.models import VectorRecord


@dataclass
class BulkResult:
    """Outcome of one bulk upsert; ``failed`` lists ``{"id", "error"}`` dicts."""

    indexed: int = 0
    failed: list[dict[str, Any]] = field(default_factory=list)


class VectorIndexBase(ABC):
    """Backend-agnostic, tenant-scoped vector index."""

    @staticmethod
    def index_name(tenant_id: str) -> str:
        return f"{tenant_id}-vectors"

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def index_exists(self, tenant_id: str) -> bool: ...

    @abstractmethod
    def create_index(self, tenant_id: str, *, dimension: int) -> None:
        """Create the tenant's index for vectors of *dimension* (cosine space)."""
        ...

    @abstractmethod
    def bulk_upsert(self, tenant_id: str, records: Sequence[VectorRecord]) -> BulkResult:
        """Insert or replace *records*; report per-item failures instead of raising."""
        ...

    @abstractmethod
    def knn_search(self, tenant_id: str, vector: list[float], *, k: int = 5) -> list[dict[str, Any]]:
        """Return the *k* nearest records to *vector*.

        Each result dict **must** contain:

        * ``"id"`` – record identifier
        * ``"content"`` – the chunk text
        * ``"score"`` – similarity on a 0–1 scale (higher = more similar)
        * ``"metadata"`` – ``source_name``, ``source_url``, ``chunk_index`` …

        An unknown tenant index yields an empty list.
        """
        ...

    @abstractmethod
    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        ...

    # -- shared helpers -------------------------------------------------------

    def ensure_index(self, tenant_id: str, *, dimension: int) -> None:
        """Create the tenant's index when it does not exist yet."""
        if not self.index_exists(tenant_id):
            self.create_index(tenant_id, dimension=dimension)
