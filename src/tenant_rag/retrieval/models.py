"""Domain models for retrieval results and citation tracking."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


class Citation(BaseModel):
    """Provenance record linking a retrieved chunk back to its source.

    Attributes
    ----------
    record_id:
        The vector-index ID of the chunk (``None`` when unknown).
    source_name:
        Name of the data source the chunk was ingested from.
    source_url:
        Locator of the source — page URL, API endpoint or object key.
    chunk_index:
        Ordinal position of the chunk within its source.
    score:
        Similarity score on a 0–1 scale.
    metadata:
        Remaining metadata stored with the vector.
    retrieved_at:
        UTC timestamp of when the retrieval happened.
    """

    record_id: str | None = None
    source_name: str = "unknown"
    source_url: str = ""
    chunk_index: int | None = None
    score: float = 0.0
    metadata: dict[str, Any] = Field(default_factory=dict)
    retrieved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def short_ref(self) -> str:
        """Return a compact ``[source§chunk]`` reference string."""
        chunk = self.chunk_index if self.chunk_index is not None else "?"
        return f"[{self.source_name}§{chunk}]"


class RetrievalResult(BaseModel):
    """A single retrieved passage together with its citation."""

    content: str
    citation: Citation
