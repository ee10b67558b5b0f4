"""Outcome records produced by an ingestion run."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ErrorRecord(BaseModel):
    """Immutable record of one pipeline failure."""

    id: str
    tenant_id: str
    stage: str
    kind: str
    message: str
    recoverable: bool = False
    source_context: dict[str, Any] = Field(default_factory=dict)
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_utcnow)


class SourceOutcome(BaseModel):
    source_name: str
    source_type: str
    status: Literal["succeeded", "failed"]
    vector_count: int = 0
    error: ErrorRecord | None = None


class RunOutcome(BaseModel):
    """Result of one ingestion run.

    ``status`` is ``completed`` whenever the run got past validation,
    even if every source failed; inspect ``sources`` for per-source
    results and ``tenant_errors`` for housekeeping failures.
    """

    run_id: str
    tenant_id: str
    status: Literal["completed"] = "completed"
    started_at: datetime
    completed_at: datetime = Field(default_factory=_utcnow)
    sources: list[SourceOutcome] = Field(default_factory=list)
    tenant_errors: list[ErrorRecord] = Field(default_factory=list)
    summary: dict[str, Any] = Field(default_factory=dict)

    @property
    def succeeded(self) -> list[SourceOutcome]:
        return [s for s in self.sources if s.status == "succeeded"]

    @property
    def failed(self) -> list[SourceOutcome]:
        return [s for s in self.sources if s.status == "failed"]
