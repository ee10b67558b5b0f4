"""Graph state definitions for the ingestion pipeline.

Two graphs share these types: the per-source graph (one invocation per
data source) and the run graph (validation, fan-out, tenant-level steps).
Nodes return *partial* dicts containing only the keys they changed.
"""

from __future__ import annotations

from typing import Any, TypedDict

from tenant_rag.ingestion.models import Chunk, IngestionConfig, RawContent, VectorRecord
from tenant_rag.orchestration.models import ErrorRecord, SourceOutcome


class SourceState(TypedDict, total=False):
    """State of one data source moving through the source graph.

    Attributes
    ----------
    source:
        Wire dict or parsed data source; parsed by ``determine_source_type``.
    source_index:
        Position of the source in the request; part of its artifact keys.
    source_type:
        Resolved type, or ``"invalid"`` when it could not be determined.
    raw:
        Adapter output.
    text:
        Normalised text.
    chunks / records:
        Chunker and embedding-writer outputs.
    vector_count:
        Number of vectors written to the index.
    error:
        The failure being handled; set by a stage, consumed by its handler.
    failed_stage:
        Name of the stage whose error handler should run.
    outcome:
        Terminal per-source result.
    """

    run_id: str
    tenant_id: str
    ingestion_config: IngestionConfig
    source: Any
    source_index: int
    source_type: str
    source_name: str
    source_id: str
    raw: RawContent
    text: str
    chunks: list[Chunk]
    records: list[VectorRecord]
    vector_count: int
    error: Exception
    failed_stage: str
    error_record: ErrorRecord
    outcome: SourceOutcome


class RunState(TypedDict, total=False):
    """State of a whole ingestion run.

    Attributes
    ----------
    request:
        The wire request: ``tenantId``, ``dataSources``, ``config``.
    validation_errors:
        Collected validation messages; non-empty routes to ``validation_error``.
    source_outcomes:
        One :class:`SourceOutcome` per data source, in request order.
    tenant_errors:
        Recorded failures of the non-blocking tenant-level steps.
    summary:
        Produced by ``analyze_results``.
    notified:
        Set once the completion notice was sent.
    """

    run_id: str
    started_at: str
    request: dict[str, Any]
    tenant_id: str
    data_sources: list[Any]
    ingestion_config: IngestionConfig
    validation_errors: list[str]
    validation_record: ErrorRecord
    source_outcomes: list[SourceOutcome]
    tenant_errors: list[ErrorRecord]
    summary: dict[str, Any]
    notified: bool
