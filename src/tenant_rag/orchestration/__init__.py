"""
Orchestration — the ingestion pipeline state machines.

Public surface
--------------
- :class:`IngestionOrchestrator` — ``start`` / ``start_ingestion_run``.
- :class:`PipelineServices` — backends injected into every graph node.
- :class:`RunOutcome`, :class:`SourceOutcome`, :class:`ErrorRecord` — results.
"""

from tenant_rag.orchestration.models import ErrorRecord, RunOutcome, SourceOutcome
from tenant_rag.orchestration.orchestrator import IngestionOrchestrator
from tenant_rag.orchestration.services import PipelineServices

__all__ = [
    "ErrorRecord",
    "IngestionOrchestrator",
    "PipelineServices",
    "RunOutcome",
    "SourceOutcome",
]
