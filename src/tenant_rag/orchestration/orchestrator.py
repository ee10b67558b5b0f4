"""Ingestion orchestrator — public entry point of the pipeline."""

from __future__ import annotations

import logging
import threading
import uuid
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any

from tenant_rag.errors import InputValidationError
from tenant_rag.orchestration.graph import build_run_graph
from tenant_rag.orchestration.models import RunOutcome
from tenant_rag.orchestration.services import PipelineServices
from tenant_rag.orchestration.state import RunState

logger = logging.getLogger(__name__)


class IngestionOrchestrator:
    """Run ingestion requests through the run graph.

    Parameters
    ----------
    services:
        Backends and policies; defaults to :meth:`PipelineServices.from_settings`.
    max_background_runs:
        Concurrent runs started by :meth:`start_ingestion_run`.
    max_tracked_runs:
        Finished runs kept for :meth:`get_run`; the oldest are evicted first.
    """

    def __init__(
        self,
        services: PipelineServices | None = None,
        *,
        max_background_runs: int = 2,
        max_tracked_runs: int = 100,
    ) -> None:
        self.services = services or PipelineServices.from_settings()
        self._graph = build_run_graph()
        self._executor = ThreadPoolExecutor(max_workers=max_background_runs, thread_name_prefix="ingestion-run")
        self._runs: OrderedDict[str, Future[RunOutcome]] = OrderedDict()
        self._runs_lock = threading.Lock()
        self._max_tracked_runs = max_tracked_runs

    def start(
        self,
        tenant_id: str,
        data_sources: list[dict[str, Any]],
        config: dict[str, Any] | None,
        *,
        run_id: str | None = None,
    ) -> RunOutcome:
        """Execute one ingestion run synchronously.

        Returns
        -------
        RunOutcome
            Always ``status="completed"``; per-source results are in
            ``sources``.

        Raises
        ------
        InputValidationError
            When the request is invalid; no source was processed.
        AnalysisError, NotificationError
            When one of the final run-level steps failed.
        """
        run_id = run_id or uuid.uuid4().hex[:12]
        started_at = datetime.now(timezone.utc)
        initial: RunState = {
            "run_id": run_id,
            "started_at": started_at.isoformat(),
            "request": {"tenantId": tenant_id, "dataSources": data_sources, "config": config},
            "source_outcomes": [],
            "tenant_errors": [],
        }
        logger.info("Starting ingestion run %s for tenant %s", run_id, tenant_id)
        result = self._graph.invoke(initial, {"configurable": {"services": self.services}})

        if result.get("validation_errors"):
            raise InputValidationError(result["validation_errors"])

        outcome = RunOutcome(
            run_id=run_id,
            tenant_id=tenant_id,
            started_at=started_at,
            sources=result.get("source_outcomes", []),
            tenant_errors=result.get("tenant_errors", []),
            summary=result.get("summary", {}),
        )
        logger.info(
            "Ingestion run %s completed: %d succeeded, %d failed",
            run_id,
            len(outcome.succeeded),
            len(outcome.failed),
        )
        return outcome

    def start_ingestion_run(
        self,
        tenant_id: str,
        data_sources: list[dict[str, Any]],
        config: dict[str, Any] | None,
    ) -> str:
        """Start a run in the background and return its run id.

        An ``execution`` item tracks the run in the document store with
        status ``RUNNING``, then ``COMPLETED`` or ``FAILED``.
        """
        run_id = uuid.uuid4().hex[:12]
        store = self.services.document_store
        store.put(
            tenant_id,
            f"execution-{run_id}",
            {
                "itemType": "execution",
                "runId": run_id,
                "status": "RUNNING",
                "startedAt": datetime.now(timezone.utc).isoformat(),
            },
        )

        def run() -> RunOutcome:
            try:
                outcome = self.start(tenant_id, data_sources, config, run_id=run_id)
            except Exception as exc:
                logger.exception("Ingestion run %s failed", run_id)
                store.update(
                    tenant_id,
                    f"execution-{run_id}",
                    {"status": "FAILED", "error": str(exc), "stoppedAt": datetime.now(timezone.utc).isoformat()},
                )
                raise
            store.update(
                tenant_id,
                f"execution-{run_id}",
                {
                    "status": "COMPLETED",
                    "summary": outcome.summary,
                    "stoppedAt": outcome.completed_at.isoformat(),
                },
            )
            return outcome

        future = self._executor.submit(run)
        with self._runs_lock:
            self._runs[run_id] = future
            self._evict_finished()
        return run_id

    def get_run(self, run_id: str) -> Future[RunOutcome] | None:
        """Return the future of a run started by :meth:`start_ingestion_run`."""
        with self._runs_lock:
            return self._runs.get(run_id)

    def _evict_finished(self) -> None:
        excess = len(self._runs) - self._max_tracked_runs
        for run_id in [r for r, f in self._runs.items() if f.done()][: max(excess, 0)]:
            del self._runs[run_id]

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
