"""Graph nodes — each function is one step of the ingestion pipeline.

Node contract
-------------
* Accepts the graph state dict and the runnable ``config``; backends come
  from ``config["configurable"]["services"]`` (:class:`PipelineServices`).
* Returns a *partial* dict with **only the keys that changed**.
* Source-graph stages never raise: a failure is returned as ``error`` /
  ``failed_stage`` and the router sends the source to the stage's error
  handler.  Only ``analyze_results`` and ``notify_completion`` raise.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar

from langchain_core.runnables import RunnableConfig

from tenant_rag.errors import (
    AnalysisError,
    ApiError,
    CrawlError,
    DocumentError,
    EmbeddingError,
    ExtractError,
    InputValidationError,
    InvalidSourceType,
    MemoryConfigError,
    MetadataError,
    NotificationError,
    PipelineError,
    ScheduleError,
    StorageError,
    is_transient,
)
from tenant_rag.ingestion.adapters import get_adapter
from tenant_rag.ingestion.chunker import split_into_chunks
from tenant_rag.ingestion.models import IngestionConfig, WebsiteSource, parse_data_source
from tenant_rag.ingestion.normalizer import normalize
from tenant_rag.orchestration.error_handler import record_stage_error
from tenant_rag.orchestration.models import SourceOutcome
from tenant_rag.orchestration.services import PipelineServices, get_services
from tenant_rag.orchestration.state import RunState, SourceState
from tenant_rag.orchestration.validation import TENANT_CONFIG_ID, validate_input as _validate

logger = logging.getLogger(__name__)

T = TypeVar("T")

# stage name → (error class, error handler node)
STAGE_ERRORS: dict[str, tuple[type[PipelineError], str]] = {
    "crawl_website": (CrawlError, "handle_crawl_error"),
    "fetch_from_api": (ApiError, "handle_api_error"),
    "process_document": (DocumentError, "handle_document_error"),
    "extract_text": (ExtractError, "handle_extract_error"),
    "generate_embeddings": (EmbeddingError, "handle_embedding_error"),
    "store_embeddings": (StorageError, "handle_storage_error"),
}

FETCH_NODES = {
    "website": "crawl_website",
    "api": "fetch_from_api",
    "document": "process_document",
}


# ── Helpers ───────────────────────────────────────────────────────────


def _slug(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]+", "-", name).strip("-") or "source"


def _source_slug(name: str, state: SourceState) -> str:
    # position in the request keeps same-named sources apart
    return f"{_slug(name)}-{state.get('source_index', 0)}"


def _artifact_key(state: SourceState, folder: str, ext: str) -> str:
    slug = _source_slug(state["source_name"], state)
    return f"{state['tenant_id']}/{folder}/{slug}-{state['run_id']}.{ext}"


def _run_stage(services: PipelineServices, stage: str, fn: Callable[[], T]) -> T:
    """Run *fn* under the retry policy, converting failures to the stage's error type."""
    error_cls = STAGE_ERRORS[stage][0]
    try:
        return services.retry_policy.call(fn)
    except PipelineError:
        raise
    except Exception as exc:
        raise error_cls(str(exc) or type(exc).__name__, stage=stage, transient=is_transient(exc)) from exc


def _failure(stage: str, exc: Exception) -> dict[str, Any]:
    logger.warning("Stage %s failed: %s", stage, exc)
    return {"error": exc, "failed_stage": stage}


def _source_context(state: SourceState) -> dict[str, Any]:
    source = state.get("source")
    if isinstance(source, dict):
        return {"name": source.get("name"), "type": source.get("type"), "url": source.get("url")}
    return {"name": source.name, "type": source.type, "url": source.url}


def _update_source_metadata(services: PipelineServices, state: SourceState, changes: dict[str, Any]) -> None:
    services.document_store.update(
        state["tenant_id"],
        state["source_id"],
        {**changes, "updatedAt": datetime.now(timezone.utc).isoformat()},
    )


# ── Source graph: type dispatch ───────────────────────────────────────


def determine_source_type(state: SourceState, config: RunnableConfig) -> dict[str, Any]:
    """Parse the data source and pick the fetch stage for its type."""
    raw = state["source"]
    name = raw.get("name") if isinstance(raw, dict) else raw.name
    update: dict[str, Any] = {
        "source_name": name or "<unnamed>",
        "source_id": f"source-{_source_slug(name or 'unnamed', state)}-{state['run_id']}",
    }
    try:
        source = parse_data_source(raw) if isinstance(raw, dict) else raw
    except InvalidSourceType as exc:
        return {**update, "source_type": "invalid", "error": exc, "failed_stage": "determine_source_type"}
    return {**update, "source": source, "source_type": source.type}


def route_source_type(state: SourceState) -> str:
    return FETCH_NODES.get(state.get("source_type", ""), "invalid_source_type")


def route_after(next_node: str) -> Callable[[SourceState], str]:
    """Conditional edge: continue to *next_node* or to the failed stage's handler."""

    def _route(state: SourceState) -> str:
        if state.get("error") is not None:
            return STAGE_ERRORS[state["failed_stage"]][1]
        return next_node

    _route.__name__ = f"route_to_{next_node}"
    return _route


# ── Source graph: fetch stages ────────────────────────────────────────


def _fetch(state: SourceState, config: RunnableConfig, stage: str) -> dict[str, Any]:
    services = get_services(config)
    source = state["source"]
    ingestion_config: IngestionConfig = state["ingestion_config"]

    def fetch_and_persist() -> Any:
        adapter = get_adapter(services.adapters, source.type)
        raw = adapter.fetch(source, state["tenant_id"], ingestion_config)
        key = _artifact_key(state, "raw-content", "json")
        services.object_store.put(
            key,
            raw.model_dump_json(),
            content_type="application/json",
            metadata={
                "tenant-id": state["tenant_id"],
                "source-name": source.name,
                "source-type": source.type,
                "source-url": source.url,
            },
        )
        _update_source_metadata(
            services,
            state,
            {
                "itemType": "source",
                "runId": state["run_id"],
                "sourceType": source.type,
                "sourceName": source.name,
                "sourceUrl": source.url,
                "rawContentKey": key,
                "status": "fetched",
                **raw.metadata,
            },
        )
        return raw

    try:
        raw = _run_stage(services, stage, fetch_and_persist)
    except Exception as exc:
        return _failure(stage, exc)
    return {"raw": raw}


def crawl_website(state: SourceState, config: RunnableConfig) -> dict[str, Any]:
    return _fetch(state, config, "crawl_website")


def fetch_from_api(state: SourceState, config: RunnableConfig) -> dict[str, Any]:
    return _fetch(state, config, "fetch_from_api")


def process_document(state: SourceState, config: RunnableConfig) -> dict[str, Any]:
    return _fetch(state, config, "process_document")


# ── Source graph: transform & index stages ────────────────────────────


def extract_text(state: SourceState, config: RunnableConfig) -> dict[str, Any]:
    """Normalise the raw content into plain text and persist it."""
    services = get_services(config)

    def extract() -> str:
        text = normalize(state["raw"])
        if not text:
            raise ExtractError(f"No text content extracted from {state['source_name']}")
        key = _artifact_key(state, "extracted-text", "txt")
        services.object_store.put(key, text, content_type="text/plain")
        _update_source_metadata(
            services, state, {"status": "extracted", "textLength": len(text), "extractedTextKey": key}
        )
        return text

    try:
        text = _run_stage(services, "extract_text", extract)
    except Exception as exc:
        return _failure("extract_text", exc)
    return {"text": text}


def generate_embeddings(state: SourceState, config: RunnableConfig) -> dict[str, Any]:
    """Chunk the text and embed every chunk."""
    services = get_services(config)
    ingestion_config: IngestionConfig = state["ingestion_config"]
    source = state["source"]
    chunks = split_into_chunks(
        state["text"],
        source_name=source.name,
        source_locator=state["raw"].locator,
        max_chunk_size=ingestion_config.max_chunk_size,
    )

    def embed() -> list[Any]:
        records = services.writer.embed(
            chunks,
            model=ingestion_config.embedding_model,
            tenant_id=state["tenant_id"],
            run_id=state["run_id"],
        )
        key = _artifact_key(state, "embeddings", "json")
        services.object_store.put(
            key,
            "[" + ",".join(r.model_dump_json() for r in records) + "]",
            content_type="application/json",
        )
        _update_source_metadata(
            services,
            state,
            {
                "status": "embedded",
                "chunkCount": len(chunks),
                "syntheticCount": sum(1 for r in records if r.synthetic),
                "embeddingsKey": key,
            },
        )
        return records

    try:
        records = _run_stage(services, "generate_embeddings", embed)
    except Exception as exc:
        return _failure("generate_embeddings", exc)
    return {"chunks": chunks, "records": records}


def store_embeddings(state: SourceState, config: RunnableConfig) -> dict[str, Any]:
    """Write the source's vector records to the tenant index."""
    services = get_services(config)
    try:
        count = _run_stage(
            services,
            "store_embeddings",
            lambda: services.writer.store(state["records"], state["tenant_id"]),
        )
    except Exception as exc:
        return _failure("store_embeddings", exc)
    return {"vector_count": count}


# ── Source graph: terminal & error nodes ──────────────────────────────


def source_succeeded(state: SourceState, config: RunnableConfig) -> dict[str, Any]:
    services = get_services(config)
    vector_count = state.get("vector_count", 0)
    try:
        _update_source_metadata(services, state, {"status": "indexed", "vectorCount": vector_count})
    except Exception:
        logger.exception("Could not mark source %s as indexed", state["source_name"])
    return {
        "outcome": SourceOutcome(
            source_name=state["source_name"],
            source_type=state["source_type"],
            status="succeeded",
            vector_count=vector_count,
        )
    }


def source_failed(state: SourceState, config: RunnableConfig) -> dict[str, Any]:
    services = get_services(config)
    record = state.get("error_record")
    if state.get("source_type") != "invalid":
        try:
            _update_source_metadata(
                services,
                state,
                {"status": "failed", "errorId": record.id if record else None},
            )
        except Exception:
            logger.exception("Could not mark source %s as failed", state["source_name"])
    return {
        "outcome": SourceOutcome(
            source_name=state["source_name"],
            source_type=state.get("source_type", "invalid"),
            status="failed",
            error=record,
        )
    }


def make_error_handler(stage: str) -> Callable[[SourceState, RunnableConfig], dict[str, Any]]:
    """Build the error-handler node for *stage*: record the failure, then fail the source."""

    def handler(state: SourceState, config: RunnableConfig) -> dict[str, Any]:
        services = get_services(config)
        record = record_stage_error(
            state["error"],
            tenant_id=state["tenant_id"],
            document_store=services.document_store,
            notifier=services.notifier,
            stage=state.get("failed_stage", stage),
            source_context={**_source_context(state), "runId": state["run_id"]},
        )
        return {"error_record": record}

    handler.__name__ = f"handle_{stage}_error"
    return handler


invalid_source_type = make_error_handler("determine_source_type")


# ── Run graph ─────────────────────────────────────────────────────────


def validate_input(state: RunState, config: RunnableConfig) -> dict[str, Any]:
    """Check the request; collected messages route the run to ``validation_error``."""
    services = get_services(config)
    request = state["request"]
    try:
        validated = _validate(
            request.get("tenantId"),
            request.get("dataSources"),
            request.get("config"),
            services.document_store,
        )
    except InputValidationError as exc:
        return {"tenant_id": request.get("tenantId") or "unknown", "validation_errors": exc.errors}
    return {
        "tenant_id": validated.tenant_id,
        "data_sources": validated.data_sources,
        "ingestion_config": validated.config,
        "validation_errors": [],
    }


def route_validation(state: RunState) -> str:
    return "validation_error" if state.get("validation_errors") else "process_data_sources"


def validation_error(state: RunState, config: RunnableConfig) -> dict[str, Any]:
    services = get_services(config)
    record = record_stage_error(
        InputValidationError(state["validation_errors"]),
        tenant_id=state["tenant_id"],
        document_store=services.document_store,
        notifier=services.notifier,
        source_context={"runId": state["run_id"]},
    )
    return {"validation_record": record}


def process_data_sources(state: RunState, config: RunnableConfig) -> dict[str, Any]:
    """Run the source graph for every data source in parallel and join the outcomes."""
    from tenant_rag.orchestration.graph import build_source_graph

    services = get_services(config)
    sources = state["data_sources"]
    graph = build_source_graph()
    child_config: RunnableConfig = {"configurable": {"services": services}}

    def run_one(index: int, source: Any) -> SourceOutcome:
        initial: SourceState = {
            "run_id": state["run_id"],
            "source_index": index,
            "tenant_id": state["tenant_id"],
            "ingestion_config": state["ingestion_config"],
            "source": source,
        }
        try:
            result = graph.invoke(initial, child_config)
            return result["outcome"]
        except Exception as exc:
            logger.exception("Source branch crashed for tenant %s", state["tenant_id"])
            name = source.get("name") if isinstance(source, dict) else source.name
            kind = source.get("type") if isinstance(source, dict) else source.type
            record = record_stage_error(
                exc,
                tenant_id=state["tenant_id"],
                document_store=services.document_store,
                notifier=services.notifier,
                stage="process_data_sources",
                source_context={"name": name, "type": kind, "runId": state["run_id"]},
            )
            return SourceOutcome(
                source_name=name or "<unnamed>",
                source_type=kind or "invalid",
                status="failed",
                error=record,
            )

    workers = max(1, min(services.max_parallel_sources, len(sources)))
    logger.info("Processing %d data source(s) with %d worker(s)", len(sources), workers)
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="source") as pool:
        outcomes = list(pool.map(run_one, range(len(sources)), sources))
    return {"source_outcomes": outcomes}


def _housekeeping(
    state: RunState,
    services: PipelineServices,
    error_cls: type[PipelineError],
    fn: Callable[[], Any],
) -> dict[str, Any]:
    """Run a non-blocking tenant step; a failure is recorded and the run moves on."""
    try:
        services.retry_policy.call(fn)
    except Exception as exc:
        error = exc if isinstance(exc, error_cls) else error_cls(str(exc), transient=is_transient(exc))
        record = record_stage_error(
            error,
            tenant_id=state["tenant_id"],
            document_store=services.document_store,
            notifier=services.notifier,
            source_context={"runId": state["run_id"]},
        )
        return {"tenant_errors": [*state.get("tenant_errors", []), record]}
    return {}


def configure_memory_duration(state: RunState, config: RunnableConfig) -> dict[str, Any]:
    """Store the run's memory duration as the tenant's default session TTL."""
    services = get_services(config)
    minutes = state["ingestion_config"].memory_duration
    return _housekeeping(
        state,
        services,
        MemoryConfigError,
        lambda: services.document_store.update(
            state["tenant_id"], TENANT_CONFIG_ID, {"memoryDuration": minutes}
        ),
    )


def update_metadata(state: RunState, config: RunnableConfig) -> dict[str, Any]:
    """Write the run item and stamp the tenant's last ingestion time."""
    services = get_services(config)
    outcomes: list[SourceOutcome] = state.get("source_outcomes", [])
    now = datetime.now(timezone.utc).isoformat()

    def write() -> None:
        services.document_store.put(
            state["tenant_id"],
            f"run-{state['run_id']}",
            {
                "itemType": "ingestion-run",
                "runId": state["run_id"],
                "startedAt": state["started_at"],
                "completedAt": now,
                "sources": [o.model_dump(mode="json", exclude={"error"}) for o in outcomes],
            },
        )
        services.document_store.update(
            state["tenant_id"], TENANT_CONFIG_ID, {"lastIngestionAt": now, "lastRunId": state["run_id"]}
        )

    return _housekeeping(state, services, MetadataError, write)


def schedule_next_crawl(state: RunState, config: RunnableConfig) -> dict[str, Any]:
    """Record when the tenant's website sources should be crawled again."""
    services = get_services(config)
    interval = state["ingestion_config"].recrawl_interval_hours
    next_at = datetime.now(timezone.utc) + timedelta(hours=interval)
    websites = [s.url for s in state["data_sources"] if isinstance(s, WebsiteSource)]

    def write() -> None:
        services.document_store.put(
            state["tenant_id"],
            "schedule-next-crawl",
            {
                "itemType": "schedule",
                "nextCrawlAt": next_at.isoformat(),
                "intervalHours": interval,
                "websites": websites,
                "runId": state["run_id"],
            },
        )

    return _housekeeping(state, services, ScheduleError, write)


def analyze_results(state: RunState, config: RunnableConfig) -> dict[str, Any]:
    """Summarise per-source outcomes; raises :class:`AnalysisError` on failure."""
    services = get_services(config)
    try:
        outcomes: list[SourceOutcome] = state["source_outcomes"]
        errors_by_kind: dict[str, int] = {}
        for outcome in outcomes:
            if outcome.error is not None:
                errors_by_kind[outcome.error.kind] = errors_by_kind.get(outcome.error.kind, 0) + 1
        summary = {
            "totalSources": len(outcomes),
            "succeeded": sum(1 for o in outcomes if o.status == "succeeded"),
            "failed": sum(1 for o in outcomes if o.status == "failed"),
            "vectorCount": sum(o.vector_count for o in outcomes),
            "errorsByKind": errors_by_kind,
            "tenantStepErrors": [e.kind for e in state.get("tenant_errors", [])],
        }
        services.document_store.update(state["tenant_id"], f"run-{state['run_id']}", {"summary": summary})
    except Exception as exc:
        raise AnalysisError(f"Failed to analyze results of run {state['run_id']}: {exc}") from exc
    logger.info("Run %s summary: %s", state["run_id"], summary)
    return {"summary": summary}


def notify_completion(state: RunState, config: RunnableConfig) -> dict[str, Any]:
    """Send the completion notice; raises :class:`NotificationError` on failure."""
    services = get_services(config)
    try:
        services.notifier.notify_completion(
            {
                "runId": state["run_id"],
                "tenantId": state["tenant_id"],
                "status": "completed",
                "summary": state.get("summary", {}),
                "completedAt": datetime.now(timezone.utc).isoformat(),
            }
        )
    except Exception as exc:
        raise NotificationError(f"Failed to send completion notice for run {state['run_id']}: {exc}") from exc
    return {"notified": True}
