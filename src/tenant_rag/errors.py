"""Error taxonomy shared by the ingestion pipeline and the retrieval path.

Every stage of the pipeline raises a subclass of :class:`PipelineError`.
The ``kind`` is the stable name written into error records, ``stage`` is
the pipeline step that failed, and ``transient`` tells the retry policy
whether another attempt may succeed.
"""

from __future__ import annotations

from typing import Any

import requests
import redis

# HTTP statuses treated as throttling / service unavailable.
TRANSIENT_HTTP_STATUSES = frozenset({429, 500, 502, 503, 504})


class PipelineError(Exception):
    """Base class for all pipeline failures.

    Parameters
    ----------
    message:
        Human-readable description.
    stage:
        Pipeline step that raised; defaults to the class-level ``stage``.
    transient:
        ``True`` when retrying the same call may succeed.
    details:
        Extra structured context stored alongside the error record.
    """

    kind: str = "PipelineError"
    stage: str = "unknown"

    def __init__(
        self,
        message: str,
        *,
        stage: str | None = None,
        transient: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if stage is not None:
            self.stage = stage
        self.transient = transient
        self.details = details or {}


class InputValidationError(PipelineError):
    """The ingestion request was rejected; carries every validation message."""

    kind = "ValidationError"
    stage = "validate_input"

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors), details={"errors": list(errors)})
        self.errors = list(errors)


class InvalidSourceType(PipelineError):
    kind = "InvalidSourceType"
    stage = "determine_source_type"


class CrawlError(PipelineError):
    kind = "CrawlError"
    stage = "crawl_website"


class ApiError(PipelineError):
    kind = "ApiError"
    stage = "fetch_from_api"


class DocumentError(PipelineError):
    kind = "DocumentError"
    stage = "process_document"


class DocumentNotFoundError(DocumentError):
    kind = "DocumentNotFound"


class DocumentAccessDenied(DocumentError):
    kind = "AccessDenied"


class UnsupportedDocumentType(DocumentError):
    kind = "UnsupportedDocumentType"


class DocumentTimeoutError(DocumentError):
    kind = "DocumentTimeout"


class ExtractError(PipelineError):
    kind = "ExtractError"
    stage = "extract_text"


class EmbeddingError(PipelineError):
    kind = "EmbeddingError"
    stage = "generate_embeddings"


class StorageError(PipelineError):
    kind = "StorageError"
    stage = "store_embeddings"


class MemoryConfigError(PipelineError):
    kind = "MemoryConfigError"
    stage = "configure_memory_duration"


class MetadataError(PipelineError):
    kind = "MetadataError"
    stage = "update_metadata"


class ScheduleError(PipelineError):
    kind = "ScheduleError"
    stage = "schedule_next_crawl"


class AnalysisError(PipelineError):
    kind = "AnalysisError"
    stage = "analyze_results"


class NotificationError(PipelineError):
    kind = "NotificationError"
    stage = "notify_completion"


def is_transient(exc: BaseException) -> bool:
    """Return ``True`` for throttling, unavailability, connection and timeout failures."""
    if isinstance(exc, PipelineError):
        return exc.transient
    if isinstance(exc, requests.HTTPError):
        response = exc.response
        return response is not None and response.status_code in TRANSIENT_HTTP_STATUSES
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(exc, (redis.ConnectionError, redis.TimeoutError)):
        return True
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return True
    status = getattr(exc, "status_code", None)
    return status in (429, 503)
