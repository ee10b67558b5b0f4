"""Central error recording for pipeline failures.

Every failure becomes one :class:`ErrorRecord` written to the document
store.  Failures that cannot recover by themselves (and every critical
kind) are also pushed to the dead-letter queue.  Recording never raises:
a broken store must not mask the original failure.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from tenant_rag.errors import PipelineError, is_transient
from tenant_rag.orchestration.models import ErrorRecord
from tenant_rag.stores.base import DocumentStoreBase, NotifierBase

logger = logging.getLogger(__name__)

CRITICAL_KINDS = frozenset({
    "ValidationError",
    "AuthenticationError",
    "AuthorizationError",
    "ConfigurationError",
    "AccessDenied",
})


def build_error_record(
    exc: BaseException,
    *,
    tenant_id: str,
    stage: str | None = None,
    source_context: dict[str, Any] | None = None,
) -> ErrorRecord:
    kind = exc.kind if isinstance(exc, PipelineError) else type(exc).__name__
    stage = stage or (exc.stage if isinstance(exc, PipelineError) else "unknown")
    details = dict(exc.details) if isinstance(exc, PipelineError) else {}
    return ErrorRecord(
        id=f"{kind}-{uuid.uuid4().hex}",
        tenant_id=tenant_id or "unknown",
        stage=stage,
        kind=kind,
        message=str(exc),
        recoverable=is_transient(exc),
        source_context=source_context or {},
        details=details,
    )


def record_stage_error(
    exc: BaseException,
    *,
    tenant_id: str,
    document_store: DocumentStoreBase,
    notifier: NotifierBase,
    stage: str | None = None,
    source_context: dict[str, Any] | None = None,
) -> ErrorRecord:
    """Persist *exc* as an :class:`ErrorRecord` and dead-letter it when needed.

    Returns
    -------
    ErrorRecord
        The record, whether or not persisting it succeeded.
    """
    record = build_error_record(exc, tenant_id=tenant_id, stage=stage, source_context=source_context)
    logger.error(
        "Pipeline error [%s] at %s for tenant %s: %s",
        record.kind,
        record.stage,
        record.tenant_id,
        record.message,
    )

    item = {"itemType": "error", **record.model_dump(mode="json", exclude={"id", "tenant_id"})}
    try:
        document_store.put(record.tenant_id, record.id, item)
    except Exception:
        logger.exception("Could not store error record %s", record.id)

    if record.kind in CRITICAL_KINDS or not record.recoverable:
        try:
            notifier.dead_letter({"service": "ingestion-pipeline", **record.model_dump(mode="json")})
        except Exception:
            logger.exception("Could not dead-letter error record %s", record.id)

    return record
