"""Asynchronous document text detection.

Extraction of PDFs, images and office files runs as a job: the caller
starts it, then polls until the job leaves ``IN_PROGRESS``.  The
:class:`DocumentAnalyzerBase` interface mirrors that contract so a managed
OCR service can replace :class:`LocalDocumentAnalyzer`.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum

from langchain_community.document_loaders import PyPDFLoader

from tenant_rag.config import settings
from tenant_rag.errors import DocumentError, DocumentTimeoutError, UnsupportedDocumentType
from tenant_rag.retry import PollTimeout, poll_until_complete

logger = logging.getLogger(__name__)


class DocumentJobStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


@dataclass
class DocumentJob:
    """Snapshot of a text-detection job."""

    job_id: str
    status: DocumentJobStatus
    text: str = ""
    message: str = ""


class DocumentAnalyzerBase(ABC):
    """Start / poll interface for text detection."""

    @abstractmethod
    def start_text_detection(self, data: bytes, content_type: str) -> str:
        """Submit *data* and return a job id."""
        ...

    @abstractmethod
    def get_text_detection(self, job_id: str) -> DocumentJob:
        """Return the current state of *job_id*."""
        ...


class LocalDocumentAnalyzer(DocumentAnalyzerBase):
    """In-process analyzer: PDFs are read with LangChain's ``PyPDFLoader``.

    Jobs run on a small thread pool; images and office formats need an
    OCR-capable analyzer and are rejected.
    """

    def __init__(self, max_workers: int = 2) -> None:
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="doc-analyzer")
        self._jobs: dict[str, Future[str]] = {}
        self._lock = threading.Lock()

    def start_text_detection(self, data: bytes, content_type: str) -> str:
        if "pdf" not in content_type.lower():
            raise UnsupportedDocumentType(f"No local text detection for {content_type}")
        job_id = uuid.uuid4().hex
        with self._lock:
            self._jobs[job_id] = self._pool.submit(_extract_pdf_text, data)
        return job_id

    def get_text_detection(self, job_id: str) -> DocumentJob:
        with self._lock:
            future = self._jobs.get(job_id)
        if future is None:
            return DocumentJob(job_id, DocumentJobStatus.FAILED, message=f"Unknown job {job_id}")
        if not future.done():
            return DocumentJob(job_id, DocumentJobStatus.IN_PROGRESS)
        exc = future.exception()
        if exc is not None:
            return DocumentJob(job_id, DocumentJobStatus.FAILED, message=str(exc))
        return DocumentJob(job_id, DocumentJobStatus.SUCCEEDED, text=future.result())


def _extract_pdf_text(data: bytes) -> str:
    fd, path = tempfile.mkstemp(suffix=".pdf")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        pages = PyPDFLoader(path).load()
        return "\n\n".join(page.page_content for page in pages)
    finally:
        os.unlink(path)


def wait_for_completion(
    analyzer: DocumentAnalyzerBase,
    job_id: str,
    *,
    interval: float = settings.document_poll_interval,
    max_attempts: int = settings.document_poll_max_attempts,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Poll *job_id* until it finishes and return the detected text.

    Raises
    ------
    DocumentTimeoutError
        When the job is still running after *max_attempts* polls.
    DocumentError
        When the job failed.
    """
    try:
        job = poll_until_complete(
            lambda: analyzer.get_text_detection(job_id),
            lambda j: j.status == DocumentJobStatus.IN_PROGRESS,
            interval=interval,
            max_attempts=max_attempts,
            sleep=sleep,
        )
    except PollTimeout as exc:
        raise DocumentTimeoutError(
            f"Text detection job {job_id} did not finish after {exc.attempts} poll(s)",
            transient=True,
        ) from exc

    if job.status == DocumentJobStatus.FAILED:
        raise DocumentError(f"Text detection job failed: {job.message}")
    logger.debug("Text detection job %s succeeded (%d chars)", job_id, len(job.text))
    return job.text
