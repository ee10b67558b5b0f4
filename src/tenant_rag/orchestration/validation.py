"""Ingestion request validation.

Every problem in a request is collected so the caller sees the complete
list in one :class:`~tenant_rag.errors.InputValidationError`.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from tenant_rag.errors import InvalidSourceType, InputValidationError
from tenant_rag.ingestion.models import SOURCE_TYPES, IngestionConfig, parse_data_source
from tenant_rag.stores.base import DocumentStoreBase

logger = logging.getLogger(__name__)

TENANT_CONFIG_ID = "tenant-config"

# (wire key, low, high, message)
_INT_BOUNDS = [
    ("crawlDepth", 1, 3, "Invalid crawlDepth: must be a number between 1 and 3"),
    ("memoryDuration", 5, 1440, "Invalid memoryDuration: must be a number between 5 and 1440 minutes"),
    ("maxDocuments", 1, 20, "Invalid maxDocuments: must be a number between 1 and 20"),
]


@dataclass
class ValidatedRequest:
    tenant_id: str
    data_sources: list[Any]
    config: IngestionConfig


_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _parse_int(value: Any) -> int | None:
    """Read the leading integer of *value*: ``2.5`` and ``"2abc"`` both give 2."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


def collect_errors(
    tenant_id: Any,
    data_sources: Any,
    config: Any,
    document_store: DocumentStoreBase,
) -> list[str]:
    """Return every validation message for the request (empty when valid)."""
    errors: list[str] = []

    if not tenant_id:
        errors.append("Missing required parameter: tenantId")
    else:
        try:
            if document_store.get(tenant_id, TENANT_CONFIG_ID) is None:
                errors.append(f"Tenant not found: {tenant_id}")
        except Exception as exc:
            logger.exception("Error verifying tenant %s", tenant_id)
            errors.append(f"Error verifying tenant: {exc}")

    if not isinstance(data_sources, list) or not data_sources:
        errors.append("Missing or invalid dataSources: must be a non-empty array")
    else:
        for index, source in enumerate(data_sources):
            if not isinstance(source, dict):
                errors.append(f"Data source at index {index} must be an object")
                continue
            source_type = source.get("type")
            if not source_type:
                errors.append(f"Data source at index {index} is missing required parameter: type")
            elif source_type not in SOURCE_TYPES:
                errors.append(f"Data source at index {index} has invalid type: {source_type}")
            if not source.get("url"):
                errors.append(f"Data source at index {index} is missing required parameter: url")
            if not source.get("name"):
                errors.append(f"Data source at index {index} is missing required parameter: name")

    if not isinstance(config, dict):
        errors.append("Missing or invalid config: must be an object")
    else:
        for key, low, high, message in _INT_BOUNDS:
            if config.get(key) is None:
                continue
            value = _parse_int(config[key])
            if value is None or not low <= value <= high:
                errors.append(message)
        model = config.get("embeddingModel")
        if model is not None and not isinstance(model, str):
            errors.append("Invalid embeddingModel: must be a string")

    return errors


def validate_input(
    tenant_id: Any,
    data_sources: Any,
    config: Any,
    document_store: DocumentStoreBase,
) -> ValidatedRequest:
    """Validate an ingestion request and return its typed form.

    Raises
    ------
    InputValidationError
        Carrying every collected message when the request is invalid.
    """
    errors = collect_errors(tenant_id, data_sources, config, document_store)
    if errors:
        raise InputValidationError(errors)

    # A source that passed the checks above but is otherwise malformed stays
    # a wire dict; it fails on its own branch in ``determine_source_type``.
    sources: list[Any] = []
    for raw in data_sources:
        try:
            sources.append(parse_data_source(raw))
        except InvalidSourceType as exc:
            logger.warning("Data source %r kept unparsed: %s", raw.get("name"), exc.message)
            sources.append(raw)

    bounded = {key for key, _, _, _ in _INT_BOUNDS}
    cleaned = {
        key: _parse_int(value) if key in bounded else value
        for key, value in config.items()
        if value is not None
    }
    parsed_config = IngestionConfig()
    try:
        parsed_config = IngestionConfig.model_validate(cleaned)
    except PydanticValidationError as exc:
        errors.extend(f"Invalid config: {e['loc'][0]} {e['msg']}" for e in exc.errors())

    if errors:
        raise InputValidationError(errors)
    return ValidatedRequest(tenant_id=tenant_id, data_sources=sources, config=parsed_config)
