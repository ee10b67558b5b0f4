"""Text normalisation — turn adapter payloads into clean plain text."""

from __future__ import annotations

import json
import logging
import re
import unicodedata
from typing import Any

from bs4 import BeautifulSoup

from tenant_rag.ingestion.models import RawContent

logger = logging.getLogger(__name__)

PAGE_SEPARATOR = "\n---\n"

_MARKUP_RE = re.compile(r"<[a-zA-Z/!][^>]*>")
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_HSPACE_RE = re.compile(r"[^\S\n]+")
_SPACE_AROUND_NL_RE = re.compile(r" *\n *")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def normalize(raw: RawContent) -> str:
    """Produce the normalised text for *raw* according to its source type.

    * **website** — pages are concatenated, each introduced by a
      ``# Page: <url>`` marker and followed by a ``---`` rule.
    * **api** — JSON payloads are flattened into ``path: value`` lines.
    * **document** — extracted text passes through unchanged.

    The result is then cleaned with :func:`clean_text`.
    """
    if raw.source_type == "website":
        parts = [
            f"# Page: {page.url}\n\n{page.content}{PAGE_SEPARATOR}"
            for page in raw.pages
            if page.content.strip()
        ]
        text = "\n".join(parts)
    elif raw.source_type == "api":
        text = _api_payload_to_text(raw.text, raw.content_type)
    else:
        text = raw.text
    return clean_text(text)


def clean_text(text: str) -> str:
    """Strip markup, normalise unicode and collapse whitespace.

    Line breaks are kept so paragraph structure survives into the chunker.
    """
    if not text:
        return ""
    if _MARKUP_RE.search(text):
        text = BeautifulSoup(text, "html.parser").get_text("\n")
    text = unicodedata.normalize("NFC", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _CONTROL_RE.sub("", text)
    text = _HSPACE_RE.sub(" ", text)
    text = _SPACE_AROUND_NL_RE.sub("\n", text)
    text = _BLANK_LINES_RE.sub("\n\n", text)
    return text.strip()


def flatten_json(value: Any, prefix: str = "") -> list[str]:
    """Flatten a decoded JSON value into ``path: value`` lines.

    Parameters
    ----------
    value:
        Decoded JSON (dict, list or scalar).
    prefix:
        Dotted path of *value* within the enclosing document.

    Returns
    -------
    list[str]
        One line per leaf.  Arrays of objects produce a ``path[i]:`` header
        followed by the object's own lines; arrays of primitives are joined
        with ``", "``.
    """
    lines: list[str] = []
    if isinstance(value, dict):
        for key, item in value.items():
            path = f"{prefix}.{key}" if prefix else str(key)
            lines.extend(_flatten_member(item, path))
    elif isinstance(value, list):
        for i, item in enumerate(value):
            path = f"{prefix}[{i}]"
            lines.extend(_flatten_member(item, path))
    else:
        lines.append(f"{prefix}: {_scalar(value)}" if prefix else _scalar(value))
    return lines


def _flatten_member(item: Any, path: str) -> list[str]:
    if isinstance(item, dict):
        return flatten_json(item, path)
    if isinstance(item, list):
        if not item:
            return [f"{path}: []"]
        if all(isinstance(x, (dict, list)) for x in item):
            lines: list[str] = []
            for i, sub in enumerate(item):
                lines.append(f"{path}[{i}]:")
                lines.extend(flatten_json(sub, f"{path}[{i}]"))
            return lines
        return [f"{path}: {', '.join(_scalar(x) for x in item)}"]
    return [f"{path}: {_scalar(item)}"]


def _scalar(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def _api_payload_to_text(body: str, content_type: str) -> str:
    looks_like_json = "json" in content_type.lower() or body.lstrip()[:1] in ("{", "[")
    if not looks_like_json:
        return body
    try:
        payload = json.loads(body)
    except ValueError:
        logger.warning("API payload declared as JSON could not be parsed; using raw text")
        return body
    return "\n".join(flatten_json(payload))
