"""Text chunking — paragraph-first splitting under a hard size limit."""

from __future__ import annotations

import re
from typing import Any

from langchain_text_splitters import TextSplitter

from tenant_rag.config import settings
from tenant_rag.ingestion.models import Chunk

_PARAGRAPH_RE = re.compile(r"\n+")
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")


class ParagraphSentenceSplitter(TextSplitter):
    """Greedy splitter that prefers paragraph, then sentence boundaries.

    1. Split on line breaks into paragraphs.
    2. A paragraph longer than ``chunk_size`` is split into sentences
       (after ``.``, ``!`` or ``?``, punctuation kept).
    3. A sentence still longer than ``chunk_size`` is cut at the limit.

    Pieces are packed greedily while the running length stays within
    ``chunk_size``; paragraphs are joined with ``"\\n"`` and sentences
    with a single space.  No overlap is produced.
    """

    def __init__(self, chunk_size: int = settings.max_chunk_size, **kwargs: Any) -> None:
        kwargs.setdefault("chunk_overlap", 0)
        super().__init__(chunk_size=chunk_size, **kwargs)

    def split_text(self, text: str) -> list[str]:
        limit = self._chunk_size
        chunks: list[str] = []
        current = ""

        def flush() -> None:
            nonlocal current
            if current.strip():
                chunks.append(current.strip())
            current = ""

        for paragraph in _PARAGRAPH_RE.split(text):
            paragraph = paragraph.strip()
            if not paragraph:
                continue
            if len(paragraph) <= limit:
                if current and len(current) + 1 + len(paragraph) <= limit:
                    current = f"{current}\n{paragraph}"
                else:
                    flush()
                    current = paragraph
                continue

            # Oversized paragraph: pack its sentences in a fresh chunk.
            flush()
            for sentence in _SENTENCE_RE.split(paragraph):
                sentence = sentence.strip()
                if not sentence:
                    continue
                for piece in _hard_split(sentence, limit):
                    if current and len(current) + 1 + len(piece) <= limit:
                        current = f"{current} {piece}"
                    else:
                        flush()
                        current = piece
            flush()

        flush()
        return chunks


def _hard_split(sentence: str, limit: int) -> list[str]:
    if len(sentence) <= limit:
        return [sentence]
    pieces = (sentence[i : i + limit].strip() for i in range(0, len(sentence), limit))
    return [p for p in pieces if p]


def split_into_chunks(
    text: str,
    source_name: str,
    source_locator: str,
    max_chunk_size: int = settings.max_chunk_size,
) -> list[Chunk]:
    """Split *text* into ordered :class:`Chunk` objects.

    Parameters
    ----------
    text:
        Normalised text of one source.
    source_name:
        Name of the data source the text came from.
    source_locator:
        URL / object key of the source.
    max_chunk_size:
        Maximum number of characters per chunk.

    Returns
    -------
    list[Chunk]
        Non-empty chunks in source order; empty input yields an empty list.
    """
    if max_chunk_size < 1:
        raise ValueError(f"max_chunk_size must be positive, got {max_chunk_size}")
    splitter = ParagraphSentenceSplitter(chunk_size=max_chunk_size)
    return [
        Chunk(text=piece, index=i, source_name=source_name, source_locator=source_locator)
        for i, piece in enumerate(splitter.split_text(text))
    ]
