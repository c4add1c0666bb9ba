"""Chunking strategies for extracted document text."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable, Iterator

from voicerag.ingestion.models import DocumentChunk
from voicerag.pipeline_config import ChunkingStrategy

# Preferred cut points, coarsest first
_SEPARATORS = ("\n\n", "\n", ". ", " ")


def _content_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _window_end(
    text: str,
    start: int,
    chunk_size: int,
    chunk_overlap: int,
    strategy: ChunkingStrategy,
) -> int:
    """Return the exclusive end offset of the chunk starting at *start*.

    The recursive strategy cuts just after the last separator found in the
    back half of the window, falling back to a hard cut. The cut is always
    past ``start + chunk_overlap`` so the next window moves forward.
    """
    limit = min(start + chunk_size, len(text))
    if limit == len(text) or strategy is ChunkingStrategy.FIXED:
        return limit

    lowest = start + max(chunk_overlap + 1, chunk_size // 2)
    for sep in _SEPARATORS:
        pos = text.rfind(sep, lowest, limit)
        if pos != -1:
            return pos + len(sep)
    return limit


def _iter_chunks(
    text: str,
    namespace: str,
    file_name: str,
    strategy: ChunkingStrategy,
    chunk_size: int,
    chunk_overlap: int,
) -> Iterator[DocumentChunk]:
    start = 0
    prev_end = 0
    index = 0
    while start < len(text):
        end = _window_end(text, start, chunk_size, chunk_overlap, strategy)
        content = text[start:end]
        yield DocumentChunk(
            namespace=namespace,
            content=content,
            chunk_index=index,
            start_offset=start,
            end_offset=end,
            overlap=prev_end - start,
            metadata={
                "file_name": file_name,
                "strategy": strategy.value,
                "content_hash": _content_hash(content),
            },
        )
        if end >= len(text):
            return
        prev_end = end
        start = end - chunk_overlap
        index += 1


def chunk_text(
    text: str,
    namespace: str,
    *,
    file_name: str = "",
    strategy: str | ChunkingStrategy = ChunkingStrategy.RECURSIVE,
    chunk_size: int = 1000,
    chunk_overlap: int = 200,
) -> Iterator[DocumentChunk]:
    """Split *text* into overlapping chunks covering it without gaps.

    Arguments are validated eagerly; the chunks themselves are produced
    lazily and the returned iterator can only be consumed once.

    Args:
        text: Extracted document text.
        namespace: Namespace every chunk belongs to.
        file_name: Source file name, recorded in chunk metadata.
        strategy: ``"fixed"`` or ``"recursive"`` (string or enum).
        chunk_size: Maximum characters per chunk.
        chunk_overlap: Characters shared between adjacent chunks.

    Raises:
        ValueError: If the size/overlap combination cannot make progress.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if chunk_overlap < 0:
        raise ValueError(f"chunk_overlap must not be negative, got {chunk_overlap}")
    if chunk_overlap >= chunk_size:
        raise ValueError(
            f"chunk_overlap ({chunk_overlap}) must be smaller than chunk_size ({chunk_size})"
        )

    return _iter_chunks(
        text,
        namespace,
        file_name,
        ChunkingStrategy(strategy),
        chunk_size,
        chunk_overlap,
    )


def reassemble(chunks: Iterable[DocumentChunk]) -> str:
    """Rebuild the source text by dropping each chunk's leading overlap."""
    return "".join(c.content[c.overlap :] for c in chunks)
