"""Data models for the ingestion pipeline."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ProcessingState(str, Enum):
    """Per-document processing state."""

    NOT_INITIATED = "not-initiated"
    PROCESSING = "processing"
    PROCESSED = "processed"


@dataclass
class DocumentChunk:
    """A contiguous span of document text ready for embedding and storage.

    ``start_offset``/``end_offset`` index into the extracted source text and
    ``overlap`` is the number of leading characters shared with the previous
    chunk. ``id`` is freshly generated per chunk, so re-ingesting the same
    file writes new rows rather than overwriting old ones.
    """

    namespace: str
    content: str
    chunk_index: int
    start_offset: int
    end_offset: int
    overlap: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class IngestionResult:
    """Outcome of a successful ingestion."""

    namespace: str
    storage_path: str
    num_chunks: int
    state: ProcessingState = ProcessingState.PROCESSED
    states: list[ProcessingState] = field(default_factory=list)
