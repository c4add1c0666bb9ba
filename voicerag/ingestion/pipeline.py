"""End-to-end ingestion pipeline: store -> extract -> chunk -> embed -> upsert."""

from __future__ import annotations

import logging
import os

from supabase import Client

from voicerag.errors import UnsupportedFormat
from voicerag.ingestion.chunking import chunk_text
from voicerag.ingestion.models import IngestionResult, ProcessingState
from voicerag.ingestion.parsers import extract_text
from voicerag.ingestion.storage import get_supabase_client, store_raw_file
from voicerag.ingestion.vector_store import embed_and_store_chunks
from voicerag.pipeline_config import PipelineConfig

logger = logging.getLogger(__name__)


class ProcessingTracker:
    """Tracks one document's processing state.

    Transitions run strictly forward (``not-initiated -> processing ->
    processed``) except ``processing -> not-initiated`` on failure. A
    processed document can be submitted again, which starts over.
    """

    _ALLOWED: dict[ProcessingState, set[ProcessingState]] = {
        ProcessingState.NOT_INITIATED: {ProcessingState.PROCESSING},
        ProcessingState.PROCESSING: {ProcessingState.PROCESSED, ProcessingState.NOT_INITIATED},
        ProcessingState.PROCESSED: {ProcessingState.PROCESSING},
    }

    def __init__(self) -> None:
        self.state = ProcessingState.NOT_INITIATED
        self.history: list[ProcessingState] = [self.state]

    def _move(self, target: ProcessingState) -> None:
        if target not in self._ALLOWED[self.state]:
            raise ValueError(f"Invalid processing transition {self.state.value} -> {target.value}")
        self.state = target
        self.history.append(target)

    def start(self) -> None:
        self._move(ProcessingState.PROCESSING)

    def complete(self) -> None:
        self._move(ProcessingState.PROCESSED)

    def fail(self) -> None:
        self._move(ProcessingState.NOT_INITIATED)


def namespace_for(filename: str) -> str:
    """Derive the index namespace from an uploaded file name.

    The base name is used unchanged (``"manual.pdf"`` -> ``"manual.pdf"``).
    """
    name = os.path.basename(filename.replace("\\", "/")).strip()
    if not name:
        raise ValueError("Cannot derive a namespace from an empty file name")
    return name


def ingest_document(
    data: bytes,
    filename: str,
    namespace: str | None = None,
    *,
    content_type: str | None = None,
    client: Client | None = None,
    config: PipelineConfig | None = None,
    tracker: ProcessingTracker | None = None,
) -> IngestionResult:
    """Full ingestion pipeline for one uploaded file.

    The raw file is stored first; a storage failure aborts before any
    chunking. Every chunk's metadata is stamped with the stored path as
    ``source`` before the chunks are embedded and written.

    Args:
        data: Raw file bytes.
        filename: Original file name.
        namespace: Target namespace (defaults to the file name).
        content_type: Optional MIME type of the upload.
        client: Supabase client (created from settings if omitted).
        config: Chunking configuration (defaults from settings).
        tracker: Processing state tracker, updated in place.

    Returns:
        An :class:`IngestionResult` describing the written document.

    Raises:
        VoiceRagError: Any ingestion failure; the tracker is back at
            ``not-initiated`` when this propagates.
    """
    namespace = namespace or namespace_for(filename)
    config = config or PipelineConfig.from_settings()
    tracker = tracker or ProcessingTracker()

    tracker.start()
    try:
        logger.info("Processing document %s into namespace %s", filename, namespace)
        client = client or get_supabase_client()

        # 1. Store the raw file
        path = store_raw_file(client, namespace, filename, data, content_type)

        # 2. Extract and chunk
        text = extract_text(data, filename, content_type)
        chunks = list(
            chunk_text(
                text,
                namespace,
                file_name=filename,
                strategy=config.chunking_strategy,
                chunk_size=config.chunk_size,
                chunk_overlap=config.chunk_overlap,
            )
        )
        if not chunks:
            raise UnsupportedFormat(f"No chunks produced for {filename!r}")

        # 3. Attach provenance
        for chunk in chunks:
            chunk.metadata["source"] = path

        # 4. Embed and store
        logger.info("Loading %d chunks into namespace %s", len(chunks), namespace)
        embed_and_store_chunks(client, namespace, chunks)
    except Exception:
        tracker.fail()
        logger.exception("Ingestion failed for %s", filename)
        raise

    tracker.complete()
    logger.info("Document %s embedded and stored", filename)
    return IngestionResult(
        namespace=namespace,
        storage_path=path,
        num_chunks=len(chunks),
        state=tracker.state,
        states=list(tracker.history),
    )
