"""Embed-and-upsert client: chunks in, vectors written under one namespace."""

from __future__ import annotations

import logging

from supabase import Client

from voicerag.ingestion.embeddings import embed_chunks
from voicerag.ingestion.models import DocumentChunk
from voicerag.ingestion.storage import upsert_chunks

logger = logging.getLogger(__name__)


def embed_and_store_chunks(
    client: Client,
    namespace: str,
    chunks: list[DocumentChunk],
) -> int:
    """Embed *chunks* and write them into *namespace* of the vector index.

    Not atomic and not idempotent: a failure can leave a subset of chunks
    written, and calling again with the same chunks writes new rows. Use
    ``metadata["content_hash"]`` to dedupe before retrying.

    Returns:
        Number of vectors written.

    Raises:
        ValueError: If *chunks* is empty or contains another namespace.
        EmbeddingProviderError: If embedding fails (nothing is written).
        IndexWriteError: If the index write fails.
    """
    if not chunks:
        raise ValueError("embed_and_store_chunks requires at least one chunk")
    foreign = {c.namespace for c in chunks if c.namespace != namespace}
    if foreign:
        raise ValueError(f"Chunks from namespaces {sorted(foreign)} cannot be written to {namespace!r}")

    chunks_with_embeddings = embed_chunks(chunks)
    written = upsert_chunks(client, namespace, chunks_with_embeddings)
    logger.info("Stored %d vectors in namespace %s", written, namespace)
    return written
