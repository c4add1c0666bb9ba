"""Supabase helpers: raw file storage and the vector index table."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from supabase import Client, ClientOptions, create_client

from voicerag.config import settings
from voicerag.errors import IndexWriteError, StorageWriteError

if TYPE_CHECKING:
    from voicerag.ingestion.models import DocumentChunk

logger = logging.getLogger(__name__)


def get_supabase_client() -> Client:
    """Create and return a Supabase client from settings."""
    timeout = int(settings.request_timeout)
    return create_client(
        settings.supabase_url,
        settings.supabase_key,
        options=ClientOptions(
            postgrest_client_timeout=timeout,
            storage_client_timeout=timeout,
        ),
    )


def storage_path(namespace: str, filename: str) -> str:
    """Object path for an uploaded file: ``{namespace}/{filename}``."""
    return f"{namespace}/{filename}"


def store_raw_file(
    client: Client,
    namespace: str,
    filename: str,
    data: bytes,
    content_type: str | None = None,
) -> str:
    """Upload the raw file to the storage bucket, replacing any earlier copy.

    Returns:
        The stored object path.

    Raises:
        StorageWriteError: If the upload fails.
    """
    path = storage_path(namespace, filename)
    file_options = {"upsert": "true"}
    if content_type:
        file_options["content-type"] = content_type

    try:
        response = client.storage.from_(settings.storage_bucket).upload(
            path=path,
            file=data,
            file_options=file_options,  # type: ignore[arg-type]
        )
    except Exception as exc:
        raise StorageWriteError(f"Failed to store {path!r}: {exc}") from exc

    stored = getattr(response, "path", None) or path
    logger.info("File uploaded to storage: %s", stored)
    return str(stored)


def upsert_chunks(
    client: Client,
    namespace: str,
    chunks_with_embeddings: list[tuple[DocumentChunk, list[float]]],
    batch_size: int = 50,
) -> int:
    """Write chunks with embeddings into the index table (batched by 50).

    Batches are written in order and independently; a failure part-way
    leaves the earlier batches in place.

    Returns:
        Number of rows written.

    Raises:
        IndexWriteError: If any batch fails; ``written`` counts the rows
            already stored.
    """
    rows: list[dict[str, object]] = []
    for chunk, embedding in chunks_with_embeddings:
        rows.append(
            {
                "id": chunk.id,
                "namespace": namespace,
                "content": chunk.content,
                "chunk_index": chunk.chunk_index,
                "metadata": chunk.metadata,
                "embedding": embedding,
            }
        )

    written = 0
    for i in range(0, len(rows), batch_size):
        batch = rows[i : i + batch_size]
        try:
            client.table(settings.chunks_table).insert(batch).execute()
        except Exception as exc:
            msg = f"Index write failed after {written} of {len(rows)} rows: {exc}"
            raise IndexWriteError(msg, written=written) from exc
        written += len(batch)

    return written
