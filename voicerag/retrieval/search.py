"""Namespace-scoped semantic search over the vector index."""

from __future__ import annotations

import logging
from typing import Any, cast

from openai import OpenAI, OpenAIError

from voicerag.config import settings
from voicerag.errors import CompletionRequestError
from voicerag.ingestion.storage import get_supabase_client

logger = logging.getLogger(__name__)


def get_query_embedding(query: str, model: str | None = None) -> list[float]:
    """Generate an embedding vector for the given query string."""
    try:
        client = OpenAI(
            api_key=settings.openai_api_key or None,
            timeout=settings.request_timeout,
            max_retries=0,
        )
        response = client.embeddings.create(input=[query], model=model or settings.embedding_model)
    except OpenAIError as exc:
        raise CompletionRequestError(f"Query embedding failed: {exc}") from exc
    return response.data[0].embedding


def search_namespace(
    query: str,
    namespace: str,
    match_count: int | None = None,
) -> list[dict[str, Any]]:
    """Vector similarity search restricted to one namespace.

    Args:
        query: The user's utterance.
        namespace: Namespace of the document being discussed.
        match_count: Maximum number of chunks to return (defaults to settings).

    Returns:
        Matching chunk rows (``content``, ``metadata``, ``similarity``...).
        Rows from any other namespace are discarded.

    Raises:
        CompletionRequestError: If embedding or the index query fails.
    """
    embedding = get_query_embedding(query)
    try:
        client = get_supabase_client()
        result = client.rpc(
            settings.match_function,
            {
                "query_embedding": embedding,
                "match_count": match_count or settings.match_count,
                "filter_namespace": namespace,
            },
        ).execute()
    except Exception as exc:
        raise CompletionRequestError(f"Index query failed for {namespace!r}: {exc}") from exc

    # Supabase .data is typed as JSON (broad union); cast to concrete type.
    rows = cast(list[dict[str, Any]], result.data or [])
    scoped = [r for r in rows if r.get("namespace", namespace) == namespace]
    if len(scoped) != len(rows):
        logger.warning("Dropped %d rows outside namespace %s", len(rows) - len(scoped), namespace)
    return scoped
