"""Embedding helpers using OpenAI text-embedding-3-small."""

from __future__ import annotations

import logging

from openai import OpenAI, OpenAIError

from voicerag.config import settings
from voicerag.errors import EmbeddingProviderError
from voicerag.ingestion.models import DocumentChunk

logger = logging.getLogger(__name__)

# Inputs per embeddings request
EMBED_BATCH_SIZE = 100


def embed_texts(texts: list[str], model: str | None = None) -> list[list[float]]:
    """Embed a list of texts using the OpenAI embeddings API.

    Args:
        texts: Strings to embed.
        model: OpenAI embedding model name (defaults to settings).

    Returns:
        A list of embedding vectors (one per input text).

    Raises:
        EmbeddingProviderError: If the API call fails or returns the wrong
            number of vectors.
    """
    model = model or settings.embedding_model

    vectors: list[list[float]] = []
    try:
        client = OpenAI(
            api_key=settings.openai_api_key or None,
            timeout=settings.request_timeout,
            max_retries=0,
        )
        for i in range(0, len(texts), EMBED_BATCH_SIZE):
            batch = texts[i : i + EMBED_BATCH_SIZE]
            response = client.embeddings.create(input=batch, model=model)
            vectors.extend(item.embedding for item in response.data)
    except OpenAIError as exc:
        raise EmbeddingProviderError(f"Embedding request failed: {exc}") from exc

    if len(vectors) != len(texts):
        msg = f"Embedding provider returned {len(vectors)} vectors for {len(texts)} inputs"
        raise EmbeddingProviderError(msg)
    return vectors


def embed_chunks(chunks: list[DocumentChunk]) -> list[tuple[DocumentChunk, list[float]]]:
    """Embed chunks and return ``(chunk, embedding)`` pairs.

    Args:
        chunks: Chunks whose ``content`` will be embedded.

    Returns:
        List of ``(DocumentChunk, embedding_vector)`` tuples.
    """
    texts = [c.content for c in chunks]
    embeddings = embed_texts(texts)
    logger.debug("Embedded %d chunks", len(chunks))
    return list(zip(chunks, embeddings, strict=True))
