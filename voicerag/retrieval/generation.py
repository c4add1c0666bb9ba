"""Claude-powered reply generation grounded in retrieved document chunks."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from anthropic import Anthropic
from anthropic.types import TextBlock

from voicerag.config import settings
from voicerag.conversation.models import Role, Turn
from voicerag.errors import CompletionRequestError
from voicerag.retrieval.search import search_namespace

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful voice assistant answering questions about a document "
    "the user uploaded.\n\n"
    "Rules:\n"
    "- Answer from the provided document excerpts. If the answer isn't in "
    "them, say so.\n"
    "- Your reply is read aloud: use plain sentences, no markdown, lists or "
    "source markers.\n"
    "- Be concise and conversational."
)


def format_context(context_chunks: list[dict[str, Any]]) -> str:
    """Render retrieved chunks as numbered excerpts."""
    if not context_chunks:
        return "(no relevant excerpts were found in the document)"
    parts: list[str] = []
    for i, chunk in enumerate(context_chunks):
        source = (chunk.get("metadata") or {}).get("source", "document")
        parts.append(f"[Excerpt {i + 1}] ({source}): {chunk['content']}")
    return "\n\n".join(parts)


def compose_messages(
    utterance: str,
    history: Sequence[Turn],
    context_chunks: list[dict[str, Any]],
) -> list[dict[str, str]]:
    """Map conversation history plus the grounded question to API messages.

    The history may already end with the current utterance, may start with
    an assistant turn and may contain consecutive turns from the same role;
    the Messages API needs strict alternation starting with the user, so
    the trailing copy is dropped, leading assistant turns are skipped and
    same-role runs are merged.
    """
    turns = [t for t in history if t.content.strip()]
    if turns and turns[-1].role is Role.USER and turns[-1].content.strip() == utterance.strip():
        turns = turns[:-1]

    messages: list[dict[str, str]] = []
    for turn in turns:
        if not messages and turn.role is Role.ASSISTANT:
            continue
        if messages and messages[-1]["role"] == turn.role.value:
            messages[-1]["content"] += "\n\n" + turn.content
        else:
            messages.append({"role": turn.role.value, "content": turn.content})

    question = (
        f"Context from the document:\n\n{format_context(context_chunks)}\n\n"
        f"Question: {utterance}"
    )
    if messages and messages[-1]["role"] == Role.USER.value:
        messages[-1]["content"] += "\n\n" + question
    else:
        messages.append({"role": Role.USER.value, "content": question})
    return messages


def generate_reply(
    utterance: str,
    history: Sequence[Turn],
    context_chunks: list[dict[str, Any]],
) -> dict[str, Any]:
    """Generate a spoken-style reply with Claude.

    Args:
        utterance: The user's latest utterance.
        history: Conversation so far (may include the utterance itself).
        context_chunks: Retrieved chunks for the utterance.

    Returns:
        Dictionary with reply, sources, model, and usage info.

    Raises:
        CompletionRequestError: If the API call fails or returns no text.
    """
    try:
        client = Anthropic(
            api_key=settings.anthropic_api_key or None,
            timeout=settings.request_timeout,
            max_retries=0,
        )
        response = client.messages.create(
            model=settings.llm_model,
            max_tokens=settings.max_tokens,
            system=SYSTEM_PROMPT,
            messages=compose_messages(utterance, history, context_chunks),  # type: ignore[arg-type]
        )
    except Exception as exc:
        # Covers APIError subclasses, timeouts and missing credentials.
        raise CompletionRequestError(f"Completion request failed: {exc}") from exc

    # response.content[0] is a union of block types; plain text is requested.
    block = response.content[0] if response.content else None
    if not isinstance(block, TextBlock) or not block.text.strip():
        raise CompletionRequestError("Completion returned no text")

    return {
        "reply": block.text.strip(),
        "sources": context_chunks,
        "model": response.model,
        "usage": {
            "input_tokens": response.usage.input_tokens,
            "output_tokens": response.usage.output_tokens,
        },
    }


def answer_with_context(
    utterance: str,
    history: Sequence[Turn],
    namespace: str,
) -> dict[str, Any]:
    """Retrieve chunks from *namespace* and generate a grounded reply."""
    chunks = search_namespace(utterance, namespace)
    logger.info("Retrieved %d chunks from namespace %s", len(chunks), namespace)
    return generate_reply(utterance, history, chunks)
