"""Completion endpoint: grounded reply to the latest utterance."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, HTTPException

from voicerag.api.models import ChatRequest, ChatResponse
from voicerag.errors import CompletionRequestError
from voicerag.retrieval.generation import answer_with_context

router = APIRouter()


@router.post("/api/chat", response_model=ChatResponse)
async def chat(request: ChatRequest) -> ChatResponse:
    """Answer the utterance from the namespace's chunks and the conversation so far."""
    if not request.utterance.strip():
        raise HTTPException(status_code=422, detail="Utterance must not be empty.")

    history = [t.to_turn() for t in request.history]
    try:
        result = await asyncio.to_thread(
            answer_with_context, request.utterance, history, request.namespace
        )
    except CompletionRequestError as exc:
        # Upstream failure: 502 keeps a JSON body with CORS headers intact.
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    return ChatResponse(
        reply=result["reply"],
        sources=result["sources"],
        model=result.get("model"),
        usage=result.get("usage"),
    )
