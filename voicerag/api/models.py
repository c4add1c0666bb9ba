"""Pydantic request/response schemas for the Voice RAG API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from voicerag.conversation.models import Role, Turn
from voicerag.ingestion.models import ProcessingState


class TurnModel(BaseModel):
    """One conversation turn on the wire."""

    role: Role
    content: str
    timestamp: datetime | None = None

    def to_turn(self) -> Turn:
        return Turn.from_dict(self.model_dump())


class ChatRequest(BaseModel):
    """Request body for the /api/chat endpoint."""

    utterance: str
    history: list[TurnModel] = []
    namespace: str = Field(min_length=1)


class ChatResponse(BaseModel):
    """Response body for the /api/chat endpoint."""

    reply: str
    sources: list[dict[str, Any]] = []
    model: str | None = None
    usage: dict[str, Any] | None = None


class SpeechRequest(BaseModel):
    """Request body for the /api/speech endpoint."""

    text: str


class TranscribeResponse(BaseModel):
    """Response body for the /api/transcribe endpoint."""

    text: str


class IngestResponse(BaseModel):
    """Response body for the /api/ingest endpoint."""

    message: str
    namespace: str
    storage_path: str
    num_chunks: int
    states: list[ProcessingState]
