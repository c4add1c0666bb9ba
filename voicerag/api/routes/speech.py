"""Speech endpoints: synthesize replies and transcribe recorded clips."""

from __future__ import annotations

import asyncio
from typing import Annotated

from fastapi import APIRouter, File, HTTPException, Response, UploadFile

from voicerag.api.models import SpeechRequest, TranscribeResponse
from voicerag.config import settings
from voicerag.errors import SynthesisRequestError, TranscriptionStreamError, UnsupportedFormat
from voicerag.speech.synthesis import media_type_for, synthesize_speech
from voicerag.speech.transcribe import transcribe_clip

router = APIRouter()


@router.post("/api/speech")
async def speech(request: SpeechRequest) -> Response:
    """Return synthesized audio for *text* as raw bytes."""
    if not request.text.strip():
        raise HTTPException(status_code=422, detail="Text must not be empty.")
    try:
        audio = await asyncio.to_thread(synthesize_speech, request.text)
    except SynthesisRequestError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return Response(content=audio, media_type=media_type_for(settings.tts_format))


@router.post("/api/transcribe", response_model=TranscribeResponse)
async def transcribe(file: Annotated[UploadFile, File(...)]) -> TranscribeResponse:
    """Transcribe a recorded audio clip (used by the recorded voice input)."""
    if not settings.assemblyai_api_key:
        raise HTTPException(
            status_code=501,
            detail="Audio transcription is not configured. Type your message instead.",
        )
    raw = await file.read()
    if not raw:
        raise HTTPException(status_code=422, detail="Uploaded audio is empty.")

    # Synchronous AssemblyAI SDK, run in a worker thread.
    try:
        text = await asyncio.to_thread(transcribe_clip, raw)
    except UnsupportedFormat as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except TranscriptionStreamError as exc:
        # Not the client's fault: bad API key, network failure, provider outage.
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return TranscribeResponse(text=text)
