"""Batch transcription of a recorded audio clip via AssemblyAI."""

from __future__ import annotations

import assemblyai as aai  # type: ignore[import-untyped]

from voicerag.config import settings
from voicerag.errors import TranscriptionStreamError, UnsupportedFormat


def transcribe_clip(raw: bytes) -> str:
    """Transcribe a short recorded clip and return its text.

    The SDK accepts bytes directly, no temp file needed.

    Raises:
        UnsupportedFormat: AssemblyAI rejected the audio content.
        TranscriptionStreamError: Infrastructure error (bad API key,
            network, provider outage).
    """
    aai.settings.api_key = settings.assemblyai_api_key
    aai.settings.http_timeout = settings.request_timeout
    transcriber = aai.Transcriber()

    try:
        transcript = transcriber.transcribe(raw)
    except Exception as exc:
        raise TranscriptionStreamError(f"Transcription service unavailable: {exc}") from exc

    if transcript.status == aai.TranscriptStatus.error:
        raise UnsupportedFormat(f"Transcription failed: {transcript.error}")
    return (transcript.text or "").strip()
