"""Text-to-speech via the OpenAI speech endpoint."""

from __future__ import annotations

import logging

from openai import OpenAI, OpenAIError

from voicerag.config import settings
from voicerag.errors import SynthesisRequestError

logger = logging.getLogger(__name__)

MEDIA_TYPES = {
    "mp3": "audio/mpeg",
    "opus": "audio/ogg",
    "aac": "audio/aac",
    "flac": "audio/flac",
    "wav": "audio/wav",
    "pcm": "audio/pcm",
}


def media_type_for(audio_format: str) -> str:
    return MEDIA_TYPES.get(audio_format, "application/octet-stream")


def synthesize_speech(
    text: str,
    voice: str | None = None,
    audio_format: str | None = None,
) -> bytes:
    """Synthesize *text* and return the encoded audio bytes.

    Args:
        text: Reply text to speak.
        voice: Voice name (defaults to settings).
        audio_format: ``"mp3"``, ``"wav"``, ``"opus"``... (defaults to settings).

    Raises:
        ValueError: If *text* is blank.
        SynthesisRequestError: If the request fails or returns no audio.
    """
    if not text.strip():
        raise ValueError("Cannot synthesize empty text")

    try:
        client = OpenAI(
            api_key=settings.openai_api_key or None,
            timeout=settings.request_timeout,
            max_retries=0,
        )
        response = client.audio.speech.create(
            model=settings.tts_model,
            voice=voice or settings.tts_voice,  # type: ignore[arg-type]
            input=text,
            response_format=audio_format or settings.tts_format,  # type: ignore[arg-type]
        )
        audio = response.content
    except OpenAIError as exc:
        raise SynthesisRequestError(f"Speech synthesis failed: {exc}") from exc

    if not audio:
        raise SynthesisRequestError("Speech synthesis returned no audio")
    logger.debug("Synthesized %d bytes of audio for %d characters", len(audio), len(text))
    return audio
