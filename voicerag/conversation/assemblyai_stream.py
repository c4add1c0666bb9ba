"""AssemblyAI streaming (v3) adapter for the live transcription session."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

from assemblyai.streaming.v3 import (  # type: ignore[import-untyped]
    BeginEvent,
    StreamingClient,
    StreamingClientOptions,
    StreamingError,
    StreamingEvents,
    StreamingParameters,
    TerminationEvent,
    TurnEvent,
)

from voicerag.config import settings
from voicerag.conversation.transcription import (
    ConnectionClosed,
    ConnectionOpened,
    StreamError,
    TranscriptionEvent,
    transcript_event,
)
from voicerag.errors import TranscriptionStreamError

logger = logging.getLogger(__name__)

STREAMING_HOST = "streaming.assemblyai.com"

# Length of the silent PCM16 frame sent as a keep-alive
KEEP_ALIVE_MS = 50


class AssemblyAIConnection:
    """Bidirectional PCM16 stream to AssemblyAI.

    The SDK delivers callbacks on its own thread; each one is converted to a
    tagged event and handed to the asyncio loop that called :meth:`connect`,
    so :meth:`events` yields them in delivery order. Turn results map onto
    interim/final events: a formatted end-of-turn is a final result with
    ``speech_final`` set, everything else is interim.
    """

    def __init__(self, api_key: str | None = None, sample_rate: int | None = None) -> None:
        self.api_key = api_key or settings.assemblyai_api_key
        self.sample_rate = sample_rate or settings.transcription_sample_rate
        self._client: StreamingClient | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._events: asyncio.Queue[TranscriptionEvent] = asyncio.Queue()

    async def connect(self) -> None:
        """Open the stream; ``ConnectionOpened`` follows once the session begins."""
        self._loop = asyncio.get_running_loop()
        client = StreamingClient(
            StreamingClientOptions(api_key=self.api_key, api_host=STREAMING_HOST)
        )
        client.on(StreamingEvents.Begin, self._on_begin)
        client.on(StreamingEvents.Turn, self._on_turn)
        client.on(StreamingEvents.Termination, self._on_termination)
        client.on(StreamingEvents.Error, self._on_error)

        params = StreamingParameters(sample_rate=self.sample_rate, format_turns=True)
        try:
            await asyncio.to_thread(client.connect, params)
        except Exception as exc:
            raise TranscriptionStreamError(f"Could not connect to transcription service: {exc}") from exc
        self._client = client

    async def events(self) -> AsyncIterator[TranscriptionEvent]:
        """Yield events until the stream terminates or fails."""
        while True:
            event = await self._events.get()
            yield event
            if isinstance(event, (ConnectionClosed, StreamError)):
                return

    async def send_audio(self, frame: bytes) -> None:
        if self._client is None:
            raise TranscriptionStreamError("Transcription stream is not connected")
        try:
            self._client.stream(frame)
        except Exception as exc:
            raise TranscriptionStreamError(f"Failed to send audio: {exc}") from exc

    async def keep_alive(self) -> None:
        silence = bytes(self.sample_rate * KEEP_ALIVE_MS // 1000 * 2)
        await self.send_audio(silence)

    async def close(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await asyncio.to_thread(client.disconnect, terminate=True)
        except Exception as exc:
            raise TranscriptionStreamError(f"Failed to close transcription stream: {exc}") from exc

    # SDK callbacks (called from the SDK's thread)

    def _emit(self, event: TranscriptionEvent) -> None:
        if self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._events.put_nowait, event)

    def _on_begin(self, _client: Any, event: BeginEvent) -> None:
        logger.info("Transcription session %s started", event.id)
        self._emit(ConnectionOpened())

    def _on_turn(self, _client: Any, event: TurnEvent) -> None:
        words = event.words or []
        start = words[0].start / 1000 if words else 0.0
        duration = (words[-1].end - words[0].start) / 1000 if words else 0.0
        final = bool(event.end_of_turn and event.turn_is_formatted)
        self._emit(
            transcript_event(
                event.transcript,
                is_final=final,
                speech_final=final,
                start=start,
                duration=duration,
            )
        )

    def _on_termination(self, _client: Any, event: TerminationEvent) -> None:
        self._emit(ConnectionClosed(reason=f"after {event.audio_duration_seconds}s of audio"))

    def _on_error(self, _client: Any, error: StreamingError) -> None:
        self._emit(StreamError(message=str(error)))
