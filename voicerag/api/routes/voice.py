"""Voice conversation over a WebSocket.

The browser streams PCM16 microphone frames as binary messages and drives
the microphone state with small JSON control messages. The server relays
frames to the transcription service, pushes captions as they change and,
once an utterance completes, answers it through the conversation
orchestrator and sends the synthesized reply back as a binary message.

Client -> server messages::

    <binary>                                  one audio frame
    {"type": "microphone", "state": "ready"}  also opening/open/paused/error
    {"type": "toggle"}                        microphone button
    {"type": "text", "content": "..."}        typed utterance
    {"type": "playback", "state": "finished"} reply audio done playing

Server -> client messages::

    {"type": "caption", "text": "..." | null}
    {"type": "transcript", "text": "..."}
    {"type": "reply", "text": "..."}
    {"type": "reply-audio", "media_type": "audio/mpeg", "bytes": 1234}, then <binary>
    {"type": "microphone", "state": "...", "action": "start" | null}
    {"type": "notification", "message": "..."}

Once the microphone is ready and the transcription connection is open, the
server moves it to "opening" and sends ``"action": "start"``; the client
then starts capturing and reports "open". The same message re-arms the
microphone after each reply.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Callable
from typing import Annotated, Any, Protocol

from fastapi import APIRouter, Depends, WebSocket

from voicerag.config import settings
from voicerag.conversation.assemblyai_stream import AssemblyAIConnection
from voicerag.conversation.orchestrator import (
    CompletionClient,
    ConversationOrchestrator,
    LocalCompletionClient,
    LocalSpeechClient,
    SpeechClient,
)
from voicerag.conversation.transcription import (
    ConnectionOpened,
    ConnectionState,
    LiveTranscriptionSession,
    MicrophoneState,
    StreamError,
    TranscriptionConnection,
    TranscriptionEvent,
)
from voicerag.errors import TranscriptionStreamError
from voicerag.speech.synthesis import media_type_for

logger = logging.getLogger(__name__)

router = APIRouter()


class StreamingConnection(TranscriptionConnection, Protocol):
    async def connect(self) -> None: ...

    def events(self) -> AsyncIterator[TranscriptionEvent]: ...


ConnectionFactory = Callable[[], StreamingConnection]


def get_connection_factory() -> ConnectionFactory:
    return AssemblyAIConnection


def get_completion_client() -> CompletionClient:
    return LocalCompletionClient()


def get_speech_client() -> SpeechClient:
    return LocalSpeechClient()


class WebSocketPlayer:
    """Plays reply audio in the browser and waits until it reports completion."""

    def __init__(self, channel: VoiceChannel) -> None:
        self.channel = channel
        self._finished = asyncio.Event()

    async def play(self, audio: bytes) -> None:
        self._finished.clear()
        await self.channel.send_json(
            {
                "type": "reply-audio",
                "media_type": media_type_for(settings.tts_format),
                "bytes": len(audio),
            }
        )
        await self.channel.send_bytes(audio)
        try:
            await asyncio.wait_for(self._finished.wait(), timeout=settings.playback_timeout)
        except TimeoutError:
            logger.warning(
                "No playback acknowledgement after %.0fs; treating reply as played",
                settings.playback_timeout,
            )

    def finished(self) -> None:
        self._finished.set()


class VoiceChannel:
    """Binds one WebSocket to a transcription session and an orchestrator."""

    def __init__(
        self,
        websocket: WebSocket,
        namespace: str,
        connection: StreamingConnection,
        completion: CompletionClient,
        speech: SpeechClient,
    ) -> None:
        self.websocket = websocket
        self.connection = connection
        self.player = WebSocketPlayer(self)
        self.session = LiveTranscriptionSession(
            connection, self._on_utterance, on_error=self._on_stream_error
        )
        self.orchestrator = ConversationOrchestrator(
            namespace,
            completion,
            speech,
            self.player,
            notify=self.notify,
            rearm=self._rearm,
        )
        self._send_lock = asyncio.Lock()
        self._events_task: asyncio.Task[None] | None = None
        self._turn_task: asyncio.Task[None] | None = None
        self._caption: str | None = None

    # Outbound

    async def send_json(self, payload: dict[str, Any]) -> None:
        async with self._send_lock:
            await self.websocket.send_json(payload)

    async def send_bytes(self, data: bytes) -> None:
        async with self._send_lock:
            await self.websocket.send_bytes(data)

    async def notify(self, message: str) -> None:
        await self.send_json({"type": "notification", "message": message})

    async def _send_microphone(self, action: str | None = None) -> None:
        await self.send_json(
            {
                "type": "microphone",
                "state": self.session.microphone_state.value,
                "action": action,
            }
        )

    async def _send_caption(self) -> None:
        caption = self.session.caption
        if caption != self._caption:
            self._caption = caption
            await self.send_json({"type": "caption", "text": caption})

    # Session callbacks

    async def _on_utterance(self, utterance: str) -> None:
        await self.send_json({"type": "transcript", "text": utterance})
        await self._send_microphone()
        await self._start_turn(utterance)

    async def _on_stream_error(self, error: TranscriptionStreamError) -> None:
        await self.notify(f"Transcription error: {error}")
        await self._send_microphone()

    async def _auto_start(self) -> None:
        if (
            self.session.microphone_state is MicrophoneState.READY
            and self.session.connection_state is ConnectionState.OPEN
        ):
            self.session.start_microphone()
            await self._send_microphone(action="start")

    async def _rearm(self) -> None:
        if self.session.microphone_state is MicrophoneState.PAUSED:
            self.session.start_microphone()
            await self._send_microphone(action="start")

    # Turns

    async def _start_turn(self, utterance: str) -> None:
        if self._turn_task is not None and not self._turn_task.done():
            logger.info("Ignoring utterance while a reply is in progress")
            await self.notify("Still answering the previous question; please wait for the reply.")
            return
        self._turn_task = asyncio.create_task(self._run_turn(utterance))

    async def _run_turn(self, utterance: str) -> None:
        turn = await self.orchestrator.handle_utterance(utterance)
        if turn is not None:
            await self.send_json({"type": "reply", "text": turn.content})

    # Transcription stream

    async def _open_stream(self) -> None:
        try:
            await self.connection.connect()
        except TranscriptionStreamError as exc:
            await self.session.handle(StreamError(message=str(exc)))
            return
        self._events_task = asyncio.create_task(self._consume_events())

    async def _consume_events(self) -> None:
        async for event in self.connection.events():
            await self.session.handle(event)
            if isinstance(event, ConnectionOpened):
                await self._auto_start()
            await self._send_caption()
            if self.session.connection_state in (ConnectionState.CLOSED, ConnectionState.ERROR):
                break

    # Inbound

    async def _handle_control(self, message: dict[str, Any]) -> None:
        kind = message.get("type")
        if kind == "microphone":
            await self._set_microphone(str(message.get("state", "")))
        elif kind == "toggle":
            self.session.toggle()
            await self._send_microphone()
            if self.session.microphone_state is MicrophoneState.READY:
                await self._ensure_stream()
                await self._auto_start()
        elif kind == "text":
            content = str(message.get("content", "")).strip()
            if content:
                await self.send_json({"type": "transcript", "text": content})
                await self._start_turn(content)
        elif kind == "playback":
            self.player.finished()
        else:
            await self.notify(f"Unknown message type: {kind}")

    async def _set_microphone(self, state: str) -> None:
        try:
            target = MicrophoneState(state)
            if target is MicrophoneState.OPENING and self.orchestrator.is_playing:
                self.orchestrator.interrupt()
            self.session.set_microphone_state(target)
        except ValueError as exc:
            await self.notify(str(exc))
            return
        await self._send_microphone()
        if target is MicrophoneState.READY:
            await self._ensure_stream()
            await self._auto_start()

    async def _ensure_stream(self) -> None:
        if self._events_task is None and self.session.connection_state is ConnectionState.CONNECTING:
            await self._open_stream()

    async def serve(self) -> None:
        try:
            while True:
                message = await self.websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                if message.get("bytes") is not None:
                    await self.session.send_audio(message["bytes"])
                elif message.get("text"):
                    try:
                        payload = json.loads(message["text"])
                    except json.JSONDecodeError:
                        payload = None
                    if not isinstance(payload, dict):
                        await self.notify("Control messages must be JSON objects")
                        continue
                    await self._handle_control(payload)
        finally:
            await self._shutdown()

    async def _shutdown(self) -> None:
        for task in (self._turn_task, self._events_task):
            if task is not None and not task.done():
                task.cancel()
        try:
            await self.session.close()
        except TranscriptionStreamError:
            logger.warning("Failed to close transcription stream", exc_info=True)


@router.websocket("/api/voice/{namespace}")
async def voice(
    websocket: WebSocket,
    namespace: str,
    connection_factory: Annotated[ConnectionFactory, Depends(get_connection_factory)],
    completion: Annotated[CompletionClient, Depends(get_completion_client)],
    speech: Annotated[SpeechClient, Depends(get_speech_client)],
) -> None:
    """Hold a spoken conversation about the document indexed under *namespace*."""
    await websocket.accept()
    logger.info("Voice session opened for namespace %r", namespace)
    channel = VoiceChannel(websocket, namespace, connection_factory(), completion, speech)
    await channel.serve()
    logger.info("Voice session closed for namespace %r", namespace)
