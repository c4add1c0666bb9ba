"""Live transcription session: microphone/connection state and utterance detection.

The session owns the per-utterance transcript buffer, the caption shown to
the user and the keep-alive timer. Transcription events are processed one
at a time, in arrival order, by :meth:`LiveTranscriptionSession.handle`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, Union

from voicerag.config import settings
from voicerag.errors import TranscriptionStreamError

logger = logging.getLogger(__name__)


class MicrophoneState(str, Enum):
    UNSET = "unset"
    READY = "ready"
    OPENING = "opening"
    OPEN = "open"
    PAUSED = "paused"
    ERROR = "error"


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"
    ERROR = "error"


# ERROR is reachable from every state and is not listed here.
_MICROPHONE_TRANSITIONS: dict[MicrophoneState, set[MicrophoneState]] = {
    MicrophoneState.UNSET: {MicrophoneState.READY},
    MicrophoneState.READY: {MicrophoneState.OPENING},
    MicrophoneState.OPENING: {MicrophoneState.OPEN},
    MicrophoneState.OPEN: {MicrophoneState.PAUSED},
    MicrophoneState.PAUSED: {MicrophoneState.OPENING, MicrophoneState.OPEN, MicrophoneState.READY},
    MicrophoneState.ERROR: {MicrophoneState.READY},
}


@dataclass(frozen=True)
class InterimTranscript:
    text: str
    start: float = 0.0
    duration: float = 0.0


@dataclass(frozen=True)
class FinalTranscript:
    text: str
    speech_final: bool = False
    start: float = 0.0
    duration: float = 0.0


@dataclass(frozen=True)
class ConnectionOpened:
    pass


@dataclass(frozen=True)
class ConnectionClosed:
    reason: str = ""


@dataclass(frozen=True)
class StreamError:
    message: str


TranscriptionEvent = Union[
    InterimTranscript, FinalTranscript, ConnectionOpened, ConnectionClosed, StreamError
]


def transcript_event(
    text: str,
    is_final: bool,
    speech_final: bool = False,
    start: float = 0.0,
    duration: float = 0.0,
) -> InterimTranscript | FinalTranscript:
    """Build the tagged event for a provider result with the usual flags."""
    if is_final:
        return FinalTranscript(text=text, speech_final=speech_final, start=start, duration=duration)
    return InterimTranscript(text=text, start=start, duration=duration)


class TranscriptionConnection(Protocol):
    """Client side of a bidirectional speech-to-text stream."""

    async def send_audio(self, frame: bytes) -> None: ...

    async def keep_alive(self) -> None: ...

    async def close(self) -> None: ...


UtteranceHandler = Callable[[str], Awaitable[None]]
ErrorHandler = Callable[[TranscriptionStreamError], Awaitable[None]]


class LiveTranscriptionSession:
    """One user's microphone + transcription connection pairing.

    Audio is forwarded only while both the microphone and the connection are
    open; anything captured earlier is dropped. A final event with
    ``speech_final`` set completes the utterance: capture pauses, the
    caption clears and the accumulated text is handed to *on_utterance*.
    """

    def __init__(
        self,
        connection: TranscriptionConnection,
        on_utterance: UtteranceHandler,
        *,
        on_error: ErrorHandler | None = None,
        keep_alive_interval: float | None = None,
    ) -> None:
        self.connection = connection
        self.on_utterance = on_utterance
        self.on_error = on_error
        self.keep_alive_interval = (
            settings.keep_alive_interval if keep_alive_interval is None else keep_alive_interval
        )

        self.microphone_state = MicrophoneState.UNSET
        self.connection_state = ConnectionState.CONNECTING
        self.caption: str | None = None
        self.error: TranscriptionStreamError | None = None
        self.dropped_frames = 0
        self.keep_alives_sent = 0

        self._segments: list[str] = []
        self._keep_alive_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def transcript(self) -> str:
        """Final text accumulated for the current utterance."""
        return " ".join(self._segments)

    @property
    def is_streaming(self) -> bool:
        return (
            self.microphone_state is MicrophoneState.OPEN
            and self.connection_state is ConnectionState.OPEN
        )

    @property
    def keep_alive_active(self) -> bool:
        return self._keep_alive_task is not None and not self._keep_alive_task.done()

    def set_microphone_state(self, state: str | MicrophoneState) -> None:
        """Move the microphone to *state*.

        Raises:
            ValueError: If the transition is not allowed.
        """
        state = MicrophoneState(state)
        current = self.microphone_state
        if state is current:
            return
        if state is not MicrophoneState.ERROR and state not in _MICROPHONE_TRANSITIONS[current]:
            raise ValueError(f"Invalid microphone transition {current.value} -> {state.value}")
        logger.debug("Microphone %s -> %s", current.value, state.value)
        self.microphone_state = state
        self._sync_keep_alive()

    def setup_microphone(self) -> None:
        self.set_microphone_state(MicrophoneState.READY)

    def start_microphone(self) -> None:
        self.set_microphone_state(MicrophoneState.OPENING)

    def stop_microphone(self) -> None:
        self.set_microphone_state(MicrophoneState.PAUSED)

    def toggle(self) -> MicrophoneState:
        """Microphone button: resume when paused, pause when open, else set up."""
        state = self.microphone_state
        if state is MicrophoneState.PAUSED:
            self.start_microphone()
        elif state is MicrophoneState.OPEN:
            self.stop_microphone()
        elif state in (MicrophoneState.UNSET, MicrophoneState.ERROR):
            self.setup_microphone()
        return self.microphone_state

    # ------------------------------------------------------------------
    # Audio and events
    # ------------------------------------------------------------------

    async def send_audio(self, frame: bytes) -> bool:
        """Forward one captured frame; returns False when it was dropped."""
        if not frame:
            return False
        if not self.is_streaming:
            self.dropped_frames += 1
            logger.debug(
                "Dropped audio frame (microphone=%s, connection=%s)",
                self.microphone_state.value,
                self.connection_state.value,
            )
            return False
        await self.connection.send_audio(frame)
        return True

    async def handle(self, event: TranscriptionEvent) -> str | None:
        """Process one event; returns the utterance when one completes."""
        if isinstance(event, ConnectionOpened):
            self.connection_state = ConnectionState.OPEN
            self._sync_keep_alive()
        elif isinstance(event, ConnectionClosed):
            logger.info("Transcription connection closed %s", event.reason)
            self.connection_state = ConnectionState.CLOSED
            self._sync_keep_alive()
        elif isinstance(event, StreamError):
            await self._fail(event.message)
        elif isinstance(event, InterimTranscript):
            if event.text:
                self.caption = event.text
        elif isinstance(event, FinalTranscript):
            return await self._handle_final(event)
        return None

    async def _handle_final(self, event: FinalTranscript) -> str | None:
        if event.text:
            self.caption = event.text
        if event.text.strip():
            self._segments.append(event.text)

        if not (event.speech_final and self._segments):
            return None

        utterance = self.transcript.strip()
        self._segments.clear()
        self.caption = None
        if self.microphone_state is MicrophoneState.OPEN:
            self.stop_microphone()
        logger.info("Utterance complete (%d chars)", len(utterance))
        await self.on_utterance(utterance)
        return utterance

    async def _fail(self, message: str) -> None:
        logger.warning("Transcription stream error: %s", message)
        self.error = TranscriptionStreamError(message)
        self.connection_state = ConnectionState.ERROR
        self.set_microphone_state(MicrophoneState.ERROR)
        if self.on_error is not None:
            await self.on_error(self.error)

    async def run(self, events: AsyncIterator[TranscriptionEvent]) -> None:
        """Consume *events* in order until the connection closes or fails."""
        async for event in events:
            await self.handle(event)
            if self.connection_state in (ConnectionState.CLOSED, ConnectionState.ERROR):
                break

    async def close(self) -> None:
        """Tear the session down; a new session is needed to talk again."""
        self._segments.clear()
        self.caption = None
        if self.connection_state not in (ConnectionState.CLOSED, ConnectionState.ERROR):
            self.connection_state = ConnectionState.CLOSED
            await self.connection.close()
        if self.microphone_state is MicrophoneState.OPEN:
            self.stop_microphone()
        self._sync_keep_alive()

    # ------------------------------------------------------------------
    # Keep-alive
    # ------------------------------------------------------------------

    def _sync_keep_alive(self) -> None:
        wanted = (
            self.connection_state is ConnectionState.OPEN
            and self.microphone_state is not MicrophoneState.OPEN
        )
        if wanted and not self.keep_alive_active:
            self._keep_alive_task = asyncio.get_running_loop().create_task(self._keep_alive_loop())
        elif not wanted and self._keep_alive_task is not None:
            self._keep_alive_task.cancel()
            self._keep_alive_task = None

    async def _keep_alive_loop(self) -> None:
        while True:
            try:
                await self.connection.keep_alive()
                self.keep_alives_sent += 1
            except TranscriptionStreamError:
                logger.warning("Keep-alive failed", exc_info=True)
            await asyncio.sleep(self.keep_alive_interval)
