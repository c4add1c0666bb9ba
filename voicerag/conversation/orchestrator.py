"""Conversational orchestrator: utterance -> grounded reply -> speech -> next turn."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Protocol

from voicerag.conversation.models import Conversation, Role, Turn
from voicerag.errors import CompletionRequestError, SynthesisRequestError
from voicerag.retrieval.generation import answer_with_context
from voicerag.speech.synthesis import synthesize_speech

logger = logging.getLogger(__name__)


class CompletionClient(Protocol):
    async def complete(self, utterance: str, history: Sequence[Turn], namespace: str) -> str: ...


class SpeechClient(Protocol):
    async def synthesize(self, text: str) -> bytes: ...


class AudioPlayer(Protocol):
    async def play(self, audio: bytes) -> None: ...


Notifier = Callable[[str], Awaitable[None]]
Rearm = Callable[[], Awaitable[None]]


class LocalCompletionClient:
    """Runs retrieval and generation in-process, off the event loop."""

    async def complete(self, utterance: str, history: Sequence[Turn], namespace: str) -> str:
        result = await asyncio.to_thread(answer_with_context, utterance, list(history), namespace)
        return str(result["reply"])


class LocalSpeechClient:
    """Runs speech synthesis in-process, off the event loop."""

    async def synthesize(self, text: str) -> bytes:
        return await asyncio.to_thread(synthesize_speech, text)


class ConversationOrchestrator:
    """Drives one conversation against one namespace.

    Each call to :meth:`handle_utterance` appends exactly one user turn and,
    when both completion and synthesis succeed, exactly one assistant turn.
    The microphone is re-armed only after playback finishes or is
    interrupted, so the assistant never transcribes itself. Failures become
    notifications; nothing is retried.
    """

    def __init__(
        self,
        namespace: str,
        completion: CompletionClient,
        speech: SpeechClient,
        player: AudioPlayer,
        *,
        conversation: Conversation | None = None,
        notify: Notifier | None = None,
        rearm: Rearm | None = None,
    ) -> None:
        self.namespace = namespace
        self.completion = completion
        self.speech = speech
        self.player = player
        self.conversation = conversation if conversation is not None else Conversation()
        self.notify = notify
        self.rearm = rearm
        self._playback: asyncio.Task[None] | None = None

    @property
    def is_playing(self) -> bool:
        return self._playback is not None and not self._playback.done()

    def interrupt(self) -> bool:
        """Stop the reply being played (a new recording started)."""
        playback = self._playback
        if playback is None or playback.done():
            return False
        playback.cancel()
        logger.info("Playback interrupted")
        return True

    async def handle_utterance(self, utterance: str) -> Turn | None:
        """Run one conversational cycle; returns the assistant turn on success."""
        utterance = utterance.strip()
        if not utterance:
            return None

        prior = self.conversation.turns
        self.conversation.append(Role.USER, utterance)
        try:
            reply = await self.completion.complete(utterance, prior, self.namespace)
            if not reply.strip():
                raise CompletionRequestError("Completion returned an empty reply")
            audio = await self.speech.synthesize(reply)
            await self._play(audio)
            return self.conversation.append(Role.ASSISTANT, reply.strip())
        except (CompletionRequestError, SynthesisRequestError) as exc:
            logger.warning("Conversation turn failed: %s", exc)
            await self._notify(str(exc))
            return None
        finally:
            if self.rearm is not None:
                await self.rearm()

    async def _play(self, audio: bytes) -> None:
        playback = asyncio.create_task(self.player.play(audio))
        self._playback = playback
        try:
            await asyncio.wait({playback})
        except asyncio.CancelledError:
            playback.cancel()
            raise
        finally:
            self._playback = None
        if playback.cancelled():
            return
        exc = playback.exception()
        if exc is not None:
            # The reply was produced; failing to play it does not undo the turn.
            logger.warning("Playback failed: %s", exc)
            await self._notify(f"Could not play the reply: {exc}")

    async def _notify(self, message: str) -> None:
        if self.notify is not None:
            await self.notify(message)
