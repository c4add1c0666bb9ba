"""Tests for the AssemblyAI streaming adapter (SDK client mocked)."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from voicerag.conversation.assemblyai_stream import AssemblyAIConnection
from voicerag.conversation.transcription import (
    ConnectionClosed,
    ConnectionOpened,
    FinalTranscript,
    InterimTranscript,
    StreamError,
    TranscriptionEvent,
)
from voicerag.errors import TranscriptionStreamError


def _word(start: int, end: int) -> SimpleNamespace:
    return SimpleNamespace(start=start, end=end)


def _turn(
    transcript: str,
    end_of_turn: bool = False,
    formatted: bool = False,
    words: list[SimpleNamespace] | None = None,
) -> SimpleNamespace:
    return SimpleNamespace(
        transcript=transcript,
        end_of_turn=end_of_turn,
        turn_is_formatted=formatted,
        words=words,
    )


async def _drain(connection: AssemblyAIConnection) -> list[TranscriptionEvent]:
    return [event async for event in connection.events()]


def _collect(*callbacks: tuple[str, object]) -> list[TranscriptionEvent]:
    """Fire SDK callbacks on a fresh connection and return the emitted events."""

    async def run() -> list[TranscriptionEvent]:
        connection = AssemblyAIConnection(api_key="fake-key", sample_rate=16000)
        connection._loop = asyncio.get_running_loop()
        for name, event in callbacks:
            getattr(connection, name)(None, event)
        return await asyncio.wait_for(_drain(connection), timeout=1.0)

    return asyncio.run(run())


CLOSED = ("_on_termination", SimpleNamespace(audio_duration_seconds=4))


class TestTurnResults:
    def test_partial_turn_is_interim(self) -> None:
        events = _collect(("_on_turn", _turn("what is")), CLOSED)
        assert events[0] == InterimTranscript(text="what is")

    def test_unformatted_end_of_turn_is_interim(self) -> None:
        events = _collect(("_on_turn", _turn("what is the refund policy", end_of_turn=True)), CLOSED)
        assert isinstance(events[0], InterimTranscript)

    def test_formatted_end_of_turn_is_speech_final(self) -> None:
        turn = _turn("What is the refund policy?", end_of_turn=True, formatted=True)
        events = _collect(("_on_turn", turn), CLOSED)
        assert events[0] == FinalTranscript(text="What is the refund policy?", speech_final=True)

    def test_word_timings_converted_to_seconds(self) -> None:
        turn = _turn(
            "Refund policy?",
            end_of_turn=True,
            formatted=True,
            words=[_word(1200, 1500), _word(1600, 2450)],
        )
        event = _collect(("_on_turn", turn), CLOSED)[0]
        assert isinstance(event, FinalTranscript)
        assert event.start == pytest.approx(1.2)
        assert event.duration == pytest.approx(1.25)

    def test_no_words_means_zero_timing(self) -> None:
        event = _collect(("_on_turn", _turn("hm", words=[])), CLOSED)[0]
        assert (event.start, event.duration) == (0.0, 0.0)


class TestLifecycleEvents:
    def test_begin_opens_connection(self) -> None:
        events = _collect(("_on_begin", SimpleNamespace(id="session-1")), CLOSED)
        assert isinstance(events[0], ConnectionOpened)

    def test_events_stop_after_termination(self) -> None:
        events = _collect(
            ("_on_begin", SimpleNamespace(id="session-1")),
            CLOSED,
            ("_on_turn", _turn("never delivered")),
        )
        assert len(events) == 2
        assert isinstance(events[-1], ConnectionClosed)
        assert "4" in events[-1].reason

    def test_events_stop_after_error(self) -> None:
        events = _collect(
            ("_on_error", "socket closed by peer"),
            ("_on_turn", _turn("never delivered")),
        )
        assert events == [StreamError(message="socket closed by peer")]

    def test_callbacks_before_connect_are_dropped(self) -> None:
        connection = AssemblyAIConnection(api_key="fake-key")
        connection._on_begin(None, SimpleNamespace(id="session-1"))
        assert connection._events.empty()


class TestClientCalls:
    @patch("voicerag.conversation.assemblyai_stream.StreamingClient")
    def test_connect_registers_handlers(self, mock_client_cls: MagicMock) -> None:
        connection = AssemblyAIConnection(api_key="fake-key", sample_rate=16000)
        asyncio.run(connection.connect())

        client = mock_client_cls.return_value
        assert client.on.call_count == 4
        params = client.connect.call_args.args[0]
        assert params.sample_rate == 16000
        assert params.format_turns is True

    @patch("voicerag.conversation.assemblyai_stream.StreamingClient")
    def test_connect_failure(self, mock_client_cls: MagicMock) -> None:
        mock_client_cls.return_value.connect.side_effect = RuntimeError("401 unauthorized")
        connection = AssemblyAIConnection(api_key="bad-key")
        with pytest.raises(TranscriptionStreamError, match="401 unauthorized"):
            asyncio.run(connection.connect())

    def test_send_before_connect(self) -> None:
        with pytest.raises(TranscriptionStreamError, match="not connected"):
            asyncio.run(AssemblyAIConnection(api_key="fake-key").send_audio(b"\x00\x00"))

    @patch("voicerag.conversation.assemblyai_stream.StreamingClient")
    def test_keep_alive_streams_silence_then_close(self, mock_client_cls: MagicMock) -> None:
        connection = AssemblyAIConnection(api_key="fake-key", sample_rate=16000)

        async def run() -> None:
            await connection.connect()
            await connection.keep_alive()
            await connection.close()

        asyncio.run(run())

        client = mock_client_cls.return_value
        silence = client.stream.call_args.args[0]
        assert silence == bytes(1600)
        client.disconnect.assert_called_once_with(terminate=True)
