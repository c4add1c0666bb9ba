"""Tests for retrieval, reply generation and speech helpers (SDKs mocked)."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from anthropic.types import TextBlock
from openai import OpenAIError

from voicerag.conversation.models import Role, Turn
from voicerag.errors import (
    CompletionRequestError,
    SynthesisRequestError,
    TranscriptionStreamError,
    UnsupportedFormat,
)
from voicerag.retrieval.generation import (
    answer_with_context,
    compose_messages,
    format_context,
    generate_reply,
)
from voicerag.retrieval.search import search_namespace
from voicerag.speech.synthesis import media_type_for, synthesize_speech
from voicerag.speech.transcribe import transcribe_clip

CHUNKS = [
    {
        "content": "Refunds are accepted within 30 days of purchase.",
        "metadata": {"source": "manual.pdf/manual.pdf"},
        "namespace": "manual.pdf",
        "similarity": 0.91,
    }
]


def _claude_response(*blocks: object) -> SimpleNamespace:
    return SimpleNamespace(
        content=list(blocks),
        model="claude-test",
        usage=SimpleNamespace(input_tokens=120, output_tokens=18),
    )


# ---------------------------------------------------------------------------
# Message composition
# ---------------------------------------------------------------------------


class TestComposeMessages:
    def test_first_turn(self) -> None:
        messages = compose_messages("What is the refund policy?", [], CHUNKS)
        assert len(messages) == 1
        assert messages[0]["role"] == "user"
        assert "Refunds are accepted within 30 days" in messages[0]["content"]
        assert messages[0]["content"].endswith("Question: What is the refund policy?")

    def test_trailing_copy_of_utterance_dropped(self) -> None:
        history = [
            Turn(Role.USER, "Hi"),
            Turn(Role.ASSISTANT, "Hello, ask me about the manual."),
            Turn(Role.USER, "What is the refund policy?"),
        ]
        messages = compose_messages("What is the refund policy?", history, CHUNKS)
        assert [m["role"] for m in messages] == ["user", "assistant", "user"]
        assert messages[-1]["content"].count("What is the refund policy?") == 1

    def test_leading_assistant_skipped_and_runs_merged(self) -> None:
        history = [
            Turn(Role.ASSISTANT, "Welcome."),
            Turn(Role.USER, "First try"),
            Turn(Role.USER, "Second try"),
            Turn(Role.ASSISTANT, "Answer."),
        ]
        messages = compose_messages("Follow-up", history, CHUNKS)
        assert [m["role"] for m in messages] == ["user", "assistant", "user"]
        assert messages[0]["content"] == "First try\n\nSecond try"

    def test_unanswered_user_turn_merged_into_question(self) -> None:
        history = [Turn(Role.USER, "An earlier question that failed")]
        messages = compose_messages("New question", history, [])
        assert len(messages) == 1
        assert messages[0]["content"].startswith("An earlier question that failed\n\n")
        assert "no relevant excerpts" in messages[0]["content"]

    def test_blank_turns_dropped(self) -> None:
        history = [Turn(Role.USER, "  "), Turn(Role.ASSISTANT, "")]
        assert len(compose_messages("Hi", history, [])) == 1

    def test_format_context_numbers_excerpts(self) -> None:
        text = format_context(CHUNKS * 2)
        assert "[Excerpt 1] (manual.pdf/manual.pdf)" in text
        assert "[Excerpt 2]" in text


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


class TestGenerateReply:
    @patch("voicerag.retrieval.generation.Anthropic")
    def test_returns_reply_and_usage(self, mock_anthropic_cls: MagicMock) -> None:
        mock_anthropic_cls.return_value.messages.create.return_value = _claude_response(
            TextBlock(type="text", text=" Refunds are accepted within 30 days. ")
        )

        result = generate_reply("What is the refund policy?", [], CHUNKS)

        assert result["reply"] == "Refunds are accepted within 30 days."
        assert result["sources"] == CHUNKS
        assert result["model"] == "claude-test"
        assert result["usage"] == {"input_tokens": 120, "output_tokens": 18}
        kwargs = mock_anthropic_cls.return_value.messages.create.call_args.kwargs
        assert "voice assistant" in kwargs["system"]
        assert kwargs["messages"][-1]["role"] == "user"

    @patch("voicerag.retrieval.generation.Anthropic")
    def test_api_failure(self, mock_anthropic_cls: MagicMock) -> None:
        mock_anthropic_cls.return_value.messages.create.side_effect = RuntimeError("overloaded")
        with pytest.raises(CompletionRequestError, match="overloaded"):
            generate_reply("Hi", [], [])

    @patch("voicerag.retrieval.generation.Anthropic")
    def test_non_text_block(self, mock_anthropic_cls: MagicMock) -> None:
        mock_anthropic_cls.return_value.messages.create.return_value = _claude_response(
            SimpleNamespace(type="tool_use")
        )
        with pytest.raises(CompletionRequestError, match="no text"):
            generate_reply("Hi", [], [])

    @patch("voicerag.retrieval.generation.Anthropic")
    def test_empty_content(self, mock_anthropic_cls: MagicMock) -> None:
        mock_anthropic_cls.return_value.messages.create.return_value = _claude_response()
        with pytest.raises(CompletionRequestError):
            generate_reply("Hi", [], [])

    @patch("voicerag.retrieval.generation.generate_reply")
    @patch("voicerag.retrieval.generation.search_namespace")
    def test_answer_with_context(self, mock_search: MagicMock, mock_generate: MagicMock) -> None:
        mock_search.return_value = CHUNKS
        mock_generate.return_value = {"reply": "ok", "sources": CHUNKS}

        result = answer_with_context("What is the refund policy?", [], "manual.pdf")

        assert result["reply"] == "ok"
        mock_search.assert_called_once_with("What is the refund policy?", "manual.pdf")
        mock_generate.assert_called_once_with("What is the refund policy?", [], CHUNKS)


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------


class TestSearchNamespace:
    @patch("voicerag.retrieval.search.get_supabase_client")
    @patch("voicerag.retrieval.search.get_query_embedding", return_value=[0.1, 0.2])
    def test_scoped_to_namespace(self, _embed: MagicMock, mock_client_fn: MagicMock) -> None:
        foreign = {**CHUNKS[0], "namespace": "other.pdf"}
        rpc = mock_client_fn.return_value.rpc
        rpc.return_value.execute.return_value = SimpleNamespace(data=[CHUNKS[0], foreign])

        rows = search_namespace("refunds", "manual.pdf", match_count=3)

        assert rows == CHUNKS
        name, params = rpc.call_args.args
        assert name == "match_documents"
        assert params == {
            "query_embedding": [0.1, 0.2],
            "match_count": 3,
            "filter_namespace": "manual.pdf",
        }

    @patch("voicerag.retrieval.search.get_supabase_client")
    @patch("voicerag.retrieval.search.get_query_embedding", return_value=[0.1])
    def test_index_failure(self, _embed: MagicMock, mock_client_fn: MagicMock) -> None:
        mock_client_fn.return_value.rpc.side_effect = RuntimeError("function does not exist")
        with pytest.raises(CompletionRequestError, match="manual.pdf"):
            search_namespace("refunds", "manual.pdf")

    @patch("voicerag.retrieval.search.OpenAI")
    def test_embedding_failure(self, mock_openai_cls: MagicMock) -> None:
        mock_openai_cls.return_value.embeddings.create.side_effect = OpenAIError("bad key")
        with pytest.raises(CompletionRequestError, match="bad key"):
            search_namespace("refunds", "manual.pdf")


# ---------------------------------------------------------------------------
# Speech
# ---------------------------------------------------------------------------


class TestSynthesizeSpeech:
    @patch("voicerag.speech.synthesis.OpenAI")
    def test_returns_audio(self, mock_openai_cls: MagicMock) -> None:
        mock_openai_cls.return_value.audio.speech.create.return_value = SimpleNamespace(content=b"mp3")
        assert synthesize_speech("Hello there", voice="nova", audio_format="wav") == b"mp3"
        kwargs = mock_openai_cls.return_value.audio.speech.create.call_args.kwargs
        assert kwargs["input"] == "Hello there"
        assert kwargs["voice"] == "nova"
        assert kwargs["response_format"] == "wav"

    def test_blank_text(self) -> None:
        with pytest.raises(ValueError):
            synthesize_speech("   ")

    @patch("voicerag.speech.synthesis.OpenAI")
    def test_provider_error(self, mock_openai_cls: MagicMock) -> None:
        mock_openai_cls.return_value.audio.speech.create.side_effect = OpenAIError("quota exceeded")
        with pytest.raises(SynthesisRequestError, match="quota exceeded"):
            synthesize_speech("Hello")

    @patch("voicerag.speech.synthesis.OpenAI")
    def test_empty_audio(self, mock_openai_cls: MagicMock) -> None:
        mock_openai_cls.return_value.audio.speech.create.return_value = SimpleNamespace(content=b"")
        with pytest.raises(SynthesisRequestError, match="no audio"):
            synthesize_speech("Hello")

    def test_media_types(self) -> None:
        assert media_type_for("mp3") == "audio/mpeg"
        assert media_type_for("wav") == "audio/wav"
        assert media_type_for("unknown") == "application/octet-stream"


class TestTranscribeClip:
    @patch("voicerag.speech.transcribe.aai")
    def test_returns_text(self, mock_aai: MagicMock) -> None:
        mock_aai.Transcriber.return_value.transcribe.return_value = SimpleNamespace(
            status="completed", text=" What is the refund policy? ", error=None
        )
        assert transcribe_clip(b"RIFF") == "What is the refund policy?"

    @patch("voicerag.speech.transcribe.aai")
    def test_rejected_audio(self, mock_aai: MagicMock) -> None:
        mock_aai.Transcriber.return_value.transcribe.return_value = SimpleNamespace(
            status=mock_aai.TranscriptStatus.error, text=None, error="File does not appear to contain audio"
        )
        with pytest.raises(UnsupportedFormat, match="contain audio"):
            transcribe_clip(b"not audio")

    @patch("voicerag.speech.transcribe.aai")
    def test_service_unavailable(self, mock_aai: MagicMock) -> None:
        mock_aai.Transcriber.return_value.transcribe.side_effect = ConnectionError("dns failure")
        with pytest.raises(TranscriptionStreamError):
            transcribe_clip(b"RIFF")
