"""Tests for the UI's HTTP client wrapper (httpx mocked, no server)."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import MagicMock, patch

import httpx
import pytest

from voicerag.conversation.models import Role, Turn
from voicerag.errors import CompletionRequestError, SynthesisRequestError
from voicerag.ui.api_client import (
    HttpCompletionClient,
    HttpSpeechClient,
    check_health,
    upload_document,
)


class TestSyncHelpers:
    @patch("voicerag.ui.api_client.httpx.get")
    def test_check_health(self, mock_get: MagicMock) -> None:
        mock_get.return_value = MagicMock(status_code=200)
        assert check_health() is True

    @patch("voicerag.ui.api_client.httpx.get", side_effect=httpx.ConnectError("refused"))
    def test_check_health_unreachable(self, _mock: MagicMock) -> None:
        assert check_health() is False

    @patch("voicerag.ui.api_client.st")
    @patch("voicerag.ui.api_client.httpx.post", side_effect=httpx.ConnectError("refused"))
    def test_upload_failure_reported(self, _mock_post: MagicMock, mock_st: MagicMock) -> None:
        assert upload_document(b"%PDF", "manual.pdf") == {}
        mock_st.error.assert_called_once()

    @patch("voicerag.ui.api_client.httpx.post")
    def test_upload_sends_file(self, mock_post: MagicMock) -> None:
        mock_post.return_value = MagicMock(json=lambda: {"message": "success"})
        assert upload_document(b"%PDF", "manual.pdf", content_type="application/pdf") == {"message": "success"}
        kwargs = mock_post.call_args.kwargs
        assert kwargs["files"] == {"file": ("manual.pdf", b"%PDF", "application/pdf")}
        assert kwargs["data"] == {}


class TestHttpCompletionClient:
    def test_posts_history_and_returns_reply(self) -> None:
        seen: dict[str, object] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"reply": "Thirty days.", "sources": []})

        completion = HttpCompletionClient("http://api.test", transport=httpx.MockTransport(handler))
        history = [Turn(Role.USER, "Hi"), Turn(Role.ASSISTANT, "Hello.")]

        reply = asyncio.run(completion.complete("What is the refund policy?", history, "manual.pdf"))

        assert reply == "Thirty days."
        assert seen["path"] == "/api/chat"
        body = seen["body"]
        assert isinstance(body, dict)
        assert body["namespace"] == "manual.pdf"
        assert [h["role"] for h in body["history"]] == ["user", "assistant"]

    def test_upstream_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, json={"detail": "Completion request failed: overloaded"})

        completion = HttpCompletionClient("http://api.test", transport=httpx.MockTransport(handler))
        with pytest.raises(CompletionRequestError, match="overloaded"):
            asyncio.run(completion.complete("Hi", [], "manual.pdf"))

    def test_non_json_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>proxy error</html>", headers={"content-type": "text/html"})

        completion = HttpCompletionClient("http://api.test", transport=httpx.MockTransport(handler))
        with pytest.raises(CompletionRequestError, match="malformed response"):
            asyncio.run(completion.complete("Hi", [], "manual.pdf"))


class TestHttpSpeechClient:
    def test_returns_audio(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert json.loads(request.content) == {"text": "Hello"}
            return httpx.Response(200, content=b"ID3audio", headers={"content-type": "audio/mpeg"})

        speech = HttpSpeechClient("http://api.test", transport=httpx.MockTransport(handler))
        assert asyncio.run(speech.synthesize("Hello")) == b"ID3audio"

    def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        speech = HttpSpeechClient("http://api.test", transport=httpx.MockTransport(handler))
        with pytest.raises(SynthesisRequestError, match="refused"):
            asyncio.run(speech.synthesize("Hello"))
