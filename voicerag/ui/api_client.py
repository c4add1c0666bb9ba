"""HTTP client wrapper for the Voice RAG FastAPI backend."""

from __future__ import annotations

import os
from collections.abc import Sequence
from typing import Any

import httpx
import streamlit as st

from voicerag.conversation.models import Turn
from voicerag.errors import CompletionRequestError, SynthesisRequestError

API_URL = os.getenv("API_URL", "http://localhost:8000")


def check_health() -> bool:
    """Return True if the API server responds to /health."""
    try:
        r = httpx.get(f"{API_URL}/health", timeout=5.0)
        return r.status_code == 200
    except httpx.ConnectError:
        return False


def upload_document(
    file_content: bytes,
    filename: str,
    namespace: str | None = None,
    content_type: str | None = None,
) -> dict:  # type: ignore[type-arg]
    """Upload a document to the ingestion endpoint."""
    try:
        data = {"namespace": namespace} if namespace else {}
        r = httpx.post(
            f"{API_URL}/api/ingest",
            files={"file": (filename, file_content, content_type or "application/octet-stream")},
            data=data,
            timeout=120.0,
        )
        r.raise_for_status()
        return r.json()  # type: ignore[no-any-return]
    except httpx.HTTPStatusError as e:
        st.error(f"Upload failed: {_detail(e.response)}")
        return {}
    except httpx.HTTPError as e:
        st.error(f"Upload failed: {e}")
        return {}


def chat(utterance: str, history: Sequence[Turn], namespace: str) -> dict:  # type: ignore[type-arg]
    """Ask the chat endpoint for a grounded reply."""
    try:
        r = httpx.post(f"{API_URL}/api/chat", json=_chat_payload(utterance, history, namespace), timeout=60.0)
        r.raise_for_status()
        return r.json()  # type: ignore[no-any-return]
    except httpx.HTTPError as e:
        st.error(f"Chat failed: {e}")
        return {}


def synthesize(text: str) -> bytes:
    """Fetch synthesized speech for *text*; empty bytes on failure."""
    try:
        r = httpx.post(f"{API_URL}/api/speech", json={"text": text}, timeout=60.0)
        r.raise_for_status()
        return r.content
    except httpx.HTTPError as e:
        st.error(f"Speech synthesis failed: {e}")
        return b""


def transcribe(audio: bytes, filename: str = "recording.wav") -> str:
    """Transcribe a recorded clip; empty string on failure."""
    try:
        r = httpx.post(
            f"{API_URL}/api/transcribe",
            files={"file": (filename, audio)},
            timeout=120.0,
        )
        r.raise_for_status()
        return str(r.json().get("text", ""))
    except httpx.HTTPStatusError as e:
        st.error(f"Transcription failed: {_detail(e.response)}")
        return ""
    except httpx.HTTPError as e:
        st.error(f"Transcription failed: {e}")
        return ""


def _chat_payload(utterance: str, history: Sequence[Turn], namespace: str) -> dict[str, Any]:
    return {
        "utterance": utterance,
        "history": [t.to_dict() for t in history],
        "namespace": namespace,
    }


def _detail(response: httpx.Response) -> str:
    try:
        return str(response.json().get("detail", response.text))
    except ValueError:
        return response.text


class HttpCompletionClient:
    """Completion client that calls the backend's /api/chat endpoint."""

    def __init__(self, base_url: str = API_URL, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.base_url = base_url
        self.transport = transport

    async def complete(self, utterance: str, history: Sequence[Turn], namespace: str) -> str:
        try:
            async with httpx.AsyncClient(base_url=self.base_url, transport=self.transport, timeout=60.0) as client:
                r = await client.post("/api/chat", json=_chat_payload(utterance, history, namespace))
                r.raise_for_status()
            body = r.json()
        except httpx.HTTPStatusError as e:
            raise CompletionRequestError(f"Completion failed: {_detail(e.response)}") from e
        except httpx.HTTPError as e:
            raise CompletionRequestError(f"Completion failed: {e}") from e
        except ValueError as e:
            raise CompletionRequestError(f"Completion failed: malformed response: {e}") from e
        return str(body.get("reply", ""))


class HttpSpeechClient:
    """Speech client that calls the backend's /api/speech endpoint."""

    def __init__(self, base_url: str = API_URL, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.base_url = base_url
        self.transport = transport

    async def synthesize(self, text: str) -> bytes:
        try:
            async with httpx.AsyncClient(base_url=self.base_url, transport=self.transport, timeout=60.0) as client:
                r = await client.post("/api/speech", json={"text": text})
                r.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SynthesisRequestError(f"Speech synthesis failed: {_detail(e.response)}") from e
        except httpx.HTTPError as e:
            raise SynthesisRequestError(f"Speech synthesis failed: {e}") from e
        return r.content
