"""Voice RAG Assistant -- Streamlit UI.

Two pages: upload a document into its own namespace, then talk to it by
typing or recording a question. Replies are spoken back.
"""

from __future__ import annotations

import asyncio
import hashlib

import streamlit as st

from voicerag.conversation.models import Conversation
from voicerag.conversation.orchestrator import ConversationOrchestrator
from voicerag.ingestion.parsers import SUPPORTED_EXTENSIONS
from voicerag.ui.api_client import (
    HttpCompletionClient,
    HttpSpeechClient,
    check_health,
    transcribe,
    upload_document,
)


class StreamlitPlayer:
    """Hands reply audio to the page; Streamlit plays it after the rerun."""

    def __init__(self) -> None:
        self.audio: bytes | None = None

    async def play(self, audio: bytes) -> None:
        self.audio = audio


def run_turn(utterance: str, namespace: str) -> None:
    """Run one conversational cycle against the backend and store the result."""
    conversation = Conversation.from_history(st.session_state.history)
    player = StreamlitPlayer()
    notices: list[str] = []

    async def notify(message: str) -> None:
        notices.append(message)

    orchestrator = ConversationOrchestrator(
        namespace,
        HttpCompletionClient(),
        HttpSpeechClient(),
        player,
        conversation=conversation,
        notify=notify,
    )
    asyncio.run(orchestrator.handle_utterance(utterance))

    st.session_state.history = conversation.as_history()
    st.session_state.reply_audio = player.audio
    st.session_state.notices = notices


# ---------------------------------------------------------------------------
# Page config (must be first Streamlit call)
# ---------------------------------------------------------------------------
st.set_page_config(page_title="Voice RAG Assistant", layout="wide")

st.session_state.setdefault("namespace", "")
st.session_state.setdefault("history", [])
st.session_state.setdefault("reply_audio", None)
st.session_state.setdefault("notices", [])
st.session_state.setdefault("last_clip", None)

# ---------------------------------------------------------------------------
# Sidebar -- navigation + API status
# ---------------------------------------------------------------------------
with st.sidebar:
    st.title("Voice RAG Assistant")
    st.markdown("---")

    page = st.radio(
        "Navigate",
        ["Upload Document", "Chat"],
        label_visibility="collapsed",
    )

    st.markdown("---")

    api_healthy = check_health()
    if api_healthy:
        st.markdown(":green_circle: API connected")
    else:
        st.markdown(":red_circle: API unreachable")

    if st.session_state.namespace:
        st.caption(f"Document: {st.session_state.namespace}")

# ---------------------------------------------------------------------------
# Page: Upload Document
# ---------------------------------------------------------------------------
if page == "Upload Document":
    st.header("Upload Document")
    st.write("Upload a document to talk to. It is indexed under its file name.")

    uploaded_file = st.file_uploader(
        "Choose a file",
        type=SUPPORTED_EXTENSIONS,
    )

    if st.button("Upload", disabled=uploaded_file is None):
        if not api_healthy:
            st.error("Cannot upload: the API server is not reachable.")
        elif uploaded_file is not None:
            with st.status("Processing...", expanded=True) as status:
                result = upload_document(
                    file_content=uploaded_file.getvalue(),
                    filename=uploaded_file.name,
                    content_type=uploaded_file.type,
                )
                if result:
                    status.update(label="Processed", state="complete")
                else:
                    status.update(label="Not processed", state="error")
            if result:
                st.session_state.namespace = result["namespace"]
                st.session_state.history = []
                st.session_state.reply_audio = None
                st.success("Document processed. Open the Chat page to start talking.")
                st.write(" -> ".join(result.get("states", [])))
                st.write(f"**Chunks indexed:** {result.get('num_chunks', 0)}")
            # Error case is already handled inside upload_document via st.error

# ---------------------------------------------------------------------------
# Page: Chat
# ---------------------------------------------------------------------------
elif page == "Chat":
    st.header("Chat")

    namespace = st.text_input("Document", value=st.session_state.namespace)
    if namespace != st.session_state.namespace:
        st.session_state.namespace = namespace
        st.session_state.history = []
        st.session_state.reply_audio = None

    if not namespace:
        st.info("Upload a document first, or enter the name of one already uploaded.")
    elif not api_healthy:
        st.warning("The API server is not reachable.")
    else:
        clip = st.audio_input("Ask with your voice")
        question = st.chat_input("Or type a question")

        utterance = ""
        if question:
            utterance = question
        elif clip is not None:
            raw = clip.getvalue()
            digest = hashlib.sha256(raw).hexdigest()
            # Streamlit keeps the last recording across reruns
            if digest != st.session_state.last_clip:
                st.session_state.last_clip = digest
                with st.spinner("Transcribing..."):
                    utterance = transcribe(raw)

        if utterance.strip():
            with st.spinner("Thinking..."):
                run_turn(utterance, namespace)

        for turn in st.session_state.history:
            with st.chat_message(turn["role"]):
                st.markdown(turn["content"])

        for notice in st.session_state.notices:
            st.error(notice)

        if st.session_state.reply_audio:
            st.audio(st.session_state.reply_audio, format="audio/mpeg", autoplay=True)
            st.session_state.reply_audio = None
