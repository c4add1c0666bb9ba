"""Error kinds raised at external-service boundaries.

Each kind records whether it is network-class (``retryable``). Nothing in
the project retries automatically; the flag exists so a caller adding a
retry policy can decide per kind. Parse and format errors are never
retryable.
"""

from __future__ import annotations


class VoiceRagError(Exception):
    """Base class for all errors surfaced to the user."""

    retryable: bool = False


class UnsupportedFormat(VoiceRagError):
    """The uploaded file could not be parsed into text."""


class StorageWriteError(VoiceRagError):
    """Persisting the raw uploaded file failed."""

    retryable = True


class EmbeddingProviderError(VoiceRagError):
    """The embeddings provider failed or returned an unusable response."""

    retryable = True


class IndexWriteError(VoiceRagError):
    """Writing vectors into the index failed.

    ``written`` is the number of rows that landed before the failure; the
    write is not atomic across batches.
    """

    retryable = True

    def __init__(self, message: str, written: int = 0) -> None:
        super().__init__(message)
        self.written = written


class TranscriptionStreamError(VoiceRagError):
    """The live transcription connection failed or dropped."""

    retryable = True


class CompletionRequestError(VoiceRagError):
    """Retrieval or completion for a conversational turn failed."""

    retryable = True


class SynthesisRequestError(VoiceRagError):
    """Speech synthesis for a reply failed."""

    retryable = True
