from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file.
    """

    # API Keys
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    assemblyai_api_key: str = ""  # Optional; voice input is disabled without it

    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    storage_bucket: str = "rag-ai-docs"
    chunks_table: str = "documents"
    match_function: str = "match_documents"

    # App config
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    llm_model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 1024
    match_count: int = 5

    # Chunking, in characters
    chunk_size: int = 1000
    chunk_overlap: int = 200

    # Speech
    tts_model: str = "tts-1"
    tts_voice: str = "alloy"
    tts_format: str = "mp3"
    transcription_sample_rate: int = 16000
    keep_alive_interval: float = 10.0
    # Longest wait for the client to report a reply finished playing
    playback_timeout: float = 300.0

    # Upper bound on every call to an external service, in seconds
    request_timeout: float = 60.0
    max_upload_bytes: int = 50 * 1024 * 1024

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        # If .env is missing or unreadable, build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]


settings = get_settings()
