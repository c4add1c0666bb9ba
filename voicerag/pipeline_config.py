"""Pipeline configuration: chunking strategy enum and PipelineConfig dataclass."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from voicerag.config import Settings, settings


class ChunkingStrategy(str, Enum):
    """Available chunking strategies for document ingestion."""

    FIXED = "fixed"
    RECURSIVE = "recursive"


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable configuration for the ingestion pipeline.

    Defaults mirror the project's current behaviour (boundary-aware
    chunking, 1000-character windows with 200 characters of overlap).
    """

    chunking_strategy: ChunkingStrategy = ChunkingStrategy.RECURSIVE
    chunk_size: int = 1000
    chunk_overlap: int = 200

    @classmethod
    def from_settings(
        cls,
        source: Settings | None = None,
        chunking_strategy: str | ChunkingStrategy = ChunkingStrategy.RECURSIVE,
    ) -> PipelineConfig:
        """Build a config from application settings."""
        source = source or settings
        return cls(
            chunking_strategy=ChunkingStrategy(chunking_strategy),
            chunk_size=source.chunk_size,
            chunk_overlap=source.chunk_overlap,
        )
