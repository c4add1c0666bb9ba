"""Ingest local documents into the system via the ingestion pipeline."""

import argparse
import mimetypes
from pathlib import Path

from voicerag.errors import VoiceRagError
from voicerag.ingestion.pipeline import ingest_document, namespace_for
from voicerag.ingestion.storage import get_supabase_client
from voicerag.pipeline_config import ChunkingStrategy, PipelineConfig


def ingest_documents(
    paths: list[str],
    namespace: str | None = None,
    chunking_strategy: str = ChunkingStrategy.RECURSIVE.value,
) -> int:
    """Ingest each file into its own namespace (or a shared one).

    Returns the number of files that failed.
    """
    files = [Path(p) for p in paths]
    config = PipelineConfig.from_settings(chunking_strategy=ChunkingStrategy(chunking_strategy))
    client = get_supabase_client()

    print(f"Ingesting {len(files)} documents with {config.chunking_strategy.value} chunking...")

    loaded = 0
    errors = 0
    for i, filepath in enumerate(files):
        if not filepath.is_file():
            errors += 1
            print(f"  [{i + 1}] SKIP {filepath} -- not a file")
            continue
        try:
            filename = namespace_for(filepath.name)
            content_type, _ = mimetypes.guess_type(filepath.name)
            result = ingest_document(
                filepath.read_bytes(),
                filename,
                namespace or filename,
                content_type=content_type,
                client=client,
                config=config,
            )
        except (VoiceRagError, ValueError) as e:
            errors += 1
            print(f"  [{i + 1}] ERROR {filepath.name}: {e}")
            continue

        loaded += 1
        print(
            f"  [{i + 1}/{len(files)}] Loaded {filepath.name} into {result.namespace!r} "
            f"-- {result.num_chunks} chunks"
        )

    print(f"\nDone! Loaded {loaded} documents, {errors} errors.")
    return errors


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("files", nargs="+", help="PDF, DOCX or text files to ingest")
    parser.add_argument("--namespace", default=None, help="Shared namespace (default: per-file name)")
    parser.add_argument(
        "--strategy",
        default=ChunkingStrategy.RECURSIVE.value,
        choices=[s.value for s in ChunkingStrategy],
    )
    args = parser.parse_args()
    raise SystemExit(1 if ingest_documents(args.files, args.namespace, args.strategy) else 0)
