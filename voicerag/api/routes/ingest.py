"""Ingest endpoint: upload a document and index it under a namespace."""

from __future__ import annotations

import asyncio
from typing import Annotated

from fastapi import APIRouter, File, Form, HTTPException, UploadFile

from voicerag.api.models import IngestResponse
from voicerag.config import settings
from voicerag.errors import UnsupportedFormat, VoiceRagError
from voicerag.ingestion.pipeline import ingest_document, namespace_for
from voicerag.pipeline_config import ChunkingStrategy, PipelineConfig

router = APIRouter()


@router.post("/api/ingest", response_model=IngestResponse)
async def ingest(
    file: Annotated[UploadFile, File(...)],
    namespace: Annotated[str | None, Form()] = None,
    chunking_strategy: Annotated[str, Form()] = ChunkingStrategy.RECURSIVE.value,
) -> IngestResponse:
    """Store, chunk, embed and index an uploaded document.

    The namespace defaults to the uploaded file name. Responds with a
    success message only when every chunk was written; any failure leaves
    the document unprocessed and must be re-submitted in full.
    """
    raw = await file.read()
    if len(raw) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size is {settings.max_upload_bytes // (1024 * 1024)} MB.",
        )
    if not raw:
        raise HTTPException(status_code=422, detail="Uploaded file is empty.")

    try:
        filename = namespace_for(file.filename or "")
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    target = namespace or filename

    try:
        config = PipelineConfig.from_settings(chunking_strategy=chunking_strategy)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=f"Unknown chunking strategy: {chunking_strategy!r}") from exc

    try:
        # Synchronous SDK calls; run them off the event loop.
        result = await asyncio.to_thread(
            ingest_document,
            raw,
            filename,
            target,
            content_type=file.content_type,
            config=config,
        )
    except UnsupportedFormat as exc:
        raise HTTPException(status_code=415, detail=str(exc)) from exc
    except VoiceRagError as exc:
        raise HTTPException(status_code=502, detail=f"Ingestion failed: {exc}") from exc

    return IngestResponse(
        message="success",
        namespace=result.namespace,
        storage_path=result.storage_path,
        num_chunks=result.num_chunks,
        states=result.states,
    )
