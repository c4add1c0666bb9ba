import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from voicerag.api.routes.chat import router as chat_router
from voicerag.api.routes.ingest import router as ingest_router
from voicerag.api.routes.speech import router as speech_router
from voicerag.api.routes.voice import router as voice_router
from voicerag.config import settings

app = FastAPI(
    title="Voice RAG Assistant",
    description="Talk to an uploaded document: ingestion, grounded answers and speech",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:8501",
    ],
    allow_origin_regex=r"http://localhost:\d+",
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ingest_router)
app.include_router(chat_router)
app.include_router(speech_router)
app.include_router(voice_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
