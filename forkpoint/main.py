"""Forkpoint FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from forkpoint.config import Settings
from forkpoint.conversations.router import get_conversation_service
from forkpoint.conversations.router import router as conversations_router
from forkpoint.conversations.service import ConversationService
from forkpoint.db.connection import Database
from forkpoint.transcripts.router import get_transcript_service
from forkpoint.transcripts.router import router as transcripts_router
from forkpoint.transcripts.service import TranscriptService

logger = logging.getLogger(__name__)

# Settings are read at import so CORS origins can be applied below;
# lifespan re-reads them after .env is loaded.
load_dotenv()
settings = Settings.from_env()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage database lifecycle and service wiring."""
    load_dotenv()
    current = Settings.from_env()
    logging.getLogger("forkpoint").setLevel(current.log_level)

    db = await Database.connect(current.db_path)

    conversation_service = ConversationService(db, current.default_working_dir)
    app.dependency_overrides[get_conversation_service] = lambda: conversation_service

    transcript_service = TranscriptService(current)
    app.dependency_overrides[get_transcript_service] = lambda: transcript_service

    app.state.db = db
    app.state.settings = current
    logger.info("Forkpoint started (db=%s, projects=%s)", current.db_path, current.projects_dir)
    yield

    await db.close()


app = FastAPI(
    title="Forkpoint",
    description=(
        "Transcript event stream and point-in-time fork resolution"
        " for chat-driven coding agents"
    ),
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(conversations_router)
app.include_router(transcripts_router)


@app.get("/api/health")
async def health() -> dict:
    return {"status": "ok", "version": "0.1.0"}
