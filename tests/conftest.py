"""Shared pytest fixtures for forkpoint tests."""

import pytest
from httpx import ASGITransport, AsyncClient

from forkpoint.config import Settings
from forkpoint.conversations.fork import ForkPointResolver
from forkpoint.conversations.index import MessageIndex
from forkpoint.conversations.registry import ThreadRegistry
from forkpoint.conversations.router import get_conversation_service
from forkpoint.conversations.service import ConversationService
from forkpoint.conversations.store import ConversationStore
from forkpoint.db.connection import Database
from forkpoint.main import app
from forkpoint.transcripts.router import get_transcript_service
from forkpoint.transcripts.service import TranscriptService


@pytest.fixture
async def db():
    """In-memory database for tests."""
    database = await Database.connect(":memory:")
    yield database
    await database.close()


@pytest.fixture
async def store(db):
    return ConversationStore(db)


@pytest.fixture
async def registry(store):
    return ThreadRegistry(store)


@pytest.fixture
async def index(store):
    return MessageIndex(store)


@pytest.fixture
async def resolver(index):
    return ForkPointResolver(index)


@pytest.fixture
def projects_dir(tmp_path):
    """Stand-in for ~/.claude/projects."""
    path = tmp_path / "projects"
    path.mkdir()
    return path


@pytest.fixture
def settings(projects_dir):
    return Settings(db_path=":memory:", projects_dir=projects_dir, poll_interval_ms=10)


@pytest.fixture
async def client(db, settings):
    """Async test client with in-memory DB and temp projects dir wired into the app."""
    conversation_service = ConversationService(db)
    transcript_service = TranscriptService(settings)
    app.dependency_overrides[get_conversation_service] = lambda: conversation_service
    app.dependency_overrides[get_transcript_service] = lambda: transcript_service
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
    app.dependency_overrides.clear()
