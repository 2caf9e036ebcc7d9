from datetime import datetime, timezone
from itertools import count

import pytest
from fastapi.testclient import TestClient

from chatvault.api.main import create_app
from chatvault.config import Settings
from chatvault.db.client import DatabaseClient
from chatvault.db.metrics import SQLiteMetricsRepository
from chatvault.db.repository import SQLiteConversationRepository
from chatvault.ingestion.service import IngestionService
from chatvault.parsers.chatgpt import ChatGPTParser
from chatvault.parsers.claude import ClaudeParser
from chatvault.parsers.registry import ParserRegistry
from chatvault.services import ServiceContainer
from chatvault.storage.blob import LocalBlobStore

BASE_URL = "http://test.local"
FIXED_NOW = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

CHATGPT_HTML = """
<html><body>
  <main>
    <div data-message-author-role="user"><div>  How do I reverse a list?  </div></div>
    <div data-message-author-role="assistant"><p>Use <code>reversed()</code> or slicing.</p></div>
    <div data-message-author-role="user">   </div>
    <div data-message-author-role="assistant">Anything else?</div>
  </main>
</body></html>
"""


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        database_path=tmp_path / "chatvault.db",
        blob_dir=tmp_path / "blobs",
        public_base_url=BASE_URL + "/",
    )


@pytest.fixture
def registry():
    registry = ParserRegistry()
    registry.register(ChatGPTParser)
    registry.register(ClaudeParser)
    return registry


@pytest.fixture
async def db(tmp_path):
    client = DatabaseClient()
    await client.initialize(tmp_path / "chatvault.db")
    yield client
    await client.close()


@pytest.fixture
def blob_store(tmp_path):
    return LocalBlobStore(tmp_path / "blobs")


@pytest.fixture
def conversations(db):
    return SQLiteConversationRepository(db)


@pytest.fixture
def metrics(db):
    return SQLiteMetricsRepository(db)


@pytest.fixture
def ticking_timer():
    """perf_counter stand-in advancing 25ms per call."""
    ticks = count()
    return lambda: next(ticks) * 0.025


@pytest.fixture
def ingestion(blob_store, conversations, metrics, registry, ticking_timer):
    return IngestionService(
        blob_store=blob_store,
        conversations=conversations,
        metrics=metrics,
        registry=registry,
        base_url=BASE_URL,
        clock=lambda: FIXED_NOW,
        timer=ticking_timer,
    )


@pytest.fixture
def container(settings, registry):
    return ServiceContainer(settings=settings, registry=registry)


@pytest.fixture
def client(container):
    with TestClient(create_app(container)) as test_client:
        yield test_client
