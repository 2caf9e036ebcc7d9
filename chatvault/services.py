"""Lazily-initialized, process-wide store clients.

The database connection and blob store client are expensive to set up and
shared by every request. ``ServiceContainer.ensure_initialized`` builds them
exactly once: concurrent first callers queue on one lock and all observe the
same fully-initialized state.
"""

from __future__ import annotations

import asyncio
import logging

from chatvault.config import Settings, get_settings
from chatvault.db.client import DatabaseClient
from chatvault.db.metrics import MetricsRepository, SQLiteMetricsRepository
from chatvault.db.repository import ConversationRepository, SQLiteConversationRepository
from chatvault.errors import AlreadyInitializedError
from chatvault.ingestion.service import IngestionService
from chatvault.parsers import ParserDiscovery, ParserRegistry, get_global_registry
from chatvault.storage.blob import BlobStore, create_blob_store

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Holds the store clients and services built from them."""

    def __init__(
        self,
        settings: Settings | None = None,
        db: DatabaseClient | None = None,
        blob_store: BlobStore | None = None,
        registry: ParserRegistry | None = None,
    ):
        self.settings = settings or get_settings()
        self.db = db or DatabaseClient()
        self.blob_store = blob_store
        self.registry = registry
        self.conversations: ConversationRepository | None = None
        self.metrics: MetricsRepository | None = None
        self.ingestion: IngestionService | None = None
        self.initialization_count = 0
        self._lock = asyncio.Lock()
        self._ready = False

    @property
    def is_ready(self) -> bool:
        return self._ready

    async def ensure_initialized(self) -> None:
        """Initialize services if not already initialized."""
        if self._ready:
            return
        async with self._lock:
            if self._ready:
                return
            try:
                await self.db.initialize(self.settings.database_path)
            except AlreadyInitializedError:
                # Another initializer got there first; the client is usable
                logger.debug("Database client already initialized")

            if self.blob_store is None:
                self.blob_store = create_blob_store(self.settings)
            if self.registry is None:
                self.registry = get_global_registry()
                ParserDiscovery.discover_and_register()

            self.conversations = SQLiteConversationRepository(self.db)
            self.metrics = SQLiteMetricsRepository(self.db)
            self.ingestion = IngestionService(
                blob_store=self.blob_store,
                conversations=self.conversations,
                metrics=self.metrics,
                registry=self.registry,
                base_url=self.settings.locator_base,
            )
            self.initialization_count += 1
            self._ready = True
            logger.info("Services initialized (formats: %s)", ", ".join(self.registry.list_formats()))

    async def close(self) -> None:
        await self.db.close()
        self._ready = False


# Global container instance
_container: ServiceContainer | None = None


def get_container() -> ServiceContainer:
    """Get the process-wide container (singleton)."""
    global _container
    if _container is None:
        _container = ServiceContainer()
    return _container


def set_container(container: ServiceContainer | None) -> None:
    """Set a custom container (useful for testing)."""
    global _container
    _container = container
