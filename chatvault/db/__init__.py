"""Database layer for the conversation index and ingestion metrics."""

from .client import DatabaseClient
from .repository import (
    ConversationRepository,
    SQLiteConversationRepository,
)
from .metrics import MetricsRepository, SQLiteMetricsRepository

__all__ = [
    "DatabaseClient",
    "ConversationRepository",
    "SQLiteConversationRepository",
    "MetricsRepository",
    "SQLiteMetricsRepository",
]
