"""Repository for per-attempt ingestion metrics."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

import aiosqlite

from chatvault.db.client import DatabaseClient, to_db_timestamp, from_db_timestamp
from chatvault.errors import StorageError
from chatvault.models import MetricRecord, MetricStatus


class MetricsRepository(ABC):
    """Abstract repository interface for ingestion metrics."""

    @abstractmethod
    async def insert(self, metric: MetricRecord) -> MetricRecord:
        """Insert a metric row and return it with its assigned id."""
        pass

    @abstractmethod
    async def finalize(
        self,
        metric_id: int,
        status: MetricStatus,
        scrape_ended_at: datetime,
        duration_ms: int,
        conversation_id: str | None = None,
        error_message: str | None = None,
    ) -> MetricRecord:
        """Close out a pending metric with its terminal outcome."""
        pass

    @abstractmethod
    async def list_for_conversation(self, conversation_id: str) -> list[MetricRecord]:
        """Metrics recorded for one conversation."""
        pass


def _row_to_metric(row: aiosqlite.Row) -> MetricRecord:
    return MetricRecord(
        id=row["id"],
        conversation_id=row["conversation_id"],
        scrape_started_at=from_db_timestamp(row["scrape_started_at"]),
        scrape_ended_at=from_db_timestamp(row["scrape_ended_at"]),
        duration_ms=row["duration_ms"],
        status=MetricStatus(row["status"]),
        error_message=row["error_message"],
    )


class SQLiteMetricsRepository(MetricsRepository):
    """Metrics backed by the ``conversation_metrics`` table."""

    def __init__(self, db: DatabaseClient):
        self.db = db

    async def _get(self, metric_id: int) -> MetricRecord:
        row = await self.db.fetch_one(
            "SELECT * FROM conversation_metrics WHERE id = ?", (metric_id,)
        )
        if row is None:
            raise StorageError(f"Metric {metric_id} not found")
        return _row_to_metric(row)

    async def insert(self, metric: MetricRecord) -> MetricRecord:
        if metric.error_message and metric.status is not MetricStatus.FAILED:
            raise ValueError("error_message is only allowed on failed metrics")
        metric_id = await self.db.execute_write(
            """
            INSERT INTO conversation_metrics
                (conversation_id, scrape_started_at, scrape_ended_at,
                 duration_ms, status, error_message)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                metric.conversation_id,
                to_db_timestamp(metric.scrape_started_at),
                to_db_timestamp(metric.scrape_ended_at),
                metric.duration_ms,
                metric.status.value,
                metric.error_message,
            ),
        )
        return await self._get(metric_id)

    async def finalize(
        self,
        metric_id: int,
        status: MetricStatus,
        scrape_ended_at: datetime,
        duration_ms: int,
        conversation_id: str | None = None,
        error_message: str | None = None,
    ) -> MetricRecord:
        if status is MetricStatus.PENDING:
            raise ValueError("A metric cannot be finalized as pending")
        if status is MetricStatus.SUCCESS:
            error_message = None
        await self.db.execute_write(
            """
            UPDATE conversation_metrics
            SET status = ?,
                scrape_ended_at = ?,
                duration_ms = ?,
                conversation_id = COALESCE(?, conversation_id),
                error_message = ?
            WHERE id = ?
            """,
            (
                status.value,
                to_db_timestamp(scrape_ended_at),
                max(0, duration_ms),
                conversation_id,
                error_message,
                metric_id,
            ),
        )
        return await self._get(metric_id)

    async def list_for_conversation(self, conversation_id: str) -> list[MetricRecord]:
        rows = await self.db.fetch_all(
            "SELECT * FROM conversation_metrics WHERE conversation_id = ? ORDER BY id",
            (conversation_id,),
        )
        return [_row_to_metric(row) for row in rows]
