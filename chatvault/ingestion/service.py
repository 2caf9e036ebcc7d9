"""Ingestion Service - Parses and persists captured conversations.

This service runs one ingestion attempt through four stages, strictly in
order:
- Parse: dispatch to the format parser, or pass structured input through
- Blob write: store the content under a fresh conversation id
- Index write: insert the conversation row pointing at the blob
- Metrics: close out the attempt's timing/outcome row

A ``pending`` metric row is opened before parsing so failed attempts are
recorded too. A failure at any stage aborts the remaining stages; nothing
already written is rolled back (see ``chatvault.ingestion.reconcile`` for
orphaned blobs).

Usage:
    service = IngestionService(blob_store, conversations, metrics, registry, base_url)
    outcome = await service.ingest(html, model="ChatGPT")
"""

from __future__ import annotations

import dataclasses
import logging
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable

import aiofiles

from chatvault.db.metrics import MetricsRepository
from chatvault.db.repository import ConversationRepository
from chatvault.errors import (
    ChatVaultError,
    IngestionError,
    InputValidationError,
    ParsingError,
    StorageError,
)
from chatvault.models import (
    Conversation,
    ConversationRecord,
    IngestionOutcome,
    IngestionResult,
    MetricRecord,
    MetricStatus,
    utcnow,
)
from chatvault.parsers.registry import ParserRegistry
from chatvault.storage.blob import BlobStore

logger = logging.getLogger(__name__)


def decode_payload(payload: str | bytes) -> tuple[str, int]:
    """Return the payload as text together with its original byte length.

    Raises:
        InputValidationError: bytes are not valid UTF-8
    """
    if isinstance(payload, bytes):
        try:
            return payload.decode("utf-8"), len(payload)
        except UnicodeDecodeError as e:
            raise InputValidationError(f"Payload is not valid UTF-8: {e.reason} at byte {e.start}") from e
    return payload, len(payload.encode("utf-8"))


class IngestionService:
    """Orchestrates parse -> blob -> index -> metrics for one submission."""

    def __init__(
        self,
        blob_store: BlobStore,
        conversations: ConversationRepository,
        metrics: MetricsRepository,
        registry: ParserRegistry,
        base_url: str,
        clock: Callable[[], datetime] = utcnow,
        timer: Callable[[], float] = time.perf_counter,
    ):
        self.blob_store = blob_store
        self.conversations = conversations
        self.metrics = metrics
        self.registry = registry
        self.base_url = base_url.rstrip("/")
        self._clock = clock
        self._timer = timer

    def locator_for(self, conversation_id: str) -> str:
        """Stable URL for an ingested conversation."""
        return f"{self.base_url}/conversation/{conversation_id}"

    async def ingest(
        self,
        payload: str | bytes,
        model: str,
        structured: bool = False,
        received_at: datetime | None = None,
        received_perf: float | None = None,
    ) -> IngestionOutcome:
        """Ingest one conversation.

        Args:
            payload: Raw markup (or pre-structured content)
            model: Format/assistant label, used for parser lookup
            structured: Skip parsing and store the payload verbatim
            received_at: Wall-clock time the request was received
            received_perf: Timer reading at request receipt, for duration_ms

        Returns:
            IngestionOutcome with the persisted record and its locator

        Raises:
            InputValidationError: Payload is not valid UTF-8
            ParsingError: Unknown format or unparsable markup
            StorageError: Blob, index, or metrics write failed
        """
        text, source_bytes = decode_payload(payload)
        scrape_started_at = received_at or self._clock()
        perf_start = received_perf if received_perf is not None else self._timer()

        try:
            pending = await self.metrics.insert(
                MetricRecord(conversation_id=None, scrape_started_at=scrape_started_at)
            )
        except IngestionError:
            raise
        except Exception as e:
            logger.error("Could not open metric for ingestion attempt: %s", e)
            raise StorageError(f"metrics stage failed: {e}") from e

        stage = "parse"
        record: ConversationRecord | None = None
        try:
            conversation = self._parse(text, source_bytes, model, structured)

            stage = "blob"
            conversation_id = str(uuid.uuid4())
            content_key = await self.blob_store.store(conversation_id, conversation.content)

            stage = "index"
            record = await self.conversations.insert(ConversationRecord(
                id=conversation_id,
                model=conversation.model,
                scraped_at=conversation.scraped_at,
                source_html_bytes=conversation.source_html_bytes,
                views=0,
                content_key=content_key,
            ))

            stage = "metrics"
            duration_ms = self._elapsed_ms(perf_start)
            await self.metrics.finalize(
                pending.id,
                MetricStatus.SUCCESS,
                scrape_ended_at=self._clock(),
                duration_ms=duration_ms,
                conversation_id=record.id,
            )
        except Exception as e:
            logger.error("Ingestion failed at %s stage: %s", stage, e)
            await self._record_failure(pending, e, record, perf_start)
            if isinstance(e, IngestionError):
                raise
            raise StorageError(f"{stage} stage failed: {e}") from e

        logger.info(
            "Conversation %s processed successfully in %d ms",
            record.id,
            duration_ms,
            extra={"conversation_id": record.id, "duration_ms": duration_ms, "model": record.model},
        )
        return IngestionOutcome(record=record, url=self.locator_for(record.id), duration_ms=duration_ms)

    def _parse(self, text: str, source_bytes: int, model: str, structured: bool) -> Conversation:
        if structured:
            logger.debug("Structured input, skipping HTML parsing")
            return Conversation(
                model=model,
                scraped_at=self._clock(),
                source_html_bytes=source_bytes,
                content=text,
            )
        try:
            conversation = self.registry.parse(text, model)
        except ParsingError:
            raise
        except Exception as e:
            raise ParsingError(f"Failed to parse {model} markup: {e}") from e
        # Byte length of what was submitted, not of the decoded text
        return dataclasses.replace(conversation, source_html_bytes=source_bytes)

    def _elapsed_ms(self, perf_start: float) -> int:
        return max(0, round((self._timer() - perf_start) * 1000))

    async def _record_failure(
        self,
        pending: MetricRecord,
        error: Exception,
        record: ConversationRecord | None,
        perf_start: float,
    ) -> None:
        """Mark the attempt's metric as failed without masking the original error."""
        try:
            await self.metrics.finalize(
                pending.id,
                MetricStatus.FAILED,
                scrape_ended_at=self._clock(),
                duration_ms=self._elapsed_ms(perf_start),
                conversation_id=record.id if record else None,
                error_message=str(error) or type(error).__name__,
            )
        except Exception:
            logger.exception("Could not record failed metric %s", pending.id)

    # =========================================================================
    # File ingestion
    # =========================================================================

    async def ingest_file(
        self, file_path: str | Path, model: str, structured: bool = False
    ) -> IngestionOutcome:
        """Ingest a single HTML file from disk."""
        async with aiofiles.open(file_path, "rb") as f:
            payload = await f.read()
        return await self.ingest(payload, model, structured=structured)

    async def ingest_paths(
        self,
        paths: list[str | Path],
        model: str,
        structured: bool = False,
        pattern: str = "*.html",
    ) -> IngestionResult:
        """Ingest files, expanding directories with ``pattern``.

        Returns:
            IngestionResult with success/failure counts
        """
        files: list[Path] = []
        for path in map(Path, paths):
            if path.is_dir():
                files.extend(sorted(path.glob(pattern)))
            else:
                files.append(path)

        result = IngestionResult(total=len(files), success=0)
        for file_path in files:
            try:
                outcome = await self.ingest_file(file_path, model, structured=structured)
            except (ChatVaultError, OSError) as e:
                result.failed += 1
                result.errors.append(f"{file_path}: {e}")
                continue
            result.success += 1
            result.conversation_ids.append(outcome.record.id)
        return result
