"""Orphaned blob reconciliation.

Blobs are written before their index row and never rolled back, so a failed
index write leaves a blob nothing points at. This pass finds (and optionally
deletes) those blobs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from chatvault.db.repository import ConversationRepository
from chatvault.storage.blob import BlobStore

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    """Outcome of one reconciliation pass."""
    blobs_scanned: int
    orphaned: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)


class BlobReconciler:
    """Compares blob keys against index rows."""

    def __init__(self, blob_store: BlobStore, conversations: ConversationRepository):
        self.blob_store = blob_store
        self.conversations = conversations

    async def find_orphans(self) -> tuple[int, list[str]]:
        keys = await self.blob_store.list_keys()
        referenced = await self.conversations.content_keys()
        return len(keys), [key for key in keys if key not in referenced]

    async def run(self, purge: bool = False) -> ReconcileReport:
        scanned, orphaned = await self.find_orphans()
        report = ReconcileReport(blobs_scanned=scanned, orphaned=orphaned)
        if purge:
            for key in orphaned:
                await self.blob_store.delete(key)
                report.deleted.append(key)
                logger.info("Deleted orphaned blob %s", key)
        logger.info("Reconciliation scanned %d blobs, %d orphaned", scanned, len(orphaned))
        return report
