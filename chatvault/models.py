"""Core data models for the chatvault ingestion pipeline.

This module defines all dataclasses used throughout the pipeline:
- Message, Conversation: Transient values produced by parsers
- ConversationRecord: Durable index row pointing at a stored blob
- MetricRecord: Timing/outcome row for one ingestion attempt
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


# =============================================================================
# Enums
# =============================================================================

class MetricStatus(str, Enum):
    """Outcome of an ingestion attempt."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


DEFAULT_ROLE = "user"


# =============================================================================
# Transient Structures
# =============================================================================

@dataclass(frozen=True)
class Message:
    """A single extracted message.

    Attributes:
        role: Author role taken from the source markup (user/assistant/...)
        content: Trimmed text content of the message
    """
    role: str
    content: str


@dataclass
class Conversation:
    """A parsed (or passed-through) conversation awaiting persistence.

    Attributes:
        model: Identifier of the source assistant
        scraped_at: When the content was captured/extracted
        source_html_bytes: Byte length of the original raw payload
        content: Payload written to the blob store
        messages: Extracted messages (empty for pre-structured input)
    """
    model: str
    scraped_at: datetime
    source_html_bytes: int
    content: str
    messages: tuple[Message, ...] | list[Message] = field(default_factory=tuple)

    def __post_init__(self):
        if self.source_html_bytes < 0:
            raise ValueError("source_html_bytes must be non-negative")
        # Normalize messages to tuple
        if isinstance(self.messages, list):
            self.messages = tuple(self.messages)


# =============================================================================
# Persisted Structures
# =============================================================================

@dataclass
class ConversationRecord:
    """Index row for an ingested conversation.

    Attributes:
        id: Globally unique identifier assigned at ingestion time
        model: Identifier of the source assistant
        scraped_at: When the content was captured
        source_html_bytes: Byte length of the original raw payload
        content_key: Reference into the blob store
        views: Retrieval counter
        created_at: Assigned by the store on insert
    """
    id: str
    model: str
    scraped_at: datetime
    source_html_bytes: int
    content_key: str
    views: int = 0
    created_at: datetime | None = None


@dataclass
class MetricRecord:
    """Timing and outcome of a single ingestion attempt.

    Attributes:
        conversation_id: Index row this attempt produced, if it got that far
        scrape_started_at: When the request was received
        scrape_ended_at: When the attempt finished (None while pending)
        duration_ms: Elapsed wall-clock time in milliseconds
        status: pending, success or failed
        error_message: Failure detail, only set when status is failed
        id: Assigned by the store on insert
    """
    conversation_id: str | None
    scrape_started_at: datetime
    scrape_ended_at: datetime | None = None
    duration_ms: int = 0
    status: MetricStatus = MetricStatus.PENDING
    error_message: str | None = None
    id: int | None = None


# =============================================================================
# Results
# =============================================================================

@dataclass
class IngestionOutcome:
    """Result of one successful ingestion."""
    record: ConversationRecord
    url: str
    duration_ms: int


@dataclass
class IngestionResult:
    """Result from ingesting a batch of files.

    Attributes:
        total: Total number of files processed
        success: Number successfully ingested
        failed: Number that failed
        errors: List of error messages
        conversation_ids: IDs of successfully ingested conversations
    """
    total: int
    success: int
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    conversation_ids: list[str] = field(default_factory=list)
