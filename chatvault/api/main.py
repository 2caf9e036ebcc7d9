from __future__ import annotations
"""FastAPI application for the chatvault ingestion service.

Endpoints:
- POST /api/conversation - Ingest a captured conversation (multipart upload)
- GET /api/conversation - List conversations with pagination
- GET /api/conversation/{conversation_id} - Get one conversation and its content
- GET /health - Health check
"""

import logging
import re
import time
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.datastructures import UploadFile

from chatvault import __version__
from chatvault.errors import BlobNotFoundError, InputValidationError, PaginationError
from chatvault.ingestion.service import decode_payload
from chatvault.models import ConversationRecord, utcnow
from chatvault.services import ServiceContainer, get_container

logger = logging.getLogger(__name__)

INTERNAL_ERROR = "Internal error, see logs"
PAYLOAD_FIELD = "htmlDoc"

DEFAULT_LIMIT = 50
MAX_LIMIT = 100
DEFAULT_OFFSET = 0
INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")
LIMIT_ERROR = f"Invalid limit parameter. Must be between 1 and {MAX_LIMIT}."
OFFSET_ERROR = "Invalid offset parameter. Must be non-negative."


# =============================================================================
# Pydantic Models for API
# =============================================================================

class ConversationRecordResponse(BaseModel):
    """Conversation index row."""
    id: str
    model: str
    scraped_at: datetime
    source_html_bytes: int
    views: int
    content_key: str
    created_at: datetime | None = None


class IngestResponse(BaseModel):
    """Response for a successful ingestion."""
    url: str


class ConversationListResponse(BaseModel):
    """Response for conversation listing."""
    conversations: list[ConversationRecordResponse]


class ConversationDetailResponse(BaseModel):
    """Response for a single conversation with its stored content."""
    conversation: ConversationRecordResponse
    content: str


class ErrorResponse(BaseModel):
    """Error body returned for every non-2xx response."""
    error: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    version: str


# =============================================================================
# Request helpers
# =============================================================================

def _parse_int(raw: str | None, default: int) -> int | None:
    if raw is None:
        return default
    raw = raw.strip()
    # ASCII decimal digits only
    if not INTEGER_PATTERN.fullmatch(raw):
        return None
    return int(raw)


def validate_pagination(limit_raw: str | None, offset_raw: str | None) -> tuple[int, int]:
    """Validate limit/offset query values.

    Raises:
        PaginationError: limit outside [1, 100] or negative offset
    """
    limit = _parse_int(limit_raw, DEFAULT_LIMIT)
    if limit is None or not 1 <= limit <= MAX_LIMIT:
        raise PaginationError(LIMIT_ERROR)
    offset = _parse_int(offset_raw, DEFAULT_OFFSET)
    if offset is None or offset < 0:
        raise PaginationError(OFFSET_ERROR)
    return limit, offset


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _record_to_response(record: ConversationRecord) -> ConversationRecordResponse:
    return ConversationRecordResponse(
        id=record.id,
        model=record.model,
        scraped_at=record.scraped_at,
        source_html_bytes=record.source_html_bytes,
        views=record.views,
        content_key=record.content_key,
        created_at=record.created_at,
    )


# =============================================================================
# Application Factory
# =============================================================================

def create_app(container: ServiceContainer | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""

    services = container or get_container()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await services.close()

    app = FastAPI(
        title="chatvault",
        description="Ingestion and retrieval of captured chat assistant transcripts",
        version=__version__,
        lifespan=lifespan,
    )

    # Open allow-all CORS policy; also answers preflight requests
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["POST", "GET", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return error_response(400, "Invalid request parameters")

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return error_response(500, INTERNAL_ERROR)

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check():
        """Health check endpoint."""
        return HealthResponse(
            status="healthy",
            timestamp=utcnow().isoformat(),
            version=__version__,
        )

    # =========================================================================
    # Conversation Endpoints
    # =========================================================================

    @app.post(
        "/api/conversation",
        status_code=201,
        response_model=IngestResponse,
        responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
        tags=["Conversations"],
    )
    async def create_conversation(request: Request):
        """Store a new conversation.

        Accepts both scraped HTML uploads and pre-structured content
        (``isMCP=true``), which skips HTML parsing.
        """
        received_at = utcnow()
        received_perf = time.perf_counter()

        try:
            form = await request.form()
        except Exception:
            logger.warning("Rejected unreadable form body", exc_info=True)
            return error_response(400, "Request body must be multipart/form-data")

        upload = form.get(PAYLOAD_FIELD)
        if not isinstance(upload, UploadFile):
            return error_response(400, f"`{PAYLOAD_FIELD}` must be a file field")

        model = form.get("model")
        if not isinstance(model, str) or not model.strip():
            model = services.settings.default_model
        structured = str(form.get("isMCP", "")).strip().lower() == "true"

        try:
            payload = await upload.read()
            decode_payload(payload)
        except InputValidationError as e:
            return error_response(400, str(e))
        except Exception:
            logger.exception("Could not read uploaded payload")
            return error_response(500, INTERNAL_ERROR)

        try:
            await services.ensure_initialized()
            outcome = await services.ingestion.ingest(
                payload,
                model.strip(),
                structured=structured,
                received_at=received_at,
                received_perf=received_perf,
            )
        except Exception:
            logger.exception("Error processing conversation")
            return error_response(500, INTERNAL_ERROR)

        return JSONResponse(IngestResponse(url=outcome.url).model_dump(), status_code=201)

    @app.get(
        "/api/conversation",
        response_model=ConversationListResponse,
        responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
        tags=["Conversations"],
    )
    async def list_conversations(
        limit: str | None = Query(default=None),
        offset: str | None = Query(default=None),
    ):
        """List conversations, newest first."""
        try:
            limit_value, offset_value = validate_pagination(limit, offset)
        except PaginationError as e:
            return error_response(400, str(e))

        try:
            await services.ensure_initialized()
            records = await services.conversations.list(limit=limit_value, offset=offset_value)
        except Exception:
            logger.exception("Error retrieving conversations")
            return error_response(500, INTERNAL_ERROR)

        return ConversationListResponse(
            conversations=[_record_to_response(r) for r in records]
        )

    @app.get(
        "/api/conversation/{conversation_id}",
        response_model=ConversationDetailResponse,
        responses={404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
        tags=["Conversations"],
    )
    async def get_conversation(conversation_id: str):
        """Get a conversation with its stored content; counts as a view."""
        try:
            await services.ensure_initialized()
            record = await services.conversations.get(conversation_id)
            if record is None:
                return error_response(404, "Conversation not found")
            content = await services.blob_store.read(record.content_key)
            record = await services.conversations.increment_views(conversation_id) or record
        except BlobNotFoundError:
            logger.exception("Conversation %s points at a missing blob", conversation_id)
            return error_response(500, INTERNAL_ERROR)
        except Exception:
            logger.exception("Error retrieving conversation %s", conversation_id)
            return error_response(500, INTERNAL_ERROR)

        return ConversationDetailResponse(
            conversation=_record_to_response(record),
            content=content,
        )

    return app


# Create default app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    from chatvault.config import get_settings
    from chatvault.logging_config import setup_logging

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
