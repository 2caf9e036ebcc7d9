"""Command-line entry point for chatvault."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Sequence

from .config import get_settings
from .ingestion.reconcile import BlobReconciler
from .logging_config import setup_logging
from .services import ServiceContainer

logger = logging.getLogger("chatvault.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chatvault", description=__doc__)
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)

    ingest = subparsers.add_parser("ingest", help="Ingest HTML files or directories")
    ingest.add_argument("paths", nargs="+", type=Path)
    ingest.add_argument("--model", default=None, help="Format/assistant label (default: DEFAULT_MODEL)")
    ingest.add_argument("--structured", action="store_true", help="Store files verbatim without parsing")
    ingest.add_argument("--pattern", default="*.html", help="Glob used when a path is a directory")

    reconcile = subparsers.add_parser("reconcile", help="Find blobs with no index row")
    reconcile.add_argument("--purge", action="store_true", help="Delete the orphaned blobs")

    return parser


async def _run_ingest(args: argparse.Namespace) -> int:
    container = ServiceContainer()
    await container.ensure_initialized()
    try:
        model = args.model or container.settings.default_model
        result = await container.ingestion.ingest_paths(
            args.paths, model, structured=args.structured, pattern=args.pattern
        )
    finally:
        await container.close()

    for conversation_id in result.conversation_ids:
        print(container.ingestion.locator_for(conversation_id))
    for error in result.errors:
        logger.error(error)
    logger.info("Ingested %d/%d files (%d failed)", result.success, result.total, result.failed)
    return 0 if result.failed == 0 else 1


async def _run_reconcile(args: argparse.Namespace) -> int:
    container = ServiceContainer()
    await container.ensure_initialized()
    try:
        reconciler = BlobReconciler(container.blob_store, container.conversations)
        report = await reconciler.run(purge=args.purge)
    finally:
        await container.close()

    for key in report.orphaned:
        print(key)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(args.log_level or settings.log_level, settings.log_format)

    if args.command == "serve":
        import uvicorn

        uvicorn.run(
            "chatvault.api.main:app",
            host=args.host or settings.api_host,
            port=args.port or settings.api_port,
            log_config=None,
        )
        return 0
    if args.command == "ingest":
        return asyncio.run(_run_ingest(args))
    if args.command == "reconcile":
        return asyncio.run(_run_reconcile(args))
    return 2


if __name__ == "__main__":
    sys.exit(main())
