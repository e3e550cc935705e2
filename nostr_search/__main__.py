"""
Command line entry point.

Usage:
    nostr-search serve                      # HTTP search API
    nostr-search ingest                     # raw events on stdin
    nostr-search ingest --mode enveloped    # relay plugin envelopes, acks on stdout

Configuration comes from the environment (see nostr_search.config). Missing
DATABASE_URL or provider credentials abort startup with a non-zero exit.
"""

import argparse
import sys
from typing import Optional, Sequence

import structlog
import uvicorn
from pydantic import ValidationError

from nostr_search.config import get_settings
from nostr_search.context import build_context
from nostr_search.ingestion.pipeline import IngestionPipeline
from nostr_search.ingestion.records import InputMode
from nostr_search.logging_config import configure_logging, configure_sentry


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nostr-search",
        description="Semantic search and ingestion for Nostr events",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("serve", help="Run the HTTP search API")

    ingest = subparsers.add_parser("ingest", help="Ingest events from stdin")
    ingest.add_argument(
        "--mode",
        choices=[m.value for m in InputMode],
        default=InputMode.DIRECT.value,
        help="Input record shape (default: direct)",
    )
    return parser


def _serve(settings) -> int:
    uvicorn.run(
        "nostr_search.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        log_config=None,
    )
    return 0


def _ingest(settings, mode: InputMode) -> int:
    # stdout carries acks only
    configure_logging(settings.LOG_LEVEL, stream=sys.stderr)
    configure_sentry(settings)

    context = build_context(settings)
    try:
        pipeline = IngestionPipeline(
            context.store,
            context.embedder,
            mode=mode,
            output=sys.stdout,
        )
        pipeline.run(sys.stdin)
    finally:
        context.close()
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        settings = get_settings()
    except ValidationError as exc:
        configure_logging(stream=sys.stderr)
        structlog.get_logger(__name__).error("invalid_configuration", error=str(exc))
        return 2

    if args.command == "serve":
        return _serve(settings)
    return _ingest(settings, InputMode(args.mode))


if __name__ == "__main__":
    sys.exit(main())
