"""
Nostr Search Ingestion Pipeline

Reads events one line at a time, skips ids already stored, embeds plain text
notes and commits each one in its own transaction.

Per-line steps:
    1. Parse the line (failure → log, skip, no ack)
    2. Enveloped mode: write the accept ack to the output stream immediately
    3. Existence check — a stored id is skipped, so replays are safe
    4. kind == 1: embed the content, then insert the row with its embedding
    5. Any other kind: nothing is stored

Rules:
    - Strictly sequential: one line is finished before the next is read
    - No per-line failure stops the stream
    - A primary-key conflict on insert is a no-op, not a failure
    - Failed embeddings are not retried here; replaying the line retries it
"""

from collections import Counter
from enum import Enum
from typing import Iterable, Optional, TextIO

import structlog

from nostr_search.db.store import EventStore
from nostr_search.errors import EmbeddingFailed, ParseFailed, StoreFailed
from nostr_search.ingestion.records import Ack, InputMode, parse_line
from nostr_search.schemas import NostrEvent
from nostr_search.search.embeddings import EmbeddingClient

logger = structlog.get_logger(__name__)

# Only plain text notes are embedded and searchable
EMBEDDABLE_KIND = 1


class IngestOutcome(str, Enum):
    STORED = "stored"
    ALREADY_EXISTS = "already_exists"
    DUPLICATE = "duplicate"
    IGNORED_KIND = "ignored_kind"
    PARSE_FAILED = "parse_failed"
    EMBEDDING_FAILED = "embedding_failed"
    STORE_FAILED = "store_failed"


class IngestionPipeline:
    """Sequential consumer of one input stream."""

    def __init__(
        self,
        store: EventStore,
        embedder: EmbeddingClient,
        mode: InputMode = InputMode.DIRECT,
        output: Optional[TextIO] = None,
    ):
        self.store = store
        self.embedder = embedder
        self.mode = mode
        self.output = output

    def _ack(self, event: NostrEvent) -> None:
        if self.output is None:
            return
        self.output.write(Ack(id=event.id).to_line() + "\n")
        self.output.flush()

    def process_event(self, event: NostrEvent) -> IngestOutcome:
        """Deduplicate, embed and store one parsed event."""
        log = logger.bind(event_id=event.id, kind=event.kind)

        try:
            if self.store.exists(event.id):
                log.info("event_already_exists")
                return IngestOutcome.ALREADY_EXISTS
        except StoreFailed as exc:
            log.error("existence_check_failed", error=str(exc))
            return IngestOutcome.STORE_FAILED

        if event.kind != EMBEDDABLE_KIND:
            log.debug("event_kind_not_indexed")
            return IngestOutcome.IGNORED_KIND

        try:
            embedding = self.embedder.embed(event.content)
        except EmbeddingFailed as exc:
            log.warning("embedding_failed", error=str(exc))
            return IngestOutcome.EMBEDDING_FAILED

        try:
            inserted = self.store.insert(event, embedding)
        except StoreFailed as exc:
            log.error("event_insert_failed", error=str(exc))
            return IngestOutcome.STORE_FAILED

        if not inserted:
            log.info("event_already_exists", reason="insert_conflict")
            return IngestOutcome.DUPLICATE

        log.info("event_stored", dimensions=len(embedding))
        return IngestOutcome.STORED

    def process_line(self, line: str) -> Optional[IngestOutcome]:
        """Handle one raw input line. Blank lines return None."""
        line = line.strip()
        if not line:
            return None

        try:
            event = parse_line(line, self.mode)
        except ParseFailed as exc:
            logger.warning("parse_failed", mode=self.mode.value, error=str(exc))
            return IngestOutcome.PARSE_FAILED

        if self.mode == InputMode.ENVELOPED:
            self._ack(event)

        return self.process_event(event)

    def run(self, lines: Iterable[str]) -> Counter:
        """
        Consume ``lines`` until exhausted and return per-outcome counts.
        """
        counts: Counter = Counter()
        logger.info("ingestion_started", mode=self.mode.value)

        for line in lines:
            outcome = self.process_line(line)
            if outcome is not None:
                counts[outcome.value] += 1

        logger.info("ingestion_finished", mode=self.mode.value, **dict(counts))
        return counts
