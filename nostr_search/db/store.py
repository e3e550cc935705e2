"""
Nostr Search Event Store

The single module where all database access lives. The search service and the
ingestion pipeline only talk to the database through ``EventStore``.

Every public method:
    - Opens its own pooled session, so concurrent searches never share one.
    - Logs the method name and wall-clock execution time (ms) via structlog.
    - Returns plain Python values (never SQLAlchemy model instances).
    - Raises ``StoreFailed`` for database errors, with the driver error chained.

Insert idempotence: a primary-key conflict on insert is reported as ``False``
(the row already exists), never as an error. The existence check before
insert is an optimisation; the primary key is the final arbiter.
"""

from __future__ import annotations

import time
from typing import Any, Optional, Sequence

import structlog
from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from nostr_search.db.models import Event
from nostr_search.errors import EventNotFound, StoreFailed
from nostr_search.schemas import NostrEvent
from nostr_search.search.query_builder import BuiltQuery, build_similar_query

logger = structlog.get_logger(__name__)

_TAG_VALUES_SQL = text(
    """
    SELECT tag->>'value' AS value, COUNT(*) AS count
    FROM events,
         jsonb_array_elements(
             CASE WHEN jsonb_typeof(tags) = 'array' THEN tags ELSE '[]'::jsonb END
         ) AS tag
    WHERE tag->>'key' = :tag_key
    GROUP BY tag->>'value'
    ORDER BY count DESC
    LIMIT :limit
    """
)


# ── Helpers ────────────────────────────────────────────────────────────────


def _row_to_result(row: Any) -> dict[str, Any]:
    """Convert a ranked result row to a plain dict."""
    return {
        "id": row.id,
        "pubkey": row.pubkey,
        "created_at": row.created_at,
        "kind": row.kind,
        "content": row.content,
        "tags": row.tags,
        "similarity": float(row.similarity),
    }


def _event_to_dict(row: Event) -> dict[str, Any]:
    """Convert an Event ORM instance to a plain dict (embedding as a list)."""
    return {
        "id": row.id,
        "pubkey": row.pubkey,
        "created_at": row.created_at,
        "kind": row.kind,
        "content": row.content,
        "tags": row.tags,
        "embedding": [float(v) for v in row.embedding] if row.embedding is not None else None,
    }


def _timed(fn_name: str, start: float) -> None:
    """Log elapsed time in milliseconds."""
    elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
    logger.debug("store_query", function=fn_name, elapsed_ms=elapsed_ms)


# ── Store ──────────────────────────────────────────────────────────────────


class EventStore:
    """Event persistence and the vector-similarity query surface."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _session(self) -> Session:
        return self._session_factory()

    def exists(self, event_id: str) -> bool:
        """Return True if an event with this id is already stored."""
        start = time.perf_counter()
        try:
            with self._session() as db:
                row = db.execute(select(Event.id).where(Event.id == event_id)).first()
                return row is not None
        except SQLAlchemyError as exc:
            raise StoreFailed("Existence check failed") from exc
        finally:
            _timed("exists", start)

    def get(self, event_id: str) -> Optional[dict[str, Any]]:
        start = time.perf_counter()
        try:
            with self._session() as db:
                row = db.get(Event, event_id)
                return _event_to_dict(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise StoreFailed("Event lookup failed") from exc
        finally:
            _timed("get", start)

    def insert(self, event: NostrEvent, embedding: Optional[Sequence[float]]) -> bool:
        """
        Insert one event row, including its embedding, in a single commit.

        Returns False when the id already exists (a concurrent or replayed
        insert lost the race); that is a no-op, not an error.
        """
        start = time.perf_counter()
        try:
            with self._session() as db:
                db.add(
                    Event(
                        id=event.id,
                        pubkey=event.pubkey,
                        created_at=event.created_at,
                        kind=event.kind,
                        content=event.content,
                        tags=event.tags,
                        embedding=list(embedding) if embedding is not None else None,
                    )
                )
                try:
                    db.commit()
                except IntegrityError as exc:
                    db.rollback()
                    conflict = db.execute(
                        select(Event.id).where(Event.id == event.id)
                    ).first()
                    if conflict is not None:
                        return False
                    raise StoreFailed("Event insert violated a constraint") from exc
                return True
        except SQLAlchemyError as exc:
            raise StoreFailed("Event insert failed") from exc
        finally:
            _timed("insert", start)

    def search(self, query: BuiltQuery) -> tuple[list[dict[str, Any]], int]:
        """
        Execute the ranked and count statements of one search.

        Both run in the same session; either both succeed or StoreFailed is
        raised and no partial result is returned.
        """
        start = time.perf_counter()
        try:
            with self._session() as db:
                rows = db.execute(query.statement).all()
                total = db.execute(query.count_statement).scalar_one()
            return [_row_to_result(r) for r in rows], int(total)
        except SQLAlchemyError as exc:
            raise StoreFailed("Search query could not be executed") from exc
        finally:
            _timed("search", start)

    def similar(self, event_id: str, limit: int) -> list[dict[str, Any]]:
        """
        Return events closest to a stored event's embedding.

        Raises EventNotFound if the id is unknown. An event that exists but
        has no embedding has no neighbours.
        """
        start = time.perf_counter()
        try:
            with self._session() as db:
                reference = db.execute(
                    select(Event.id, Event.embedding.isnot(None).label("embedded"))
                    .where(Event.id == event_id)
                ).first()
                if reference is None:
                    raise EventNotFound(f"Event not found: {event_id}")
                if not reference.embedded:
                    return []
                rows = db.execute(build_similar_query(event_id, limit)).all()
                return [_row_to_result(r) for r in rows]
        except SQLAlchemyError as exc:
            raise StoreFailed("Similar-events query could not be executed") from exc
        finally:
            _timed("similar", start)

    def tag_values(self, tag_key: str, limit: int) -> list[dict[str, Any]]:
        """Distinct values of ``{key, value}`` tag records for one key, with counts."""
        start = time.perf_counter()
        try:
            with self._session() as db:
                rows = db.execute(
                    _TAG_VALUES_SQL, {"tag_key": tag_key, "limit": limit}
                ).all()
                return [{"value": r.value, "count": int(r.count)} for r in rows]
        except SQLAlchemyError as exc:
            raise StoreFailed("Tag values query could not be executed") from exc
        finally:
            _timed("tag_values", start)
