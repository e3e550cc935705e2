"""
Nostr Search Semantic Search Module

Answers similarity-ranked searches over embedded events, optionally filtered
by author, kind and tag containment.

Functions:
    search_events        — Embed the query, run ranked + count queries
    find_similar_events  — Nearest neighbours of a stored event
    get_tag_values       — Value histogram for one tag key

Rules:
    - Embedding failures propagate as EmbeddingFailed before the store is touched
    - Store failures propagate as StoreFailed; no partial results
    - Similarity is 1 - cosine distance; results come back highest first
    - total counts filter matches only and ignores limit/offset
    - Never log embedding vectors — only metadata
"""

import time

import structlog

from nostr_search.db.store import EventStore
from nostr_search.schemas import (
    EventWithSimilarity,
    SearchRequest,
    SearchResult,
    TagValue,
)
from nostr_search.search.embeddings import EmbeddingClient
from nostr_search.search.query_builder import build_search_query

logger = structlog.get_logger(__name__)

DEFAULT_LIMIT = 10
DEFAULT_OFFSET = 0


def search_events(
    request: SearchRequest,
    *,
    store: EventStore,
    embedder: EmbeddingClient,
    default_limit: int = DEFAULT_LIMIT,
) -> SearchResult:
    """
    Semantic similarity search over embedded events.

    Steps:
        1. Resolve limit/offset defaults
        2. Embed the query text
        3. Build the ranked and count statements from the filters
        4. Execute both against the store
        5. Assemble the SearchResult

    Raises:
        EmbeddingFailed: The provider did not return a vector.
        StoreFailed: Either query failed.
    """
    start_time = time.time()

    limit = request.limit if request.limit is not None else default_limit
    offset = request.offset if request.offset is not None else DEFAULT_OFFSET

    query_vector = embedder.embed(request.query)

    built = build_search_query(request.filters, query_vector, limit, offset)
    rows, total = store.search(built)

    result = SearchResult(
        results=[EventWithSimilarity(**row) for row in rows],
        total=total,
        limit=limit,
        offset=offset,
    )

    logger.info(
        "search_events",
        query=request.query[:100],
        predicates=[type(p).__name__ for p in built.predicates],
        limit=limit,
        offset=offset,
        result_count=len(result.results),
        total=total,
        elapsed_seconds=round(time.time() - start_time, 3),
    )
    return result


def find_similar_events(
    event_id: str,
    limit: int,
    *,
    store: EventStore,
) -> list[EventWithSimilarity]:
    """
    Events closest to an already-stored event, excluding the event itself.

    Raises:
        EventNotFound: No event with this id is stored.
        StoreFailed: The query failed.
    """
    start_time = time.time()
    rows = store.similar(event_id, limit)

    logger.info(
        "find_similar_events",
        event_id=event_id,
        limit=limit,
        result_count=len(rows),
        elapsed_seconds=round(time.time() - start_time, 3),
    )
    return [EventWithSimilarity(**row) for row in rows]


def get_tag_values(
    tag_key: str,
    limit: int,
    *,
    store: EventStore,
) -> list[TagValue]:
    """Most frequent values recorded under ``tag_key``, highest count first."""
    rows = store.tag_values(tag_key, limit)
    logger.info("get_tag_values", tag_key=tag_key, limit=limit, result_count=len(rows))
    return [TagValue(**row) for row in rows]
