"""
Nostr Search API Router

REST API endpoints for semantic event search and the related lookups.

Mount point: /api/v1

Endpoints:
    POST   /search                        — Semantic search with structured filters
    GET    /events/{event_id}/similar     — Nearest neighbours of a stored event
    GET    /tags/{tag_key}/values         — Value counts for one tag key

Rules:
    - 502 when no embedding could be produced for the query
    - 503 when the store query could not be executed
    - 404 for unknown event ids
    - Error details never include SQL text
    - Handlers are sync so FastAPI runs them in its threadpool
"""

import time
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from nostr_search.context import AppContext
from nostr_search.errors import EmbeddingFailed, EventNotFound, StoreFailed
from nostr_search.schemas import (
    EventWithSimilarity,
    SearchRequest,
    SearchResult,
    TagValue,
)
from nostr_search.search.search import (
    find_similar_events,
    get_tag_values,
    search_events,
)

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Search"])


def get_context(request: Request) -> AppContext:
    """FastAPI dependency returning the context built at startup."""
    return request.app.state.context


# ── POST /search — Semantic event search ──────────────────────────────────


@router.post(
    "/search",
    response_model=SearchResult,
    summary="Search events by natural language query",
    response_description="Events ranked by similarity with the total filter match count",
)
def search_events_endpoint(
    body: SearchRequest,
    ctx: AppContext = Depends(get_context),
):
    start_time = time.time()
    log = logger.bind(endpoint="search_events", query=body.query[:100])

    try:
        result = search_events(
            body,
            store=ctx.store,
            embedder=ctx.embedder,
            default_limit=ctx.settings.SEARCH_DEFAULT_LIMIT,
        )
    except EmbeddingFailed as exc:
        log.warning("search_embedding_failed", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Could not compute an embedding for the query",
        )
    except StoreFailed as exc:
        log.error("search_store_failed", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Search query could not be executed",
        )

    elapsed = round(time.time() - start_time, 3)
    log.info("search_events_response", result_count=len(result.results), elapsed_seconds=elapsed)
    return result


# ── GET /events/{event_id}/similar — Similar events ───────────────────────


@router.get(
    "/events/{event_id}/similar",
    response_model=list[EventWithSimilarity],
    summary="Find events similar to a stored event",
)
def similar_events_endpoint(
    event_id: str,
    limit: Optional[int] = Query(None, description="Max results"),
    ctx: AppContext = Depends(get_context),
):
    log = logger.bind(endpoint="similar_events", event_id=event_id)
    try:
        return find_similar_events(
            event_id,
            limit if limit is not None else ctx.settings.SIMILAR_DEFAULT_LIMIT,
            store=ctx.store,
        )
    except EventNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except StoreFailed as exc:
        log.error("similar_events_store_failed", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Similar-events query could not be executed",
        )


# ── GET /tags/{tag_key}/values — Tag value counts ─────────────────────────


@router.get(
    "/tags/{tag_key}/values",
    response_model=list[TagValue],
    summary="List values recorded under a tag key, most frequent first",
)
def tag_values_endpoint(
    tag_key: str,
    limit: Optional[int] = Query(None, description="Max values"),
    ctx: AppContext = Depends(get_context),
):
    log = logger.bind(endpoint="tag_values", tag_key=tag_key)
    try:
        return get_tag_values(
            tag_key,
            limit if limit is not None else ctx.settings.TAG_VALUES_DEFAULT_LIMIT,
            store=ctx.store,
        )
    except StoreFailed as exc:
        log.error("tag_values_store_failed", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Tag values query could not be executed",
        )
