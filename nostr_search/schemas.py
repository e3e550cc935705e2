"""
Pydantic models for events, search requests and search responses.

These are the JSON shapes exchanged with the ingestion stream and the HTTP
API. Database rows are mapped onto them by the event store.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class NostrEvent(BaseModel):
    """The raw event representation read from the ingestion stream."""

    id: str
    pubkey: str
    created_at: int
    kind: int
    content: str
    tags: Any = Field(default_factory=list)


class TagFilters(BaseModel):
    """Tag predicates. Only structural containment is supported."""

    model_config = ConfigDict(extra="forbid")

    exact: Optional[Any] = None


class SearchFilters(BaseModel):
    """Optional structured predicates, AND-combined when several are set."""

    model_config = ConfigDict(extra="forbid")

    pubkey: Optional[str] = None
    kind: Optional[int] = None
    tags: Optional[TagFilters] = None


class SearchRequest(BaseModel):
    query: str
    limit: Optional[int] = None
    offset: Optional[int] = None
    filters: Optional[SearchFilters] = None


class EventWithSimilarity(BaseModel):
    id: str
    pubkey: str
    created_at: int
    kind: int
    content: str
    tags: Any
    similarity: float


class SearchResult(BaseModel):
    results: list[EventWithSimilarity]
    total: int
    limit: int
    offset: int


class TagValue(BaseModel):
    value: Optional[str]
    count: int
