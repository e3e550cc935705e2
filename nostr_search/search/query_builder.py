"""
Nostr Search Query Builder

Pure translation of search filters plus a query vector into two SQLAlchemy
Core statements: the similarity-ranked results query and the matching count
query. Nothing here touches the database or the network.

Functions:
    predicates_from_filters — Ordered predicate list from request filters
    predicate_clause        — SQL clause for one predicate variant
    build_search_query      — Ranked + count statements sharing one WHERE

Rules:
    - Predicates are a closed set: PubkeyEquals, KindEquals, TagsContain
    - Evaluation order is fixed (pubkey → kind → tags) so identical filter
      sets always render identical SQL text
    - Every user-supplied value is a bound parameter, never SQL text
    - The query vector is one named parameter used by both the similarity
      projection and the ORDER BY
    - The ranked query additionally requires a non-null embedding, appended
      after the filter predicates; unembedded rows are never ranked
    - The count query carries the filter predicates only and no limit/offset
    - Similarity is 1 - cosine distance; pgvector's <=> ranges over [0, 2],
      so similarity lies in [-1, 1]
"""

from dataclasses import dataclass
from typing import Any, Optional, Sequence, Union

from pgvector.sqlalchemy import Vector
from sqlalchemy import Select, and_, bindparam, func, literal_column, select
from sqlalchemy.orm import aliased
from sqlalchemy.sql.elements import ColumnElement

from nostr_search.db.models import Event
from nostr_search.schemas import SearchFilters

QUERY_VECTOR_PARAM = "query_vector"


# ── Predicate variants ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class PubkeyEquals:
    pubkey: str


@dataclass(frozen=True)
class KindEquals:
    kind: int


@dataclass(frozen=True)
class TagsContain:
    """The event's tag document must structurally contain ``document``."""

    document: Any


Predicate = Union[PubkeyEquals, KindEquals, TagsContain]


@dataclass(frozen=True)
class BuiltQuery:
    """Both statements for one search plus the inputs they were built from."""

    statement: Select
    count_statement: Select
    predicates: tuple[Predicate, ...]
    query_vector: list[float]
    limit: int
    offset: int


# ── Public API ─────────────────────────────────────────────────────────────


def predicates_from_filters(filters: Optional[SearchFilters]) -> list[Predicate]:
    """
    Fold the optional filters into an ordered predicate list.

    Each entry is (present, variant, value); absent filters contribute
    nothing. The tuple order below is the SQL order.
    """
    if filters is None:
        return []

    tags_exact = filters.tags.exact if filters.tags is not None else None
    ordered = (
        (filters.pubkey is not None, PubkeyEquals, filters.pubkey),
        (filters.kind is not None, KindEquals, filters.kind),
        (tags_exact is not None, TagsContain, tags_exact),
    )
    return [variant(value) for present, variant, value in ordered if present]


def predicate_clause(predicate: Predicate) -> ColumnElement[bool]:
    """Render one predicate as a bound-parameter SQL clause."""
    if isinstance(predicate, PubkeyEquals):
        return Event.pubkey == predicate.pubkey
    if isinstance(predicate, KindEquals):
        return Event.kind == predicate.kind
    if isinstance(predicate, TagsContain):
        # JSONB containment: tags @> :document
        return Event.tags.contains(predicate.document)
    raise TypeError(f"Unsupported search predicate: {predicate!r}")


def _apply_where(stmt: Select, predicates: Sequence[Predicate]) -> Select:
    clauses = [predicate_clause(p) for p in predicates]
    if not clauses:
        return stmt
    return stmt.where(and_(*clauses))


def build_search_query(
    filters: Optional[SearchFilters],
    query_vector: Sequence[float],
    limit: int,
    offset: int,
) -> BuiltQuery:
    """
    Build the ranked-results and count statements for one search.

    Ranked shape::

        SELECT <event columns>, 1 - (embedding <=> :query_vector) AS similarity
        FROM events WHERE [<filters> AND] embedding IS NOT NULL
        ORDER BY embedding <=> :query_vector ASC
        LIMIT :limit OFFSET :offset

    ``limit`` and ``offset`` are passed through unvalidated.
    """
    predicates = tuple(predicates_from_filters(filters))
    vector = [float(v) for v in query_vector]

    vector_param = bindparam(QUERY_VECTOR_PARAM, value=vector, type_=Vector())
    distance = Event.embedding.cosine_distance(vector_param)
    similarity = (literal_column("1") - distance).label("similarity")

    statement = select(
        Event.id,
        Event.pubkey,
        Event.created_at,
        Event.kind,
        Event.content,
        Event.tags,
        similarity,
    ).select_from(Event)
    statement = _apply_where(statement, predicates).where(Event.embedding.isnot(None))
    statement = statement.order_by(distance.asc()).limit(limit).offset(offset)

    count_statement = _apply_where(
        select(func.count()).select_from(Event), predicates
    )

    return BuiltQuery(
        statement=statement,
        count_statement=count_statement,
        predicates=predicates,
        query_vector=vector,
        limit=limit,
        offset=offset,
    )


def build_similar_query(event_id: str, limit: int) -> Select:
    """
    Nearest neighbours of a stored event, ranked by its own embedding.

    The reference embedding is read in a scalar subquery so the vector never
    leaves the database. The event itself and unembedded rows are excluded.
    """
    reference_event = aliased(Event)
    reference = (
        select(reference_event.embedding)
        .where(reference_event.id == event_id)
        .correlate(None)
        .scalar_subquery()
    )
    distance = Event.embedding.cosine_distance(reference)
    similarity = (literal_column("1") - distance).label("similarity")

    return (
        select(
            Event.id,
            Event.pubkey,
            Event.created_at,
            Event.kind,
            Event.content,
            Event.tags,
            similarity,
        )
        .where(Event.id != event_id)
        .where(Event.embedding.isnot(None))
        .order_by(distance.asc())
        .limit(limit)
    )
