"""
Shared pytest fixtures.

Provides:
- Settings factory that never reads a .env file
- StubEmbedder: deterministic embedding client with call recording
- FakeEventStore: in-memory store evaluating the search predicates
- SQLite in-memory EventStore (JSONB compiled as JSON)
- FastAPI TestClient with an injected application context
"""

import math
from typing import Any, Generator, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from nostr_search.config import Settings
from nostr_search.context import AppContext
from nostr_search.db.models import Base
from nostr_search.db.store import EventStore
from nostr_search.errors import EmbeddingFailed, EventNotFound
from nostr_search.schemas import NostrEvent
from nostr_search.search.query_builder import (
    BuiltQuery,
    KindEquals,
    PubkeyEquals,
    TagsContain,
)


# ---------------------------------------------------------------------------
# SQLite type-compilation workaround for the Postgres-specific JSONB type.
# ---------------------------------------------------------------------------
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(element, compiler, **kw):
    return "JSON"


# =============================================================================
# Settings
# =============================================================================
def make_settings(**overrides) -> Settings:
    values = dict(
        DATABASE_URL="sqlite://",
        EMBEDDING_PROVIDER="http",
        EMBEDDING_URL="http://embeddings.test/embed",
        EMBEDDING_DIMENSIONS=3,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture()
def settings() -> Settings:
    return make_settings()


@pytest.fixture()
def settings_factory():
    return make_settings


# =============================================================================
# Embedding stub
# =============================================================================
class StubEmbedder:
    """Returns a fixed vector, or a per-text vector, and records every call."""

    def __init__(self, vector=None, vectors: Optional[dict] = None, fail: bool = False):
        self.vector = vector if vector is not None else [0.1, 0.2, 0.3]
        self.vectors = vectors or {}
        self.fail = fail
        self.calls: list[str] = []
        self.closed = False

    def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise EmbeddingFailed("stub provider unavailable")
        return list(self.vectors.get(text, self.vector))

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def stub_embedder() -> StubEmbedder:
    return StubEmbedder()


# =============================================================================
# In-memory event store
# =============================================================================
def jsonb_contains(container: Any, contained: Any) -> bool:
    """Python rendition of PostgreSQL's jsonb ``@>`` operator."""
    if isinstance(contained, dict):
        return isinstance(container, dict) and all(
            key in container and jsonb_contains(container[key], value)
            for key, value in contained.items()
        )
    if isinstance(contained, list):
        return isinstance(container, list) and all(
            any(jsonb_contains(item, wanted) for item in container)
            for wanted in contained
        )
    if isinstance(container, list):
        # A top-level array contains a bare primitive
        return any(
            not isinstance(item, (dict, list)) and item == contained
            for item in container
        )
    return container == contained


def cosine_distance(a, b) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return 1.0 - dot / norm


class FakeEventStore:
    """
    Mirrors EventStore's public surface over a dict of rows.

    ``search`` evaluates the BuiltQuery's predicate list the way the SQL
    WHERE clause would and ranks by cosine distance.
    """

    def __init__(self):
        self.rows: dict[str, dict[str, Any]] = {}
        self.calls: list[str] = []
        self.insert_result: Optional[bool] = None
        self.fail_with: Optional[Exception] = None

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_with is not None:
            raise self.fail_with

    def add(self, event: NostrEvent, embedding) -> None:
        self.rows[event.id] = {**event.model_dump(), "embedding": list(embedding) if embedding else None}

    def exists(self, event_id: str) -> bool:
        self._record("exists")
        return event_id in self.rows

    def get(self, event_id: str):
        self._record("get")
        return self.rows.get(event_id)

    def insert(self, event: NostrEvent, embedding) -> bool:
        self._record("insert")
        if self.insert_result is not None:
            return self.insert_result
        if event.id in self.rows:
            return False
        self.add(event, embedding)
        return True

    @staticmethod
    def _matches(row: dict, predicate) -> bool:
        if isinstance(predicate, PubkeyEquals):
            return row["pubkey"] == predicate.pubkey
        if isinstance(predicate, KindEquals):
            return row["kind"] == predicate.kind
        if isinstance(predicate, TagsContain):
            return jsonb_contains(row["tags"], predicate.document)
        raise TypeError(predicate)

    def search(self, query: BuiltQuery):
        self._record("search")
        matching = [
            row for row in self.rows.values()
            if all(self._matches(row, p) for p in query.predicates)
        ]
        ranked = sorted(
            (row for row in matching if row["embedding"] is not None),
            key=lambda row: cosine_distance(row["embedding"], query.query_vector),
        )
        page = ranked[query.offset: query.offset + query.limit]
        results = [
            {
                **{k: v for k, v in row.items() if k != "embedding"},
                "similarity": 1.0 - cosine_distance(row["embedding"], query.query_vector),
            }
            for row in page
        ]
        return results, len(matching)

    def similar(self, event_id: str, limit: int):
        self._record("similar")
        if event_id not in self.rows:
            raise EventNotFound(f"Event not found: {event_id}")
        reference = self.rows[event_id]["embedding"]
        if reference is None:
            return []
        others = [
            row for row in self.rows.values()
            if row["id"] != event_id and row["embedding"] is not None
        ]
        others.sort(key=lambda row: cosine_distance(row["embedding"], reference))
        return [
            {
                **{k: v for k, v in row.items() if k != "embedding"},
                "similarity": 1.0 - cosine_distance(row["embedding"], reference),
            }
            for row in others[:limit]
        ]

    def tag_values(self, tag_key: str, limit: int):
        self._record("tag_values")
        counts: dict = {}
        for row in self.rows.values():
            if not isinstance(row["tags"], list):
                continue
            for tag in row["tags"]:
                if isinstance(tag, dict) and tag.get("key") == tag_key:
                    counts[tag.get("value")] = counts.get(tag.get("value"), 0) + 1
        ordered = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
        return [{"value": v, "count": c} for v, c in ordered[:limit]]


@pytest.fixture()
def fake_store() -> FakeEventStore:
    return FakeEventStore()


# =============================================================================
# SQLite-backed EventStore
# =============================================================================
@pytest.fixture()
def sqlite_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def sqlite_store(sqlite_engine) -> EventStore:
    return EventStore(sessionmaker(bind=sqlite_engine, expire_on_commit=False))


# =============================================================================
# FastAPI TestClient with injected context
# =============================================================================
@pytest.fixture()
def app_context(settings, fake_store, stub_embedder) -> AppContext:
    return AppContext(settings=settings, store=fake_store, embedder=stub_embedder)


@pytest.fixture()
def client(app_context) -> Generator[TestClient, None, None]:
    from nostr_search.main import create_app

    with TestClient(create_app(app_context)) as c:
        yield c
