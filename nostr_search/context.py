"""
Application context.

Everything a handler or the ingestion loop needs is built once at startup
from Settings and passed explicitly: FastAPI handlers read it from
``request.app.state.context``, the ingestion command hands it to the pipeline.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Engine

from nostr_search.config import Settings
from nostr_search.db.session import build_engine, build_session_factory
from nostr_search.db.store import EventStore
from nostr_search.search.embeddings import EmbeddingClient, build_embedding_client


@dataclass(frozen=True)
class AppContext:
    settings: Settings
    store: EventStore
    embedder: EmbeddingClient
    engine: Optional[Engine] = None

    def close(self) -> None:
        self.embedder.close()
        if self.engine is not None:
            self.engine.dispose()


def build_context(settings: Settings) -> AppContext:
    engine = build_engine(settings)
    return AppContext(
        settings=settings,
        store=EventStore(build_session_factory(engine)),
        embedder=build_embedding_client(settings),
        engine=engine,
    )
