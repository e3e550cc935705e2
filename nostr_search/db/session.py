"""
Nostr Search Database Session Management

SQLAlchemy engine and session factory with connection pooling. Both are
built once at startup from Settings and owned by the application context;
nothing here is a module-level global.
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from nostr_search.config import Settings


def build_engine(settings: Settings) -> Engine:
    """Create the pooled engine used by every store operation."""
    return create_engine(
        settings.DATABASE_URL,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_pre_ping=True,
        echo=False,
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
