"""
Nostr Search Database Models

SQLAlchemy 2.x ORM model for ingested events and their embeddings.

Tables:
    events - One row per ingested event, keyed by the event id

Only rows with a non-null ``embedding`` take part in similarity search.
Rows are written once by the ingestion pipeline and never updated in place.
"""

from datetime import datetime
from typing import Any, Optional

from pgvector.sqlalchemy import Vector
from sqlalchemy import BigInteger, DateTime, Index, Integer, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class Event(Base):
    """
    One record per unique event id.

    The vector dimension is fixed by the embedding provider and enforced by
    the column type created in the migration, not by the ORM mapping.
    """
    __tablename__ = "events"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    pubkey: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    kind: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    tags: Mapped[Any] = mapped_column(JSONB, nullable=False, default=list)
    embedding = mapped_column(Vector(), nullable=True)
    indexed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=True
    )

    __table_args__ = (
        Index("ix_events_pubkey", "pubkey"),
        Index("ix_events_kind", "kind"),
    )
