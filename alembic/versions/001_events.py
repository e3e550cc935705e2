"""
001 - Events and embeddings

Creates the events table with its pgvector embedding column.

New tables:
    - events — one row per ingested event id

Indexes:
    - ix_events_pubkey, ix_events_kind — structured filters
    - idx_events_tags — GIN (jsonb_path_ops) for tags @> containment
    - idx_events_embedding — HNSW, cosine distance

The embedding dimension comes from EMBEDDING_DIMENSIONS at migration time and
must match the provider in use (bge-m3: 1024, text-embedding-004: 768,
text-embedding-3-small: 1536).

IMPORTANT: the vector column and the HNSW / GIN indexes are created via
op.execute() with raw SQL because Alembic's op.create_index does not support
pgvector index types natively.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

import os

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# Revision identifiers
revision = "001"
down_revision = None
branch_labels = None
depends_on = None

EMBEDDING_DIMENSIONS = int(os.getenv("EMBEDDING_DIMENSIONS", "1024"))


def upgrade() -> None:
    """Create pgvector extension, events table, and indexes."""

    # =========================================================================
    # Step 1: Enable pgvector extension
    # =========================================================================
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    # =========================================================================
    # Step 2: Create events table
    # =========================================================================
    op.create_table(
        "events",
        sa.Column("id", sa.Text(), nullable=False),
        sa.Column("pubkey", sa.Text(), nullable=False),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.Column("kind", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("tags", JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        # embedding column added below via raw SQL (vector type)
        sa.Column("indexed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_events"),
    )

    op.execute(f"""
        ALTER TABLE events
        ADD COLUMN embedding vector({EMBEDDING_DIMENSIONS})
    """)

    # =========================================================================
    # Step 3: Indexes
    # =========================================================================
    op.create_index("ix_events_pubkey", "events", ["pubkey"])
    op.create_index("ix_events_kind", "events", ["kind"])

    op.execute("""
        CREATE INDEX idx_events_tags
        ON events
        USING gin (tags jsonb_path_ops)
    """)

    # Parameters: m=16, ef_construction=64, cosine distance (vector_cosine_ops)
    op.execute("""
        CREATE INDEX idx_events_embedding
        ON events
        USING hnsw (embedding vector_cosine_ops)
        WITH (m = 16, ef_construction = 64)
    """)


def downgrade() -> None:
    """Drop indexes, events table, and pgvector extension."""
    op.execute("DROP INDEX IF EXISTS idx_events_embedding")
    op.execute("DROP INDEX IF EXISTS idx_events_tags")
    op.drop_index("ix_events_kind", table_name="events")
    op.drop_index("ix_events_pubkey", table_name="events")
    op.drop_table("events")
    op.execute("DROP EXTENSION IF EXISTS vector")
