"""
Nostr Search

Semantic search and ingestion engine for Nostr events: embeds plain text
notes through an external provider, stores them in PostgreSQL with pgvector,
and answers similarity-ranked searches filtered by author, kind and tags.
"""

__version__ = "1.0.0"
