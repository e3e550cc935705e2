"""
Nostr Search semantic search layer.

Modules:
    embeddings     — Embedding provider clients
    query_builder  — Filter predicates → ranked and count statements
    search         — Search, similar-events and tag-value services
"""
