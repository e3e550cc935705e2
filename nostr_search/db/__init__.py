"""Database models, session factory and the event store."""
