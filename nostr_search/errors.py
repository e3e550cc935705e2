"""
Error kinds shared by the search service and the ingestion pipeline.

Every steady-state failure is one of these and is scoped to a single request
or a single input line. Messages are safe to show to API callers: they never
contain SQL text or embedding vectors.
"""


class NostrSearchError(Exception):
    """Base class for all application errors."""


class ParseFailed(NostrSearchError):
    """An ingestion input line could not be decoded into an event."""


class EmbeddingFailed(NostrSearchError):
    """The embedding provider did not return a usable vector."""


class StoreFailed(NostrSearchError):
    """A query or write against the event store failed."""


class EventNotFound(NostrSearchError):
    """The referenced event id is not in the store."""
