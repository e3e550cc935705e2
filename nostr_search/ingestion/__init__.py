"""
Event ingestion pipeline.

Exports:
    IngestionPipeline: Sequential line-by-line consumer
    IngestOutcome: Per-event result of processing
    InputMode: direct or enveloped input records
"""

from nostr_search.ingestion.pipeline import IngestionPipeline, IngestOutcome
from nostr_search.ingestion.records import InputMode

__all__ = [
    "IngestionPipeline",
    "IngestOutcome",
    "InputMode",
]
