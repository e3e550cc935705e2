"""
Input and output record shapes for the ingestion stream.

Two input shapes are accepted, one JSON object per line:
    direct     — the raw event
    enveloped  — {type, event, receivedAt, sourceType, sourceInfo}, the
                 write-policy plugin envelope used by relays; every parsed
                 envelope is answered with an accept ack on stdout
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from nostr_search.errors import ParseFailed
from nostr_search.schemas import NostrEvent


class InputMode(str, Enum):
    DIRECT = "direct"
    ENVELOPED = "enveloped"


class Envelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str
    event: NostrEvent
    received_at: int = Field(alias="receivedAt")
    source_type: str = Field(alias="sourceType")
    source_info: str = Field(alias="sourceInfo")


class Ack(BaseModel):
    id: str
    action: str = "accept"
    msg: Optional[str] = None

    def to_line(self) -> str:
        return self.model_dump_json(exclude_none=True)


def parse_line(line: str, mode: InputMode) -> NostrEvent:
    """
    Decode one input line into an event.

    Raises:
        ParseFailed: The line is not valid JSON or does not match the shape
            expected for ``mode``.
    """
    try:
        if mode == InputMode.ENVELOPED:
            return Envelope.model_validate_json(line).event
        return NostrEvent.model_validate_json(line)
    except ValidationError as exc:
        raise ParseFailed(
            f"Invalid {mode.value} record: {exc.error_count()} validation error(s)"
        ) from exc
