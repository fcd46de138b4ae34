"""Wire format of the chat stream.

    {"status": "..."}\\n          zero or more
    {"filters": {...}, "shouldReset": b, "refresh": b, "unrelated": b, "metadata": true}\\n
    raw reply text ...         written incrementally, not JSON

The writer side is a handful of encoders. The reader side is
:class:`StreamParser`, a two-state machine (AWAITING_METADATA ->
STREAMING_CONTENT). Invariant: no content is released before the metadata
line has been fully received and parsed.
"""

from __future__ import annotations

import codecs
import enum
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from agent.core.types import EMPTY_FILTERS, FilterSpec


def encode_status(status: str) -> str:
    return json.dumps({"status": status}) + "\n"


def encode_metadata(
    filters: Optional[FilterSpec] = None,
    should_reset: bool = False,
    refresh: bool = False,
    unrelated: bool = False,
) -> str:
    payload = {
        "filters": (filters or EMPTY_FILTERS).criteria(),
        "shouldReset": should_reset,
        "refresh": refresh,
        "unrelated": unrelated,
        "metadata": True,
    }
    return json.dumps(payload) + "\n"


def encode_error(exc: BaseException) -> str:
    return f"\nError: {str(exc) or 'Internal error'}"


class StreamProtocolError(ValueError):
    pass


@dataclass(frozen=True)
class StatusEvent:
    status: str


@dataclass(frozen=True)
class MetadataEvent:
    filters: FilterSpec
    should_reset: bool = False
    refresh: bool = False
    unrelated: bool = False
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ContentEvent:
    text: str


StreamEvent = Union[StatusEvent, MetadataEvent, ContentEvent]


class ParserState(enum.Enum):
    AWAITING_METADATA = "awaiting_metadata"
    STREAMING_CONTENT = "streaming_content"


class StreamParser:
    """Incremental reader for the chat stream; feed it chunks as they arrive."""

    def __init__(self) -> None:
        self.state = ParserState.AWAITING_METADATA
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")()
        self.metadata: Optional[MetadataEvent] = None

    def feed(self, chunk: Union[str, bytes]) -> List[StreamEvent]:
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        if self.state is ParserState.STREAMING_CONTENT:
            return [ContentEvent(chunk)] if chunk else []

        self._buffer += chunk
        events: List[StreamEvent] = []
        while self.state is ParserState.AWAITING_METADATA and "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            if not line.strip():
                continue
            events.append(self._parse_line(line))

        if self.state is ParserState.STREAMING_CONTENT and self._buffer:
            events.append(ContentEvent(self._buffer))
            self._buffer = ""
        return events

    def close(self) -> None:
        if self.state is ParserState.AWAITING_METADATA:
            raise StreamProtocolError("Stream ended before the metadata line")

    def _parse_line(self, line: str) -> StreamEvent:
        try:
            payload = json.loads(line)
        except json.JSONDecodeError as exc:
            raise StreamProtocolError(f"Expected a JSON line before metadata, got {line[:80]!r}") from exc
        if not isinstance(payload, dict):
            raise StreamProtocolError(f"Expected a JSON object, got {line[:80]!r}")

        if payload.get("metadata"):
            self.state = ParserState.STREAMING_CONTENT
            self.metadata = MetadataEvent(
                filters=FilterSpec.model_validate(payload.get("filters") or {}),
                should_reset=bool(payload.get("shouldReset")),
                refresh=bool(payload.get("refresh")),
                unrelated=bool(payload.get("unrelated")),
                raw=payload,
            )
            return self.metadata
        if "status" in payload:
            return StatusEvent(str(payload["status"]))
        raise StreamProtocolError(f"Unknown stream line: {line[:80]!r}")
