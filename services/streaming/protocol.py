"""
Campaign stream wire protocol.

Every frame is one `data:` line followed by a blank line:

    data: {"campaign_id": "CMP-42", ...}\n\n
    data: [END]\n\n

Partial frames carry a complete JSON document describing the campaign so far;
the literal `[END]` sentinel terminates the stream. No `event:`, `id:` or
`retry:` fields are used; lines starting with `:` are comments and ignored.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

STREAM_PATH = "/stream-campaign"
END_SENTINEL = "[END]"
DATA_PREFIX = "data:"


class MalformedFrame(Exception):
    """Raised when a line does not belong to the campaign stream framing."""

    def __init__(self, message: str, line: str = ""):
        self.line = line
        super().__init__(message)


class ChunkKind(str, Enum):
    PARTIAL = "partial"
    END = "end"


@dataclass(frozen=True)
class Chunk:
    """One unit of server-to-client push data."""

    kind: ChunkKind
    sequence: int
    raw: str = ""

    @classmethod
    def partial(cls, sequence: int, raw: str) -> "Chunk":
        return cls(kind=ChunkKind.PARTIAL, sequence=sequence, raw=raw)

    @classmethod
    def end(cls, sequence: int) -> "Chunk":
        return cls(kind=ChunkKind.END, sequence=sequence)

    @property
    def is_end(self) -> bool:
        return self.kind is ChunkKind.END

    @property
    def payload(self) -> str:
        """Text carried on the wire for this chunk."""
        return END_SENTINEL if self.is_end else self.raw

    def to_sse(self) -> bytes:
        return encode_frame(self.payload)


def encode_frame(payload: str) -> bytes:
    """Format a payload as a single SSE data frame."""
    if "\n" in payload or "\r" in payload:
        raise ValueError("Frame payload must be a single line")
    return f"{DATA_PREFIX} {payload}\n\n".encode("utf-8")


class FrameDecoder:
    """
    Incremental decoder for the campaign stream.

    Feed it one line at a time (with or without the trailing newline);
    it returns the payload when a blank line completes a frame.

    Usage:
        decoder = FrameDecoder()
        for line in lines:
            payload = decoder.feed(line)
            if payload is not None:
                handle(payload)
    """

    def __init__(self):
        self._data: list[str] = []

    @property
    def pending(self) -> bool:
        """True while a frame has started but not been terminated."""
        return bool(self._data)

    def feed(self, line: str) -> Optional[str]:
        line = line.rstrip("\r\n")

        if not line:
            if not self._data:
                return None
            payload = "\n".join(self._data)
            self._data = []
            return payload

        if line.startswith(":"):
            return None

        if not line.startswith(DATA_PREFIX):
            raise MalformedFrame(f"Unexpected line in event stream: {line[:80]!r}", line)

        value = line[len(DATA_PREFIX):]
        if value.startswith(" "):
            value = value[1:]
        self._data.append(value)
        return None
