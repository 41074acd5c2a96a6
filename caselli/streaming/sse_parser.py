"""
Incremental parser for the text/event-stream wire format.

The inference provider streams its response as SSE. Network reads do not
line up with event boundaries, so the parser keeps a buffer between calls:

    parser = SSEFrameParser()
    for chunk in chunks:
        for frame in parser.feed(chunk):
            handle(frame)
    for frame in parser.flush():
        handle(frame)

Bytes are decoded with an incremental UTF-8 decoder, so a multi-byte
character split across two reads is reassembled rather than replaced.
"""

import codecs
from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class SSEFrame:
    """One dispatched event: its name (default "message") and joined data lines."""

    event: str
    data: str
    id: Optional[str] = None


class SSEFrameParser:
    """
    Buffering SSE parser exposing feed(bytes) -> frames.

    Follows the WHATWG event-stream rules the provider relies on:
    - events end at a blank line
    - LF, CRLF and CR all terminate lines
    - "data" lines accumulate and are joined with newlines
    - lines starting with ":" are comments
    - a single space after the colon is stripped
    - events without data are not dispatched
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._event: Optional[str] = None
        self._data: List[str] = []
        self._id: Optional[str] = None

    def feed(self, chunk: bytes) -> List[SSEFrame]:
        """Consume a chunk and return every frame it completed."""
        self._buffer += self._decoder.decode(chunk)
        return self._drain_lines()

    def flush(self) -> List[SSEFrame]:
        """
        Finish the stream.

        A trailing event that was never terminated by a blank line is still
        dispatched, so a provider that closes without the final newline does
        not lose its last event.
        """
        self._buffer += self._decoder.decode(b"", final=True)
        frames = self._drain_lines()
        if self._buffer:
            self._process_line(self._buffer.rstrip("\r"), frames)
            self._buffer = ""
        self._dispatch(frames)
        return frames

    def _drain_lines(self) -> List[SSEFrame]:
        frames: List[SSEFrame] = []
        while True:
            index = self._find_line_end()
            if index is None:
                break
            end, skip = index
            line = self._buffer[:end]
            self._buffer = self._buffer[end + skip :]
            self._process_line(line, frames)
        return frames

    def _find_line_end(self):
        lf = self._buffer.find("\n")
        cr = self._buffer.find("\r")
        if cr == -1 and lf == -1:
            return None
        if cr == -1 or (lf != -1 and lf < cr):
            return lf, 1
        # A trailing CR may be the first half of CRLF; wait for more input
        if cr == len(self._buffer) - 1:
            return None
        if self._buffer[cr + 1] == "\n":
            return cr, 2
        return cr, 1

    def _process_line(self, line: str, frames: List[SSEFrame]) -> None:
        if line == "":
            self._dispatch(frames)
            return
        if line.startswith(":"):
            return

        if ":" in line:
            field, value = line.split(":", 1)
            if value.startswith(" "):
                value = value[1:]
        else:
            field, value = line, ""

        if field == "event":
            self._event = value
        elif field == "data":
            self._data.append(value)
        elif field == "id":
            self._id = value
        # "retry" and unknown fields are ignored

    def _dispatch(self, frames: List[SSEFrame]) -> None:
        if self._data:
            frames.append(
                SSEFrame(
                    event=self._event or "message",
                    data="\n".join(self._data),
                    id=self._id,
                )
            )
        self._event = None
        self._data = []
