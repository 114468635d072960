"""
Wire Decoder — turn a streamed HTTP body into frames.

Two formats are supported, both robust to read buffers that split a line
(or a multi-byte UTF-8 character) in half:

- ``iter_sse_events``  — Server-Sent-Events, one ``SSEEvent`` per blank-line
  terminated frame.
- ``iter_json_lines``  — newline-delimited JSON (an optional ``data:`` prefix
  is tolerated), one parsed object per line.

A ``[DONE]`` payload ends either sequence early.  Whatever is left in the
buffer when the body closes is flushed as a final frame.  Malformed lines
are skipped, never fatal.
"""

from __future__ import annotations

import codecs
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterable, AsyncIterator, Optional, Union

from .json_repair import parse_json_text
from .stream_cancellation import StreamCancellationToken

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"

Chunk = Union[bytes, str]


@dataclass
class SSEEvent:
    event: str
    data: str


async def _iter_lines(
    chunks: AsyncIterable[Chunk],
    cancel_token: Optional[StreamCancellationToken] = None,
) -> AsyncIterator[tuple[str, bool]]:
    """Yield ``(line, is_tail)``; the tail is whatever follows the last newline."""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    async for chunk in chunks:
        if cancel_token is not None:
            cancel_token.check()
        buffer += decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        while True:
            idx = buffer.find("\n")
            if idx < 0:
                break
            line, buffer = buffer[:idx], buffer[idx + 1:]
            yield line.rstrip("\r"), False
    buffer += decoder.decode(b"", final=True)
    if cancel_token is not None:
        cancel_token.check()
    if buffer:
        yield buffer.rstrip("\r"), True


async def iter_sse_events(
    chunks: AsyncIterable[Chunk],
    cancel_token: Optional[StreamCancellationToken] = None,
) -> AsyncIterator[SSEEvent]:
    """Decode an SSE body into ``SSEEvent`` frames."""
    event_name = ""
    data_lines: list[str] = []

    async for line, is_tail in _iter_lines(chunks, cancel_token):
        if is_tail:
            tail = line.strip()
            if tail.startswith("data:"):
                data_lines.append(tail[5:].strip())
            elif tail.startswith("event:"):
                event_name = tail[6:].strip()
            elif tail and not tail.startswith(":") and tail != DONE_SENTINEL:
                data_lines.append(tail)
            break

        if line == "":
            if data_lines:
                data = "\n".join(data_lines)
                if data.strip() == DONE_SENTINEL:
                    return
                yield SSEEvent(event=event_name or "message", data=data)
            event_name = ""
            data_lines = []
        elif line.startswith(":"):
            continue
        elif line.startswith("event:"):
            event_name = line[6:].strip()
        elif line.startswith("data:"):
            data_lines.append(line[5:].strip())

    if data_lines:
        data = "\n".join(data_lines)
        if data.strip() != DONE_SENTINEL:
            yield SSEEvent(event=event_name or "message", data=data)


async def iter_json_lines(
    chunks: AsyncIterable[Chunk],
    cancel_token: Optional[StreamCancellationToken] = None,
) -> AsyncIterator[Any]:
    """Decode a newline-delimited JSON body, skipping unparseable lines."""
    async for line, _is_tail in _iter_lines(chunks, cancel_token):
        text = line.strip()
        if not text:
            continue
        if text.startswith("data:"):
            text = text[5:].strip()
        if text == DONE_SENTINEL:
            return
        value = parse_json_text(text)
        if value is None:
            logger.debug("Skipping malformed stream line: %.120s", text)
            continue
        yield value
