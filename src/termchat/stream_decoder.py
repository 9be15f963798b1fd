from __future__ import annotations

import json
from collections.abc import AsyncIterable, Callable, Iterator

from loguru import logger

from termchat.errors import FrameParseError
from termchat.memory.models import StreamEvent

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


def log_frame_error(error: FrameParseError) -> None:
    logger.warning(f"{error} (frame dropped: {error.frame[:200]!r})")


class StreamDecoder:
    """Turns arbitrarily chunked Server-Sent-Events bytes into stream events.

    Only the raw bytes of the trailing, not yet newline-terminated line are
    carried between chunks. Lines are decoded as UTF-8 once complete, so a
    multi-byte character split across two chunks is reassembled intact.
    """

    def __init__(self, on_frame_error: Callable[[FrameParseError], None] = log_frame_error):
        self._pending = b""
        self._done = False
        self._on_frame_error = on_frame_error

    @property
    def done(self) -> bool:
        return self._done

    @property
    def pending(self) -> bytes:
        return self._pending

    def feed(self, chunk: bytes) -> list[StreamEvent]:
        return list(self.iter_events(chunk))

    def iter_events(self, chunk: bytes) -> Iterator[StreamEvent]:
        if self._done:
            return
        *lines, self._pending = (self._pending + chunk).split(b"\n")
        for raw_line in lines:
            event = self._decode_line(raw_line)
            if event is None:
                continue
            if event.terminal:
                self._done = True
                self._pending = b""
            yield event
            if self._done:
                return

    def finish(self) -> list[StreamEvent]:
        """Flush a final line the server closed the connection on without a newline."""
        if self._done or not self._pending:
            self._pending = b""
            return []
        raw_line, self._pending = self._pending, b""
        event = self._decode_line(raw_line)
        if event is None:
            return []
        if event.terminal:
            self._done = True
        return [event]

    def _decode_line(self, raw_line: bytes) -> StreamEvent | None:
        line = raw_line.decode("utf-8", errors="replace").rstrip("\r")
        if not line.startswith(DATA_PREFIX):
            return None

        payload = line[len(DATA_PREFIX):].strip()
        if not payload:
            return None
        if payload == DONE_SENTINEL:
            return StreamEvent(terminal=True)

        # json raises plain ValueError for oversized integers and RecursionError for deep nesting
        try:
            frame = json.loads(payload)
        except (ValueError, RecursionError) as ex:
            self._on_frame_error(FrameParseError(payload, str(ex)))
            return None

        delta = _extract_delta(frame)
        if not delta:
            return None
        return StreamEvent(delta=delta)


def _extract_delta(frame: object) -> str | None:
    if not isinstance(frame, dict):
        return None
    choices = frame.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    return content if isinstance(content, str) else None


async def decode_stream(
    chunks: AsyncIterable[bytes],
    sink: Callable[[str], None],
    *,
    decoder: StreamDecoder | None = None,
) -> str:
    """Feed ``chunks`` through the decoder, writing each delta to ``sink`` as it arrives.

    Returns the concatenated answer once the ``[DONE]`` sentinel is seen or the
    stream ends. Errors raised while reading ``chunks`` propagate unchanged;
    text already written to ``sink`` stays written.
    """
    decoder = decoder or StreamDecoder()
    parts: list[str] = []
    frames = 0

    def emit(event: StreamEvent) -> None:
        nonlocal frames
        if event.delta:
            frames += 1
            sink(event.delta)
            parts.append(event.delta)

    async for chunk in chunks:
        for event in decoder.iter_events(chunk):
            emit(event)
        if decoder.done:
            break
    else:
        for event in decoder.finish():
            emit(event)
        if not decoder.done:
            logger.debug("Stream closed without [DONE]; keeping accumulated text")

    logger.debug(f"Decoded {frames} delta frames ({sum(len(p) for p in parts)} chars)")
    return "".join(parts)
