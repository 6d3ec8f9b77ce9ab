"""Server-sent event framing for run progress.

A frame is ``data: <json LogEvent>`` followed by a blank line. The parser is
deliberately forgiving: anything that is not a ``data:`` line is ignored and a
frame whose JSON does not validate is skipped, so one bad frame never ends the
stream.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator

from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from .models import LogEvent

logger = logging.getLogger(__name__)

FRAME_PREFIX = "data:"
EVENT_STREAM_MEDIA_TYPE = "text/event-stream"
# Proxies (nginx in particular) must not buffer or cache the stream.
STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "X-Accel-Buffering": "no",
    "Connection": "keep-alive",
}


def encode_frame(event: LogEvent) -> str:
    payload = json.dumps(event.to_wire(), ensure_ascii=False, separators=(",", ":"))
    return f"{FRAME_PREFIX} {payload}\n\n"


def frame_stream(events: Iterable[LogEvent]) -> Iterator[bytes]:
    for event in events:
        yield encode_frame(event).encode("utf-8")


def event_stream_response(events: Iterable[LogEvent]) -> StreamingResponse:
    return StreamingResponse(
        frame_stream(events),
        media_type=EVENT_STREAM_MEDIA_TYPE,
        headers=STREAM_HEADERS,
    )


class FrameParser:
    """Incremental parser turning arbitrary text chunks into LogEvents."""

    def __init__(self) -> None:
        self._buffer = ""
        self._data_lines: list[str] = []
        self.skipped = 0

    def feed(self, chunk: str) -> list[LogEvent]:
        self._buffer += chunk
        lines = self._buffer.split("\n")
        # The last element is an incomplete line (or "") kept for the next chunk.
        self._buffer = lines.pop()
        events: list[LogEvent] = []
        for raw_line in lines:
            line = raw_line.rstrip("\r")
            if not line:
                event = self._flush()
                if event is not None:
                    events.append(event)
                continue
            if line.startswith(FRAME_PREFIX):
                self._data_lines.append(line[len(FRAME_PREFIX) :].lstrip(" "))
        return events

    def close(self) -> list[LogEvent]:
        """Flush a trailing frame that was not followed by a blank line."""
        events: list[LogEvent] = []
        if self._buffer:
            events.extend(self.feed("\n"))
        event = self._flush()
        if event is not None:
            events.append(event)
        return events

    def _flush(self) -> LogEvent | None:
        if not self._data_lines:
            return None
        raw = "\n".join(self._data_lines)
        self._data_lines = []
        try:
            return LogEvent.model_validate_json(raw)
        except ValidationError:
            self.skipped += 1
            logger.warning("stream_frame event=skipped reason=malformed length=%d", len(raw))
            return None
