"""Decoders for the two stream framings used by the backend.

Both framings carry one JSON object per event:

* push streams (``text/event-stream``) deliver it in ``data:`` lines,
  dispatched on a blank line;
* chunked job bodies deliver ``data: <json>`` frames separated by a blank
  line, with arbitrary read boundaries.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any

from src.streaming.errors import MalformedFrameError
from src.streaming.models import CompletedEvent, ErrorEvent, ErrorCause, JobEvent, ProgressEvent

logger = logging.getLogger(__name__)

FRAME_DELIMITER = "\n\n"
DATA_PREFIX = "data: "
COMPLETE = 100


def parse_payload(raw: str) -> JobEvent | None:
    """Interpret one JSON payload as a job event.

    Returns ``None`` for payloads that carry neither an error nor progress.

    Raises:
        MalformedFrameError: If the payload is not a JSON object or its
            progress value is not a number.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedFrameError(raw, f"invalid JSON: {e.msg}") from e

    if not isinstance(data, dict):
        raise MalformedFrameError(raw, f"expected object, got {type(data).__name__}")

    if data.get("error"):
        return ErrorEvent(message=str(data["error"]), cause=ErrorCause.UPSTREAM)

    if "progress" not in data:
        return None

    progress = _coerce_progress(data["progress"], raw)
    status = str(data.get("status") or "")
    if progress >= COMPLETE:
        return CompletedEvent(status=status, payload=data)

    stage = data.get("stage")
    return ProgressEvent(
        progress=progress,
        status=status,
        stage=str(stage) if stage is not None else None,
    )


def _coerce_progress(value: Any, raw: str) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedFrameError(raw, f"non-numeric progress {value!r}")
    return max(0, min(COMPLETE, int(value)))


class ChunkFrameDecoder:
    """Split a chunked response body into ``data:`` frame payloads.

    Read boundaries are not frame boundaries: a trailing partial frame (and
    any partial UTF-8 sequence) is carried forward to the next ``feed`` call.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[str]:
        """Consume one raw chunk and return the payloads of all completed frames."""
        self._buffer = (self._buffer + self._decoder.decode(chunk)).replace("\r\n", "\n")
        *frames, self._buffer = self._buffer.split(FRAME_DELIMITER)
        return [p for p in (self._payload(f) for f in frames) if p is not None]

    def flush(self) -> list[str]:
        """Return the payload of a final frame that lacked a trailing delimiter."""
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        payload = self._payload(tail.replace("\r\n", "\n"))
        return [payload] if payload is not None else []

    @staticmethod
    def _payload(frame: str) -> str | None:
        frame = frame.lstrip("\n")
        if not frame:
            return None
        if not frame.startswith(DATA_PREFIX):
            logger.debug("Ignoring non-data frame: %r", frame[:80])
            return None
        return frame[len(DATA_PREFIX):]


class SseDecoder:
    """Line-oriented ``text/event-stream`` decoder.

    Only unnamed events (or events named ``message``) are dispatched,
    matching what a browser ``EventSource.onmessage`` handler receives.
    """

    def __init__(self) -> None:
        self._data: list[str] = []
        self._event = ""

    def feed_line(self, line: str) -> str | None:
        """Consume one line (without its terminator).

        Returns the event's data when ``line`` completes a dispatchable event.
        """
        if line == "":
            return self._dispatch()
        if line.startswith(":"):
            return None

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if name == "data":
            self._data.append(value)
        elif name == "event":
            self._event = value
        # id and retry are irrelevant: the client never reconnects
        return None

    def _dispatch(self) -> str | None:
        data, event = self._data, self._event
        self._data, self._event = [], ""
        if not data:
            return None
        if event not in ("", "message"):
            logger.debug("Ignoring named event %r", event)
            return None
        return "\n".join(data)
