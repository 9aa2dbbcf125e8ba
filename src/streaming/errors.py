"""Exceptions raised while decoding job streams."""

from __future__ import annotations

from src.pipeline_config import JobKind

# User-facing messages for failures that carry no upstream explanation.
FAILURE_MESSAGES: dict[JobKind, str] = {
    JobKind.TRANSCRIPT: (
        "An error occurred while processing the video. Please try again later "
        "or check the server logs for more information."
    ),
    JobKind.SUMMARY: "An error occurred while summarizing the transcript",
    JobKind.NOTES: "An error occurred while generating notes",
}


class StreamError(Exception):
    """Base class for job stream failures."""


class MalformedFrameError(StreamError):
    """A frame's payload is not a JSON object the client understands."""

    def __init__(self, raw: str, reason: str) -> None:
        super().__init__(f"Malformed frame ({reason}): {raw[:200]!r}")
        self.raw = raw
        self.reason = reason


class StreamClosedError(StreamError):
    """The server closed a push stream before sending a terminal event."""
