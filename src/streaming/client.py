"""Async HTTP client for the backend's long-running job streams."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterable, Sequence

import httpx

from src.config import Settings, settings
from src.pipeline_config import JobKind
from src.session.models import TranscriptEntry
from src.streaming.errors import FAILURE_MESSAGES, MalformedFrameError, StreamClosedError
from src.streaming.frames import ChunkFrameDecoder, SseDecoder, parse_payload
from src.streaming.models import CompletedEvent, ErrorCause, ErrorEvent, JobEvent

logger = logging.getLogger(__name__)

JOB_PATHS: dict[JobKind, str] = {
    JobKind.TRANSCRIPT: "/api/transcript",
    JobKind.SUMMARY: "/api/summary",
    JobKind.NOTES: "/api/notes",
}


def create_http_client(config: Settings = settings, **kwargs: object) -> httpx.AsyncClient:
    """Build the shared AsyncClient used by the job streams and chat.

    Stream reads are unbounded by default since a job may stay silent for
    minutes between frames; connecting still times out.
    """
    timeout = httpx.Timeout(
        config.chat_timeout,
        connect=config.connect_timeout,
        read=config.stream_read_timeout,
    )
    return httpx.AsyncClient(base_url=config.api_base_url, timeout=timeout, **kwargs)  # type: ignore[arg-type]


class JobStreamClient:
    """Open job streams and yield their events in arrival order.

    Every stream yields at most one terminal event (``CompletedEvent`` or
    ``ErrorEvent``) and then stops; the underlying response is closed on
    every exit path, including when the consumer stops iterating early.
    Failures never escape as exceptions: they are reported as an
    ``ErrorEvent`` carrying the job's fixed failure message.
    """

    def __init__(self, http: httpx.AsyncClient) -> None:
        self._http = http

    async def stream_transcript(self, video_url: str) -> AsyncIterator[JobEvent]:
        """Follow the transcription push stream for ``video_url``."""
        kind = JobKind.TRANSCRIPT
        decoder = SseDecoder()
        try:
            async with self._http.stream(
                "GET",
                JOB_PATHS[kind],
                params={"video_url": video_url},
                headers={"Accept": "text/event-stream"},
            ) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    raw = decoder.feed_line(line)
                    if raw is None:
                        continue
                    event = parse_payload(raw)
                    if event is None:
                        continue
                    yield event
                    if isinstance(event, (CompletedEvent, ErrorEvent)):
                        return
                raise StreamClosedError("transcript stream ended before completion")
        except (httpx.HTTPError, MalformedFrameError, StreamClosedError) as e:
            yield _failure(kind, e)

    async def stream_job(
        self, kind: JobKind, transcript: Sequence[TranscriptEntry]
    ) -> AsyncIterator[JobEvent]:
        """Post ``transcript`` to a chunked job endpoint and follow its body.

        Ends quietly when the body is exhausted, even if no terminal event was
        received.
        """
        if kind is JobKind.TRANSCRIPT:
            raise ValueError("the transcript job is a push stream; use stream_transcript")

        decoder = ChunkFrameDecoder()
        body = {"transcript": [entry.model_dump() for entry in transcript]}
        try:
            async with self._http.stream("POST", JOB_PATHS[kind], json=body) as response:
                response.raise_for_status()
                async for chunk in response.aiter_bytes():
                    for event in _events(decoder.feed(chunk)):
                        yield event
                        if isinstance(event, (CompletedEvent, ErrorEvent)):
                            return
                for event in _events(decoder.flush()):
                    yield event
                    if isinstance(event, (CompletedEvent, ErrorEvent)):
                        return
            logger.info("%s stream ended without a terminal event", kind.value)
        except (httpx.HTTPError, MalformedFrameError) as e:
            yield _failure(kind, e)


def _events(payloads: Iterable[str]) -> Iterable[JobEvent]:
    for raw in payloads:
        event = parse_payload(raw)
        if event is not None:
            yield event


def _failure(kind: JobKind, exc: Exception) -> ErrorEvent:
    if isinstance(exc, httpx.HTTPStatusError):
        logger.warning("%s stream failed: HTTP error! status: %s", kind.value, exc.response.status_code)
        cause = ErrorCause.HTTP_STATUS
    elif isinstance(exc, MalformedFrameError):
        logger.warning("%s stream sent a malformed frame: %s", kind.value, exc)
        cause = ErrorCause.MALFORMED
    else:
        logger.warning("%s stream failed: %s", kind.value, exc)
        cause = ErrorCause.TRANSPORT
    return ErrorEvent(message=FAILURE_MESSAGES[kind], cause=cause)
