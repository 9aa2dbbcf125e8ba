"""Tests for JobStreamClient against a fake backend (no live server)."""

from __future__ import annotations

import asyncio
import json
from contextlib import aclosing

import httpx
import pytest

from src.pipeline_config import JobKind
from src.session.models import TranscriptEntry
from src.streaming.client import JobStreamClient
from src.streaming.errors import FAILURE_MESSAGES
from src.streaming.models import CompletedEvent, ErrorCause, ErrorEvent, JobEvent, ProgressEvent
from tests.fakes import FakeBackend, OpenStream, frame, sse, streaming_response


async def collect(stream) -> list[JobEvent]:  # type: ignore[no-untyped-def]
    return [event async for event in stream]


# ---------------------------------------------------------------------------
# Push stream (transcription)
# ---------------------------------------------------------------------------


class TestTranscriptStream:
    async def test_progress_then_completion(self, backend: FakeBackend, http: httpx.AsyncClient) -> None:
        entry = {"id": 0, "text": "Hello", "start": 0, "duration": 2}
        backend.on(
            "/api/transcript",
            lambda request: streaming_response(
                [
                    sse({"progress": 50, "status": "Preparing transcript"}),
                    sse({"progress": 100, "status": "Finalizing", "transcript": [entry]}),
                ]
            ),
        )

        events = await collect(JobStreamClient(http).stream_transcript("https://youtu.be/abc?t=1&x=y"))

        assert events == [
            ProgressEvent(progress=50, status="Preparing transcript"),
            CompletedEvent(
                status="Finalizing",
                payload={"progress": 100, "status": "Finalizing", "transcript": [entry]},
            ),
        ]
        request = backend.requests[0]
        assert request.method == "GET"
        assert request.url.params["video_url"] == "https://youtu.be/abc?t=1&x=y"
        assert request.headers["accept"] == "text/event-stream"

    async def test_stops_after_completion(self, backend: FakeBackend, http: httpx.AsyncClient) -> None:
        backend.on(
            "/api/transcript",
            lambda request: streaming_response(
                [
                    sse({"progress": 100, "status": "Done", "transcript": []}),
                    sse({"error": "late error"}),
                ]
            ),
        )

        events = await collect(JobStreamClient(http).stream_transcript("u"))

        assert len(events) == 1
        assert isinstance(events[0], CompletedEvent)

    async def test_upstream_error_passed_through(self, backend: FakeBackend, http: httpx.AsyncClient) -> None:
        backend.on(
            "/api/transcript",
            lambda request: streaming_response(
                [
                    sse({"progress": 30, "status": "Downloading"}),
                    sse({"error": "Video is private"}),
                    sse({"progress": 60, "status": "never seen"}),
                ]
            ),
        )

        events = await collect(JobStreamClient(http).stream_transcript("u"))

        assert events[-1] == ErrorEvent(message="Video is private", cause=ErrorCause.UPSTREAM)
        assert len(events) == 2

    async def test_disconnect_before_completion(self, backend: FakeBackend, http: httpx.AsyncClient) -> None:
        backend.on(
            "/api/transcript",
            lambda request: streaming_response([sse({"progress": 20, "status": "Downloading"})]),
        )

        events = await collect(JobStreamClient(http).stream_transcript("u"))

        assert events[-1] == ErrorEvent(
            message=FAILURE_MESSAGES[JobKind.TRANSCRIPT], cause=ErrorCause.TRANSPORT
        )

    async def test_connection_failure(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(refuse), base_url="http://x") as http:
            events = await collect(JobStreamClient(http).stream_transcript("u"))

        assert events == [
            ErrorEvent(message=FAILURE_MESSAGES[JobKind.TRANSCRIPT], cause=ErrorCause.TRANSPORT)
        ]

    async def test_http_error_status(self, backend: FakeBackend, http: httpx.AsyncClient) -> None:
        backend.on("/api/transcript", lambda request: httpx.Response(502, text="Bad Gateway"))

        events = await collect(JobStreamClient(http).stream_transcript("u"))

        assert events == [
            ErrorEvent(message=FAILURE_MESSAGES[JobKind.TRANSCRIPT], cause=ErrorCause.HTTP_STATUS)
        ]

    async def test_malformed_message_becomes_error_event(
        self, backend: FakeBackend, http: httpx.AsyncClient
    ) -> None:
        backend.on(
            "/api/transcript",
            lambda request: streaming_response([b"data: {not json\n\n"]),
        )

        events = await collect(JobStreamClient(http).stream_transcript("u"))

        assert events == [
            ErrorEvent(message=FAILURE_MESSAGES[JobKind.TRANSCRIPT], cause=ErrorCause.MALFORMED)
        ]


# ---------------------------------------------------------------------------
# Chunked pull stream (summary, notes)
# ---------------------------------------------------------------------------


class TestChunkedJobStream:
    async def test_posts_transcript_and_reads_frames(
        self, backend: FakeBackend, http: httpx.AsyncClient, transcript: list[TranscriptEntry]
    ) -> None:
        body = frame({"progress": 10, "status": "Preparing transcript"}) + frame(
            {"progress": 100, "status": "Finalizing", "summary": [{"text": "S", "ref_id": 0}]}
        )
        backend.on(
            "/api/summary",
            lambda request: streaming_response([body], content_type="text/plain"),
        )

        events = await collect(JobStreamClient(http).stream_job(JobKind.SUMMARY, transcript))

        assert [type(e) for e in events] == [ProgressEvent, CompletedEvent]
        request = backend.requests[0]
        assert request.method == "POST"
        sent = json.loads(request.content)
        assert sent == {"transcript": [e.model_dump() for e in transcript]}

    async def test_frames_split_across_reads(
        self, backend: FakeBackend, http: httpx.AsyncClient, transcript: list[TranscriptEntry]
    ) -> None:
        body = (
            frame({"progress": 20, "status": "Preparing transcript"})
            + frame({"progress": 60, "status": "Generating section 1"})
            + frame({"progress": 100, "status": "Finalizing", "notes": "# Notes"})
        )
        parts = [body[i : i + 7] for i in range(0, len(body), 7)]
        backend.on("/api/notes", lambda request: streaming_response(parts))

        events = await collect(JobStreamClient(http).stream_job(JobKind.NOTES, transcript))

        assert events[:2] == [
            ProgressEvent(progress=20, status="Preparing transcript"),
            ProgressEvent(progress=60, status="Generating section 1"),
        ]
        assert isinstance(events[2], CompletedEvent)
        assert events[2].payload["notes"] == "# Notes"

    async def test_ends_quietly_without_terminal_event(
        self, backend: FakeBackend, http: httpx.AsyncClient, transcript: list[TranscriptEntry]
    ) -> None:
        backend.on(
            "/api/notes",
            lambda request: streaming_response([frame({"progress": 40, "status": "Working"})]),
        )

        events = await collect(JobStreamClient(http).stream_job(JobKind.NOTES, transcript))

        assert events == [ProgressEvent(progress=40, status="Working")]

    async def test_unterminated_final_frame(
        self, backend: FakeBackend, http: httpx.AsyncClient, transcript: list[TranscriptEntry]
    ) -> None:
        last = b'data: {"progress": 100, "status": "Done", "notes": "n"}'
        backend.on("/api/notes", lambda request: streaming_response([last]))

        events = await collect(JobStreamClient(http).stream_job(JobKind.NOTES, transcript))

        assert len(events) == 1 and isinstance(events[0], CompletedEvent)

    async def test_only_first_terminal_event(
        self, backend: FakeBackend, http: httpx.AsyncClient, transcript: list[TranscriptEntry]
    ) -> None:
        body = frame({"error": "Model overloaded"}) + frame(
            {"progress": 100, "status": "Done", "summary": [{"text": "S", "ref_id": 0}]}
        )
        backend.on("/api/summary", lambda request: streaming_response([body]))

        events = await collect(JobStreamClient(http).stream_job(JobKind.SUMMARY, transcript))

        assert events == [ErrorEvent(message="Model overloaded", cause=ErrorCause.UPSTREAM)]

    async def test_http_error_status(
        self, backend: FakeBackend, http: httpx.AsyncClient, transcript: list[TranscriptEntry]
    ) -> None:
        backend.on("/api/summary", lambda request: httpx.Response(500, text="boom"))

        events = await collect(JobStreamClient(http).stream_job(JobKind.SUMMARY, transcript))

        assert events == [
            ErrorEvent(message=FAILURE_MESSAGES[JobKind.SUMMARY], cause=ErrorCause.HTTP_STATUS)
        ]

    async def test_malformed_frame(
        self, backend: FakeBackend, http: httpx.AsyncClient, transcript: list[TranscriptEntry]
    ) -> None:
        body = frame({"progress": 10, "status": "Preparing"}) + b"data: oops\n\n"
        backend.on("/api/notes", lambda request: streaming_response([body]))

        events = await collect(JobStreamClient(http).stream_job(JobKind.NOTES, transcript))

        assert events[-1] == ErrorEvent(
            message=FAILURE_MESSAGES[JobKind.NOTES], cause=ErrorCause.MALFORMED
        )

    async def test_transcript_kind_is_not_chunked(
        self, http: httpx.AsyncClient, transcript: list[TranscriptEntry]
    ) -> None:
        with pytest.raises(ValueError):
            await collect(JobStreamClient(http).stream_job(JobKind.TRANSCRIPT, transcript))


# ---------------------------------------------------------------------------
# Connection release (server keeps the connection open)
# ---------------------------------------------------------------------------


class TestConnectionRelease:
    async def test_push_stream_closed_after_completion(
        self, backend: FakeBackend, http: httpx.AsyncClient
    ) -> None:
        body = OpenStream([sse({"progress": 100, "status": "Done", "transcript": []})])
        backend.on("/api/transcript", lambda request: body.response())

        events = await asyncio.wait_for(collect(JobStreamClient(http).stream_transcript("u")), 2)

        assert isinstance(events[-1], CompletedEvent)
        assert body.closed

    async def test_chunked_stream_closed_after_error_frame(
        self, backend: FakeBackend, http: httpx.AsyncClient, transcript: list[TranscriptEntry]
    ) -> None:
        body = OpenStream([frame({"progress": 20, "status": "Preparing"}), frame({"error": "boom"})])
        backend.on("/api/summary", lambda request: body.response("text/plain"))

        events = await asyncio.wait_for(
            collect(JobStreamClient(http).stream_job(JobKind.SUMMARY, transcript)), 2
        )

        assert events[-1] == ErrorEvent(message="boom")
        assert body.closed

    async def test_consumer_stopping_early_closes_push_stream(
        self, backend: FakeBackend, http: httpx.AsyncClient
    ) -> None:
        body = OpenStream(
            [sse({"progress": 10, "status": "Preparing"}), sse({"progress": 20, "status": "Preparing"})]
        )
        backend.on("/api/transcript", lambda request: body.response())

        async with aclosing(JobStreamClient(http).stream_transcript("u")) as events:
            async for event in events:
                assert event == ProgressEvent(progress=10, status="Preparing")
                break

        assert body.closed

    async def test_consumer_stopping_early_closes_chunked_stream(
        self, backend: FakeBackend, http: httpx.AsyncClient, transcript: list[TranscriptEntry]
    ) -> None:
        body = OpenStream(
            [frame({"progress": 10, "status": "Preparing"}), frame({"progress": 40, "status": "Working"})]
        )
        backend.on("/api/notes", lambda request: body.response("text/plain"))

        async with aclosing(JobStreamClient(http).stream_job(JobKind.NOTES, transcript)) as events:
            async for event in events:
                assert isinstance(event, ProgressEvent)
                break

        assert body.closed
