"""Pipeline orchestrator: lifecycle of the transcription, summary and notes jobs."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, Union

from pydantic import TypeAdapter, ValidationError

from src.pipeline.steps import DEFAULT_MATCHER, StageMatcher, advance, completed_steps, reset_steps
from src.pipeline_config import JobKind, PipelineConfig
from src.session.models import (
    ChatMessage,
    Completed,
    Failed,
    Idle,
    Lifecycle,
    PipelineRunState,
    Running,
    SummaryEntry,
    TranscriptEntry,
)
from src.session.state import SessionState
from src.streaming.client import JobStreamClient
from src.streaming.errors import FAILURE_MESSAGES
from src.streaming.models import CompletedEvent, ErrorEvent, JobEvent, ProgressEvent

logger = logging.getLogger(__name__)

_TRANSCRIPT = TypeAdapter(list[TranscriptEntry])
_SUMMARY = TypeAdapter(list[SummaryEntry])


@dataclass(frozen=True)
class JobBusy:
    """A start was refused because a conflicting run is in flight."""

    kind: JobKind
    running: JobKind


@dataclass(frozen=True)
class JobRejected:
    """A start was refused because its preconditions do not hold."""

    kind: JobKind
    reason: str


StartOutcome = Union[Completed, Failed, Idle, JobBusy, JobRejected]


class PipelineOrchestrator:
    """Start jobs, follow their streams and write results into the session.

    At most one run per job is in flight; jobs sharing an exclusion group in
    ``PipelineConfig`` also exclude each other.  A refused start returns
    ``JobBusy`` without opening a connection.  Lifecycles live on the session,
    so every orchestrator built over the same session shares one guard.
    """

    def __init__(
        self,
        client: JobStreamClient,
        session: SessionState,
        config: PipelineConfig | None = None,
        matcher: StageMatcher = DEFAULT_MATCHER,
    ) -> None:
        self.client = client
        self.session = session
        self.config = config or PipelineConfig()
        self.matcher = matcher
        # Called with the job kind after every state change, in event order.
        self.listeners: list[Callable[[JobKind], None]] = []
        for kind in (JobKind.SUMMARY, JobKind.NOTES):
            if not self.session.steps(kind):
                self.session.set_steps(kind, reset_steps(kind, self.config))

    def lifecycle(self, kind: JobKind) -> Lifecycle:
        return self.session.lifecycle(kind)

    def is_running(self, kind: JobKind) -> bool:
        return isinstance(self.session.lifecycle(kind), Running)

    def running_conflict(self, kind: JobKind) -> JobKind | None:
        """Return a running job that blocks ``kind`` from starting, if any."""
        for other in sorted(self.config.conflicts_with(kind), key=lambda k: k is not kind):
            if self.is_running(other):
                return other
        return None

    # ------------------------------------------------------------------
    # Job entry points
    # ------------------------------------------------------------------

    async def transcribe(self, video_url: str) -> StartOutcome:
        """Transcribe ``video_url``; on success the transcript replaces the old one."""
        if not video_url.strip():
            return JobRejected(JobKind.TRANSCRIPT, "no video URL given")
        return await self._run(
            JobKind.TRANSCRIPT,
            lambda: self.client.stream_transcript(video_url),
            self._finish_transcript,
        )

    async def summarize(self) -> StartOutcome:
        """Summarize the current transcript."""
        return await self._run_on_transcript(JobKind.SUMMARY, self._finish_summary)

    async def make_notes(self) -> StartOutcome:
        """Generate study notes from the current transcript."""
        return await self._run_on_transcript(JobKind.NOTES, self._finish_notes)

    async def _run_on_transcript(
        self, kind: JobKind, finish: Callable[[dict[str, Any]], Any]
    ) -> StartOutcome:
        if not self.session.is_transcript_processed:
            return JobRejected(kind, "no processed transcript")
        transcript = self.session.transcript
        return await self._run(kind, lambda: self.client.stream_job(kind, transcript), finish)

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    async def _run(
        self,
        kind: JobKind,
        open_stream: Callable[[], AsyncIterator[JobEvent]],
        finish: Callable[[dict[str, Any]], Any],
    ) -> StartOutcome:
        # Everything up to the first await runs atomically on the event loop,
        # so the busy check and the switch to Running cannot interleave.
        running = self.running_conflict(kind)
        if running is not None:
            logger.info("Refusing to start %s while %s is running", kind.value, running.value)
            return JobBusy(kind, running)

        run_id = self.session.next_run_id()
        self.session.set_lifecycle(kind, Running(run_id))
        self._begin(kind)
        logger.info("Started %s run %d", kind.value, run_id)
        self._notify(kind)

        outcome: Completed | Failed | Idle = Idle()
        try:
            async with aclosing(open_stream()) as events:
                async for event in events:
                    if isinstance(event, ProgressEvent):
                        self._on_progress(kind, event)
                    elif isinstance(event, ErrorEvent):
                        outcome = self._fail(kind, event.message)
                        break
                    elif isinstance(event, CompletedEvent):
                        outcome = self._complete(kind, event, finish)
                        break
        finally:
            state = self.session.run_state(kind)
            state.loading = False
            self.session.set_run_state(kind, state)
            self.session.set_lifecycle(kind, outcome)
            logger.info("%s run %d ended: %s", kind.value, run_id, type(outcome).__name__)
            self._notify(kind)
        return outcome

    def _notify(self, kind: JobKind) -> None:
        for listener in self.listeners:
            listener(kind)

    def _begin(self, kind: JobKind) -> None:
        self.session.set_error(None)
        self.session.set_run_state(kind, PipelineRunState(loading=True))
        if kind is JobKind.TRANSCRIPT:
            self.session.set_transcript([])
            self.session.set_summary([])
            self.session.set_notes("")
            self.session.set_transcript_processed(False)
            self.session.set_highlight(None)
        elif kind is JobKind.SUMMARY:
            self.session.set_summary([])
        else:
            self.session.set_notes("")
        if kind is not JobKind.TRANSCRIPT:
            self.session.set_steps(kind, reset_steps(kind, self.config))

    def _on_progress(self, kind: JobKind, event: ProgressEvent) -> None:
        state = self.session.run_state(kind)
        state.progress = max(state.progress, event.progress)
        state.status = event.status
        self.session.set_run_state(kind, state)
        if kind is not JobKind.TRANSCRIPT:
            steps = advance(kind, self.session.steps(kind), event.status, event.stage, self.matcher)
            self.session.set_steps(kind, steps)
        self._notify(kind)

    def _fail(self, kind: JobKind, message: str) -> Failed:
        state = self.session.run_state(kind)
        state.error = message
        self.session.set_run_state(kind, state)
        self.session.set_error(message)
        logger.warning("%s run failed: %s", kind.value, message)
        return Failed(message)

    def _complete(
        self,
        kind: JobKind,
        event: CompletedEvent,
        finish: Callable[[dict[str, Any]], Any],
    ) -> Completed | Failed:
        try:
            result = finish(event.payload)
        except (KeyError, ValidationError):
            logger.exception("%s completion payload is missing its result", kind.value)
            return self._fail(kind, FAILURE_MESSAGES[kind])

        state = self.session.run_state(kind)
        state.progress = 100
        state.status = event.status
        self.session.set_run_state(kind, state)
        if kind is not JobKind.TRANSCRIPT:
            self.session.set_steps(kind, completed_steps(self.session.steps(kind)))
        return Completed(result)

    # ------------------------------------------------------------------
    # Result writers
    # ------------------------------------------------------------------

    def _finish_transcript(self, payload: dict[str, Any]) -> list[TranscriptEntry]:
        entries = _TRANSCRIPT.validate_python(payload["transcript"])
        self.session.set_transcript(entries)
        self.session.set_transcript_processed(True)
        logger.info("Transcript ready: %d entries", len(entries))
        return entries

    def _finish_summary(self, payload: dict[str, Any]) -> list[SummaryEntry]:
        entries = _SUMMARY.validate_python(payload["summary"])
        self.session.set_summary(entries)
        if entries:
            self.session.append_message(
                ChatMessage(role="assistant", content=f"Summary:\n\n{entries[0].text}")
            )
        else:
            logger.warning("Summary job completed with no entries")
        return entries

    def _finish_notes(self, payload: dict[str, Any]) -> str:
        notes = payload["notes"]
        if not isinstance(notes, str) or not notes:
            raise KeyError("notes")
        self.session.set_notes(notes)
        self.session.append_message(ChatMessage(role="assistant", content=f"Study Notes:\n\n{notes}"))
        return notes
