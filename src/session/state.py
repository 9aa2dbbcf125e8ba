"""Session state container.

Each slot has one owner and one update method:

* pipeline slots (transcript, summary, notes, run states, steps, job
  lifecycles) belong to the pipeline orchestrator;
* the message log, chat input, sources and responding flag belong to the
  chat orchestrator (the pipeline only appends synthesized assistant
  messages through ``append_message``);
* the highlighted entry belongs to the reference resolver.

Readers get copies or immutable views, never the live lists.
"""

from __future__ import annotations

import itertools
from collections.abc import Iterable, Sequence
from dataclasses import replace

from src.pipeline_config import JobKind
from src.session.models import (
    ChatMessage,
    ChatSource,
    Idle,
    Lifecycle,
    PipelineRunState,
    Step,
    SummaryEntry,
    TranscriptEntry,
)


class SessionState:
    """In-memory state of one user session (nothing is persisted)."""

    def __init__(self) -> None:
        self._transcript: list[TranscriptEntry] = []
        self._summary: list[SummaryEntry] = []
        self._notes = ""
        self._transcript_processed = False
        self._runs: dict[JobKind, PipelineRunState] = {kind: PipelineRunState() for kind in JobKind}
        self._steps: dict[JobKind, list[Step]] = {kind: [] for kind in JobKind}
        self._lifecycles: dict[JobKind, Lifecycle] = {kind: Idle() for kind in JobKind}
        self._run_ids = itertools.count(1)

        self._messages: list[ChatMessage] = []
        self._chat_sources: list[ChatSource] = []
        self._chat_input = ""
        self._responding = False

        self._highlighted_entry_id: int | None = None
        self._error: str | None = None

    # ------------------------------------------------------------------
    # Pipeline slots
    # ------------------------------------------------------------------

    @property
    def transcript(self) -> list[TranscriptEntry]:
        return list(self._transcript)

    def set_transcript(self, entries: Iterable[TranscriptEntry]) -> None:
        """Replace the transcript wholesale."""
        self._transcript = list(entries)

    @property
    def summary(self) -> list[SummaryEntry]:
        return list(self._summary)

    def set_summary(self, entries: Iterable[SummaryEntry]) -> None:
        self._summary = list(entries)

    @property
    def notes(self) -> str:
        return self._notes

    def set_notes(self, notes: str) -> None:
        self._notes = notes

    @property
    def is_transcript_processed(self) -> bool:
        """True once a transcription run has completed; gates chat."""
        return self._transcript_processed

    def set_transcript_processed(self, processed: bool) -> None:
        self._transcript_processed = processed

    def run_state(self, kind: JobKind) -> PipelineRunState:
        return replace(self._runs[kind])

    def set_run_state(self, kind: JobKind, state: PipelineRunState) -> None:
        self._runs[kind] = replace(state)

    def steps(self, kind: JobKind) -> list[Step]:
        return list(self._steps[kind])

    def set_steps(self, kind: JobKind, steps: Sequence[Step]) -> None:
        self._steps[kind] = list(steps)

    def is_loading(self, kind: JobKind) -> bool:
        return self._runs[kind].loading

    def lifecycle(self, kind: JobKind) -> Lifecycle:
        return self._lifecycles[kind]

    def set_lifecycle(self, kind: JobKind, lifecycle: Lifecycle) -> None:
        self._lifecycles[kind] = lifecycle

    def next_run_id(self) -> int:
        """Run ids are unique for the life of the session, across orchestrators."""
        return next(self._run_ids)

    # ------------------------------------------------------------------
    # Chat slots
    # ------------------------------------------------------------------

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    def append_message(self, message: ChatMessage) -> None:
        """Append to the message log. Messages are never edited or removed."""
        self._messages.append(message)

    @property
    def chat_sources(self) -> list[ChatSource]:
        return list(self._chat_sources)

    def set_chat_sources(self, sources: Iterable[ChatSource]) -> None:
        self._chat_sources = list(sources)

    @property
    def chat_input(self) -> str:
        return self._chat_input

    def set_chat_input(self, text: str) -> None:
        self._chat_input = text

    @property
    def responding(self) -> bool:
        return self._responding

    def set_responding(self, responding: bool) -> None:
        self._responding = responding

    # ------------------------------------------------------------------
    # Shared display state
    # ------------------------------------------------------------------

    @property
    def highlighted_entry_id(self) -> int | None:
        return self._highlighted_entry_id

    def set_highlight(self, entry_id: int | None) -> None:
        self._highlighted_entry_id = entry_id

    @property
    def error(self) -> str | None:
        """The most recent error message; each new error overwrites it."""
        return self._error

    def set_error(self, message: str | None) -> None:
        self._error = message
