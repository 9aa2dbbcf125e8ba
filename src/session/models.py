"""Data models for the client session.

Wire payloads received from the backend are pydantic models; records the
client builds and owns itself are dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Union

from pydantic import BaseModel

from src.pipeline_config import StepStatus


class TranscriptEntry(BaseModel):
    """One timed segment of the source audio."""

    id: int
    text: str
    start: float
    duration: float


class SummaryEntry(BaseModel):
    """A generated summary block."""

    text: str
    ref_id: int | None = None


class ChatSource(BaseModel):
    """A transcript excerpt the backend used to ground a chat answer."""

    text: str
    start: float
    duration: float


class ChatResponse(BaseModel):
    """Response body of the /api/chat endpoint."""

    answer: str | None = None
    top_chunks: Any = None
    error: str | None = None


@dataclass(frozen=True)
class Step:
    """One named stage of a multi-stage job."""

    name: str
    status: StepStatus = StepStatus.UPCOMING


@dataclass(frozen=True)
class ChatMessage:
    """One turn in the conversation. Content may embed citation markers."""

    role: Literal["user", "assistant"]
    content: str


@dataclass
class PipelineRunState:
    """Transient state of one job's current (or last) run."""

    loading: bool = False
    progress: int = 0
    status: str = ""
    error: str | None = None


@dataclass(frozen=True)
class Idle:
    """No run has started, or the last run ended without a terminal event."""


@dataclass(frozen=True)
class Running:
    run_id: int


@dataclass(frozen=True)
class Completed:
    result: Any


@dataclass(frozen=True)
class Failed:
    error: str


Lifecycle = Union[Idle, Running, Completed, Failed]


def format_timestamp(seconds: float) -> str:
    """Format a position in seconds as ``HH:MM:SS`` (each component floored)."""
    total = max(0, int(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
