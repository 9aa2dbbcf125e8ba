"""Pipeline configuration: job enums and PipelineConfig dataclass."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class JobKind(str, Enum):
    """Server-side jobs the client orchestrates."""

    TRANSCRIPT = "transcript"
    SUMMARY = "summary"
    NOTES = "notes"


class StepStatus(str, Enum):
    """Progress state of a single job stage."""

    UPCOMING = "upcoming"
    CURRENT = "current"
    COMPLETED = "completed"


# Forward order; a stage never moves to a lower rank within one run.
STEP_RANK: dict[StepStatus, int] = {
    StepStatus.UPCOMING: 0,
    StepStatus.CURRENT: 1,
    StepStatus.COMPLETED: 2,
}


def _default_step_names() -> dict[JobKind, tuple[str, ...]]:
    return {
        JobKind.SUMMARY: ("Prepare", "Chunk", "Summarize", "Finalize"),
        JobKind.NOTES: ("Prepare", "Generate", "Finalize"),
    }


def _default_exclusion_groups() -> tuple[frozenset[JobKind], ...]:
    return (frozenset({JobKind.SUMMARY, JobKind.NOTES}),)


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable configuration for the job pipeline.

    Holds the declared stage names per job and the groups of jobs that may
    not run at the same time.  Defaults mirror the backend's current jobs
    (summary and notes share the transcript and are mutually exclusive).
    """

    step_names: dict[JobKind, tuple[str, ...]] = field(default_factory=_default_step_names)
    exclusion_groups: tuple[frozenset[JobKind], ...] = field(
        default_factory=_default_exclusion_groups
    )

    def conflicts_with(self, kind: JobKind) -> frozenset[JobKind]:
        """Return every job that must be idle before ``kind`` may start."""
        blocked: set[JobKind] = {kind}
        for group in self.exclusion_groups:
            if kind in group:
                blocked |= group
        return frozenset(blocked)
