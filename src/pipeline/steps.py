"""Step tracker: map job status reports onto each job's declared stages.

The backend reports progress as human-readable status text.  Turning that
text into a stage code is the job of a ``StageMatcher``; the transition
table below only deals in stage codes, so the matching strategy can change
without touching the state machine.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from src.pipeline_config import STEP_RANK, JobKind, PipelineConfig, StepStatus
from src.session.models import Step

PREPARING = "preparing"
CHUNKING = "chunking"
GENERATING = "generating"
FINALIZING = "finalizing"

KEEP = None
CURRENT = StepStatus.CURRENT
DONE = StepStatus.COMPLETED

# Target status per stage index for each stage code (KEEP leaves the stage alone).
TRANSITIONS: dict[JobKind, dict[str, tuple[StepStatus | None, ...]]] = {
    JobKind.SUMMARY: {
        PREPARING: (CURRENT, KEEP, KEEP, KEEP),
        # chunking and summarizing run concurrently on the server
        CHUNKING: (DONE, CURRENT, CURRENT, KEEP),
        FINALIZING: (DONE, DONE, DONE, CURRENT),
    },
    JobKind.NOTES: {
        PREPARING: (CURRENT, KEEP, KEEP),
        GENERATING: (DONE, CURRENT, KEEP),
        FINALIZING: (DONE, DONE, CURRENT),
    },
}


class StageMatcher(Protocol):
    """Decide which stage code a status report refers to."""

    def match(self, kind: JobKind, status: str, stage: str | None = None) -> str | None: ...


class SubstringStageMatcher:
    """Compatibility mapping from status text to stage codes.

    Rules are ``(needle, stage)`` pairs checked in order; the first needle
    found in the status wins.  When nothing matches the job's default stage
    (possibly ``None``) is returned.
    """

    RULES: dict[JobKind, tuple[tuple[str, str], ...]] = {
        JobKind.SUMMARY: (
            ("Preparing", PREPARING),
            ("chunk", CHUNKING),
            ("Finalizing", FINALIZING),
        ),
        JobKind.NOTES: (
            ("Preparing", PREPARING),
            ("Finalizing", FINALIZING),
        ),
    }
    DEFAULTS: dict[JobKind, str | None] = {
        JobKind.SUMMARY: None,
        JobKind.NOTES: GENERATING,
    }

    def match(self, kind: JobKind, status: str, stage: str | None = None) -> str | None:
        for needle, code in self.RULES.get(kind, ()):
            if needle in status:
                return code
        return self.DEFAULTS.get(kind)


class StructuredStageMatcher:
    """Prefer a structured ``stage`` code sent by the backend.

    Unknown or missing codes fall back to ``fallback``.
    """

    def __init__(self, fallback: StageMatcher | None = None) -> None:
        self.fallback = fallback or SubstringStageMatcher()

    def match(self, kind: JobKind, status: str, stage: str | None = None) -> str | None:
        if stage is not None and stage.lower() in TRANSITIONS.get(kind, {}):
            return stage.lower()
        return self.fallback.match(kind, status)


DEFAULT_MATCHER: StageMatcher = StructuredStageMatcher()


def reset_steps(kind: JobKind, config: PipelineConfig | None = None) -> list[Step]:
    """Return the job's stages, all ``upcoming``."""
    config = config or PipelineConfig()
    return [Step(name=name) for name in config.step_names.get(kind, ())]


def advance(
    kind: JobKind,
    steps: Sequence[Step],
    status: str,
    stage: str | None = None,
    matcher: StageMatcher = DEFAULT_MATCHER,
) -> list[Step]:
    """Return the stages after a status report.

    Pure: ``steps`` is not modified.  A stage never moves backward, so a late
    or repeated report cannot demote a stage already marked completed.
    """
    code = matcher.match(kind, status, stage)
    targets = TRANSITIONS.get(kind, {}).get(code) if code else None
    if targets is None:
        return list(steps)

    advanced: list[Step] = []
    for index, step in enumerate(steps):
        target = targets[index] if index < len(targets) else None
        if target is not None and STEP_RANK[target] > STEP_RANK[step.status]:
            step = Step(name=step.name, status=target)
        advanced.append(step)
    return advanced


def completed_steps(steps: Sequence[Step]) -> list[Step]:
    """Mark every stage completed (a run at 100% has finished all of them)."""
    return [Step(name=step.name, status=StepStatus.COMPLETED) for step in steps]
