"""Citation markers: parse ``[n]`` / ``[n, m]`` tokens and link them to transcript entries."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Union

from src.session.models import TranscriptEntry
from src.session.state import SessionState

logger = logging.getLogger(__name__)

# Capturing group keeps the markers in re.split output.
CITATION_PATTERN: re.Pattern[str] = re.compile(r"(\[\d+(?:,\s*\d+)*\])")
_MARKER: re.Pattern[str] = re.compile(r"\[(\d+(?:,\s*\d+)*)\]")


@dataclass(frozen=True)
class TextSegment:
    """Plain text between citation markers, preserved verbatim."""

    text: str


@dataclass(frozen=True)
class ReferenceMarker:
    """One citation number; ``[5, 6]`` yields two markers."""

    number: int
    label: str


Segment = Union[TextSegment, ReferenceMarker]


@dataclass(frozen=True)
class ScrollRequest:
    """Ask the display layer to bring a transcript entry into view."""

    entry_id: int
    behavior: str = "smooth"
    block: str = "center"


def split_references(text: str) -> list[Segment]:
    """Split ``text`` into plain-text segments and citation markers, in order.

    Joining the ``TextSegment`` texts gives back ``text`` with the markers
    removed.
    """
    segments: list[Segment] = []
    for part in CITATION_PATTERN.split(text):
        if not part:
            continue
        match = _MARKER.fullmatch(part)
        if match is None:
            segments.append(TextSegment(part))
            continue
        for label in (n.strip() for n in match.group(1).split(",")):
            segments.append(ReferenceMarker(number=int(label), label=label))
    return segments


def nearest_entry(entries: Sequence[TranscriptEntry], ref_number: int) -> TranscriptEntry | None:
    """Return the entry whose id is closest to the 1-based ``ref_number``.

    Ties go to the first entry encountered.  This tolerates off-by-one
    numbering from the generator; it is not an exact lookup.
    """
    target = ref_number - 1
    closest: TranscriptEntry | None = None
    smallest = float("inf")
    for entry in entries:
        difference = abs(entry.id - target)
        if difference < smallest:
            smallest = difference
            closest = entry
    return closest


class ReferenceResolver:
    """Resolve activated markers against the session's current transcript.

    Reads transcript entries, never mutates them.  The highlight it sets
    persists until ``clear_highlight`` is called.
    """

    def __init__(
        self,
        session: SessionState,
        on_scroll: Callable[[ScrollRequest], None] | None = None,
    ) -> None:
        self.session = session
        self.on_scroll = on_scroll

    def activate(self, ref_number: int) -> TranscriptEntry | None:
        """Scroll to and highlight the entry nearest ``ref_number``."""
        entry = nearest_entry(self.session.transcript, ref_number)
        if entry is None:
            logger.debug("No transcript entries to resolve [%d] against", ref_number)
            return None

        if entry.id != ref_number - 1:
            logger.debug("Citation [%d] resolved to nearest entry id %d", ref_number, entry.id)
        if self.on_scroll is not None:
            self.on_scroll(ScrollRequest(entry_id=entry.id))
        self.session.set_highlight(entry.id)
        return entry

    def clear_highlight(self) -> None:
        self.session.set_highlight(None)
