"""Events emitted by the job stream client."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class ErrorCause(str, Enum):
    """Where a terminal error originated."""

    UPSTREAM = "upstream"  # {error} payload sent by the backend
    TRANSPORT = "transport"  # connect/read failure or unexpected disconnect
    HTTP_STATUS = "http_status"  # non-2xx response
    MALFORMED = "malformed"  # unparseable frame


@dataclass(frozen=True)
class ProgressEvent:
    """Intermediate progress report (``progress < 100``)."""

    progress: int
    status: str
    stage: str | None = None  # structured stage code, when the backend sends one


@dataclass(frozen=True)
class CompletedEvent:
    """Terminal success (``progress == 100``) with the raw result payload."""

    status: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ErrorEvent:
    """Terminal failure."""

    message: str
    cause: ErrorCause = ErrorCause.UPSTREAM


JobEvent = Union[ProgressEvent, CompletedEvent, ErrorEvent]
