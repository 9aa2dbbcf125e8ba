"""Bridge between Streamlit script runs and the async job/chat orchestrators."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx
import streamlit as st

from src.chat.orchestrator import ChatOrchestrator
from src.pipeline.orchestrator import (
    JobBusy,
    JobRejected,
    PipelineOrchestrator,
    StartOutcome,
)
from src.pipeline_config import JobKind
from src.references.resolver import ReferenceResolver, ScrollRequest
from src.session.models import ChatMessage
from src.session.state import SessionState
from src.streaming.client import JobStreamClient, create_http_client

T = TypeVar("T")

_SESSION_KEY = "video_session"
SCROLL_KEY = "scroll_request"


def get_session() -> SessionState:
    """Return this browser session's state, creating it on first use."""
    if _SESSION_KEY not in st.session_state:
        st.session_state[_SESSION_KEY] = SessionState()
    return st.session_state[_SESSION_KEY]  # type: ignore[no-any-return]


def get_resolver() -> ReferenceResolver:
    """Resolver whose scroll requests are picked up by the next render."""

    def scroll(request: ScrollRequest) -> None:
        st.session_state[SCROLL_KEY] = request

    return ReferenceResolver(get_session(), on_scroll=scroll)


def _run_with_http(action: Callable[[httpx.AsyncClient], Awaitable[T]]) -> T:
    # An AsyncClient is bound to the loop it first runs on and every script
    # run gets a fresh loop from asyncio.run, so the client is per call too.
    async def main() -> T:
        async with create_http_client() as http:
            return await action(http)

    return asyncio.run(main())


def _report(outcome: StartOutcome) -> StartOutcome:
    # Failures are recorded on the session and shown by the error banner.
    # The busy guard lives on the session, so it holds across script runs.
    if isinstance(outcome, JobBusy):
        st.warning(f"Please wait for the {outcome.running.value} job to finish.")
    elif isinstance(outcome, JobRejected):
        st.warning(f"Cannot start {outcome.kind.value}: {outcome.reason}.")
    return outcome


def run_job(
    kind: JobKind,
    on_update: Callable[[JobKind], None] | None = None,
    video_url: str = "",
) -> StartOutcome:
    """Run one job to its end, calling ``on_update`` after each state change."""
    session = get_session()

    async def action(http: httpx.AsyncClient) -> StartOutcome:
        # a fresh orchestrator per run; lifecycles and run ids are read from the session
        pipeline = PipelineOrchestrator(JobStreamClient(http), session)
        if on_update is not None:
            pipeline.listeners.append(on_update)
        if kind is JobKind.TRANSCRIPT:
            return await pipeline.transcribe(video_url)
        if kind is JobKind.SUMMARY:
            return await pipeline.summarize()
        return await pipeline.make_notes()

    return _report(_run_with_http(action))


def send_chat(text: str) -> ChatMessage | None:
    """Submit one chat turn; failures are recorded on the session."""
    session = get_session()
    return _run_with_http(lambda http: ChatOrchestrator(http, session).submit(text))
