"""Shared fixtures for the client tests."""

from __future__ import annotations

from collections.abc import AsyncIterator

import httpx
import pytest

from src.session.models import TranscriptEntry
from src.session.state import SessionState
from tests.fakes import FakeBackend


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
async def http(backend: FakeBackend) -> AsyncIterator[httpx.AsyncClient]:
    async with backend.client() as client:
        yield client


@pytest.fixture
def transcript() -> list[TranscriptEntry]:
    return [
        TranscriptEntry(id=0, text="Welcome to the lecture.", start=0.0, duration=2.5),
        TranscriptEntry(id=1, text="Today we cover entropy.", start=2.5, duration=3.0),
        TranscriptEntry(id=2, text="Entropy measures uncertainty.", start=5.5, duration=4.0),
        TranscriptEntry(id=3, text="Let's look at an example.", start=9.5, duration=2.0),
    ]


@pytest.fixture
def session() -> SessionState:
    return SessionState()


@pytest.fixture
def processed_session(session: SessionState, transcript: list[TranscriptEntry]) -> SessionState:
    session.set_transcript(transcript)
    session.set_transcript_processed(True)
    return session
