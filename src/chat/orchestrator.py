"""Chat orchestrator: sequential question/answer turns against /api/chat."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from src.config import settings
from src.session.models import ChatMessage, ChatResponse, ChatSource
from src.session.state import SessionState

logger = logging.getLogger(__name__)

CHAT_PATH = "/api/chat"
CHAT_ERROR_PREFIX = "An error occurred while processing your message: "


class ChatError(Exception):
    """A chat turn failed; the message is shown to the user."""


class ChatOrchestrator:
    """Send one question at a time and append the answers to the message log.

    Only the latest user message is sent; the backend keeps its own context.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        session: SessionState,
        timeout: float | None = None,
    ) -> None:
        self.http = http
        self.session = session
        self.timeout = timeout if timeout is not None else settings.chat_timeout

    def can_submit(self, text: str) -> bool:
        return self.session.is_transcript_processed and bool(text.strip())

    async def submit(self, text: str | None = None) -> ChatMessage | None:
        """Submit ``text`` (default: the session's chat input).

        Returns the assistant message, or ``None`` when the turn was skipped
        or failed.  A skipped turn makes no request and changes nothing.
        """
        if text is None:
            text = self.session.chat_input
        if not self.can_submit(text):
            return None

        self.session.append_message(ChatMessage(role="user", content=text))
        self.session.set_chat_input("")
        self.session.set_responding(True)
        try:
            response = await self._ask(text)
        except (httpx.HTTPError, ChatError, ValueError) as e:
            message = CHAT_ERROR_PREFIX + str(e)
            logger.warning("Chat turn failed: %s", e)
            self.session.set_error(message)
            return None
        finally:
            self.session.set_responding(False)

        reply = ChatMessage(role="assistant", content=response.answer or "")
        self.session.append_message(reply)
        self.session.set_chat_sources(parse_sources(response.top_chunks))
        return reply

    async def _ask(self, text: str) -> ChatResponse:
        r = await self.http.post(CHAT_PATH, json={"message": text}, timeout=self.timeout)
        if r.is_error:
            raise ChatError(f"HTTP error! status: {r.status_code}, message: {r.text}")

        data = ChatResponse.model_validate(r.json())
        if data.error:
            raise ChatError(data.error)
        if data.answer is None:
            raise ChatError("the server returned no answer")
        logger.debug("Chat answer grounded on %s", data.top_chunks)
        return data


def parse_sources(top_chunks: Any) -> list[ChatSource]:
    """Best-effort conversion of ``top_chunks`` into ChatSource records.

    The field's shape is not fixed by the backend; items that do not look
    like timed transcript excerpts are skipped.
    """
    if not isinstance(top_chunks, list):
        return []
    sources: list[ChatSource] = []
    for chunk in top_chunks:
        try:
            sources.append(ChatSource.model_validate(chunk))
        except ValidationError:
            logger.debug("Skipping unrecognised chat source: %r", chunk)
    return sources
