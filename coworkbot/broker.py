"""Correlates human confirmations and answers with the requests that wait on them."""

import asyncio
import uuid
from typing import Any

from coworkbot.events import EventDispatcher, EventType
from coworkbot.logging import get_logger

log = get_logger(__name__)

QUESTION_CLOSED = "Window closed"


class ConfirmationBroker:
    """Tables of pending confirmations and questions keyed by request id.

    Each entry is a one-shot future. ``teardown`` resolves everything still
    pending to its fail-safe default (denied / closed).
    """

    def __init__(self, dispatcher: EventDispatcher | None = None):
        self.dispatcher = dispatcher or EventDispatcher()
        self._confirmations: dict[str, tuple[asyncio.Future[bool], dict[str, Any]]] = {}
        self._questions: dict[str, tuple[asyncio.Future[str], dict[str, Any]]] = {}

    @staticmethod
    def new_confirmation_id() -> str:
        return f"confirm-{uuid.uuid4().hex[:12]}"

    @property
    def pending_count(self) -> int:
        return len(self._confirmations) + len(self._questions)

    def pending_confirmation(self, request_id: str) -> dict[str, Any] | None:
        """Payload of a pending confirmation, if any."""
        entry = self._confirmations.get(request_id)
        return dict(entry[1]) if entry else None

    async def request_confirmation(self, request_id: str, payload: dict[str, Any]) -> bool:
        """Publish a confirmation request and wait for the decision."""
        future: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        data = {**payload, "id": request_id}
        self._confirmations[request_id] = (future, data)
        self.dispatcher.emit(EventType.CONFIRMATION_REQUESTED, data)
        try:
            return await future
        finally:
            self._confirmations.pop(request_id, None)

    async def ask_user(self, question: str, options: list[str] | None = None) -> str:
        """Publish a question and wait for the free-text answer."""
        request_id = uuid.uuid4().hex[:8]
        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        data: dict[str, Any] = {"id": request_id, "question": question, "options": list(options or [])}
        self._questions[request_id] = (future, data)
        self.dispatcher.emit(EventType.QUESTION_REQUESTED, data)
        try:
            return await future
        finally:
            self._questions.pop(request_id, None)

    def respond_confirmation(self, request_id: str, approved: bool) -> bool:
        """Resolve a pending confirmation; unknown ids are ignored."""
        entry = self._confirmations.pop(request_id, None)
        if entry is None:
            return False
        future, _ = entry
        if future.done():
            return False
        future.set_result(bool(approved))
        return True

    def respond_question(self, request_id: str, answer: str) -> bool:
        """Resolve a pending question; unknown ids are ignored."""
        entry = self._questions.pop(request_id, None)
        if entry is None:
            return False
        future, _ = entry
        if future.done():
            return False
        future.set_result(str(answer))
        return True

    def teardown(self) -> int:
        """Resolve every pending request to its default and clear both tables."""
        resolved = 0
        for future, _ in self._confirmations.values():
            if not future.done():
                future.set_result(False)
                resolved += 1
        for future, _ in self._questions.values():
            if not future.done():
                future.set_result(QUESTION_CLOSED)
                resolved += 1
        self._confirmations.clear()
        self._questions.clear()
        log.info("Cleaned up pending requests", count=resolved)
        return resolved
