"""Outbound notifications and the observer interface."""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Protocol

from coworkbot.logging import get_logger

log = get_logger(__name__)


class EventType(str, Enum):
    STAGE_CHANGED = "stage-changed"
    TOKEN_EMITTED = "token-emitted"
    TOOL_CALL_STARTED = "tool-call-started"
    TOOL_CALL_FINISHED = "tool-call-finished"
    TOOL_OUTPUT_CHUNK = "tool-output-chunk"
    HISTORY_CHANGED = "history-changed"
    ERROR = "error"
    CONFIRMATION_REQUESTED = "confirmation-requested"
    QUESTION_REQUESTED = "question-requested"
    ARTIFACT_CREATED = "artifact-created"
    TODO_RECOMMENDED = "todo-recommended"
    STATUS = "status"


@dataclass(frozen=True)
class AgentEvent:
    type: EventType
    payload: dict[str, Any] = field(default_factory=dict)


class AgentObserver(Protocol):
    """Receives every outbound notification of the agent."""

    def on_event(self, event: AgentEvent) -> None: ...


class CallbackObserver:
    """Adapt a plain callable into an observer."""

    def __init__(self, callback: Callable[[AgentEvent], None]):
        self._callback = callback

    def on_event(self, event: AgentEvent) -> None:
        self._callback(event)


class EventChannel:
    """Bounded outbound queue; the oldest event is dropped when full."""

    def __init__(self, maxsize: int = 1000):
        self.queue: asyncio.Queue[AgentEvent] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def on_event(self, event: AgentEvent) -> None:
        if self.queue.full():
            self.queue.get_nowait()
            self.dropped += 1
        self.queue.put_nowait(event)

    async def get(self) -> AgentEvent:
        return await self.queue.get()

    def drain(self) -> list[AgentEvent]:
        events: list[AgentEvent] = []
        while not self.queue.empty():
            events.append(self.queue.get_nowait())
        return events


class EventDispatcher:
    """Fan events out to the injected observers.

    A failing observer is logged and skipped; it never reaches the agent loop.
    """

    def __init__(self, observers: Iterable[AgentObserver] | None = None):
        self._observers: list[AgentObserver] = list(observers or [])

    def subscribe(self, observer: AgentObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def unsubscribe(self, observer: AgentObserver) -> None:
        self._observers = [item for item in self._observers if item is not observer]

    def emit(self, event_type: EventType, payload: dict[str, Any] | None = None) -> None:
        event = AgentEvent(type=event_type, payload=dict(payload or {}))
        for observer in list(self._observers):
            try:
                observer.on_event(event)
            except Exception as e:
                log.warning("Observer failed", event=event_type.value, error=str(e))
