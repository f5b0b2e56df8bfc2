"""Conversation history, stage and artifacts owned by a single writer."""

from typing import Any

from coworkbot.content import Artifact, Message, Stage, new_message_id
from coworkbot.events import EventDispatcher, EventType
from coworkbot.logging import get_logger

log = get_logger(__name__)

DEFAULT_MAX_HISTORY = 200


class ConversationState:
    """Bounded message history plus the stage of the agent loop.

    Trimming drops whole exchanges from the front. An exchange opens with a
    plain user turn and runs through every tool call, tool result and reply
    that follows it, so history never opens with an assistant turn or with
    tool results whose tool calls were trimmed. When the newest exchange is
    longer than the cap on its own it is kept whole.
    """

    def __init__(
        self,
        dispatcher: EventDispatcher | None = None,
        max_history: int = DEFAULT_MAX_HISTORY,
    ):
        if max_history < 1:
            raise ValueError("max_history must be at least 1")
        self.dispatcher = dispatcher or EventDispatcher()
        self.max_history = max_history
        self._messages: list[Message] = []
        self._artifacts: list[Artifact] = []
        self._stage = Stage.IDLE

    @property
    def messages(self) -> list[Message]:
        """Snapshot of the history; mutate only through this class."""
        return list(self._messages)

    @property
    def stage(self) -> Stage:
        return self._stage

    @property
    def artifacts(self) -> list[Artifact]:
        return list(self._artifacts)

    def __len__(self) -> int:
        return len(self._messages)

    def append(self, message: Message) -> Message:
        """Append a message, assigning an id and enforcing the length cap."""
        if not message.id:
            message.id = new_message_id()
        self._messages.append(message)
        self._trim()
        self.publish_history()
        return message

    def truncate_from(self, message_id: str) -> list[Message]:
        """Remove the message with ``message_id`` and everything after it."""
        for index, message in enumerate(self._messages):
            if message.id == message_id:
                removed = self._messages[index:]
                self._messages = self._messages[:index]
                self.publish_history()
                return removed
        return []

    def set_stage(self, stage: Stage, detail: dict[str, Any] | None = None) -> None:
        """Update the stage; unchanged stage without detail is silent."""
        if self._stage == stage and detail is None:
            return
        self._stage = stage
        payload: dict[str, Any] = {"stage": stage.value}
        if detail is not None:
            payload["detail"] = detail
        self.dispatcher.emit(EventType.STAGE_CHANGED, payload)

    def clear(self) -> None:
        self._messages = []
        self._artifacts = []
        self.publish_history()

    def load(self, messages: list[Message]) -> None:
        """Replace history wholesale with a saved conversation."""
        loaded: list[Message] = []
        for message in messages:
            if not message.id:
                message.id = new_message_id()
            loaded.append(message)
        self._messages = loaded
        self._artifacts = []
        self._trim()
        self.publish_history()

    def add_artifact(self, path: str, name: str, type: str) -> Artifact:
        artifact = Artifact(path=path, name=name, type=type)
        self._artifacts.append(artifact)
        self.dispatcher.emit(EventType.ARTIFACT_CREATED, artifact.to_dict())
        return artifact

    def publish_history(self) -> None:
        self.dispatcher.emit(
            EventType.HISTORY_CHANGED,
            {"messages": [message.to_dict() for message in self._messages]},
        )

    def stats(self) -> dict[str, int]:
        return {
            "total_messages": len(self._messages),
            "user_messages": sum(1 for m in self._messages if m.role == "user"),
            "assistant_messages": sum(1 for m in self._messages if m.role == "assistant"),
            "artifact_count": len(self._artifacts),
        }

    def _trim(self) -> None:
        if len(self._messages) <= self.max_history:
            return
        old_size = len(self._messages)
        starts = [
            index
            for index, message in enumerate(self._messages)
            if message.role == "user" and not message.is_tool_result_turn()
        ]
        if not starts:
            return
        floor = old_size - self.max_history
        fitting = [index for index in starts if index >= floor]
        # A running tool loop keeps its request even past the cap.
        start = fitting[0] if fitting else starts[-1]
        if start == 0:
            return
        self._messages = self._messages[start:]
        log.info("History trimmed", old_size=old_size, new_size=len(self._messages))
