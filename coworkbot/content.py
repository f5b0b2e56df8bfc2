"""Conversation data model: messages, content blocks, stages."""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Union


def _utcnow_iso() -> str:
    """Return current UTC timestamp in ISO format."""
    return datetime.now(UTC).isoformat()


def new_message_id() -> str:
    return uuid.uuid4().hex


class Stage(str, Enum):
    """What the agent loop is currently doing."""

    IDLE = "IDLE"
    THINKING = "THINKING"
    PLANNING = "PLANNING"
    EXECUTING = "EXECUTING"
    FEEDBACK = "FEEDBACK"


class WorkMode(str, Enum):
    """Named profile selecting the tool set and system prompt."""

    CHAT = "chat"
    CODE = "code"
    COWORK = "cowork"

    @classmethod
    def parse(cls, value: "WorkMode | str") -> "WorkMode":
        if isinstance(value, WorkMode):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            raise ValueError(f"Unknown work mode: {value!r}") from None


@dataclass
class TextBlock:
    text: str


@dataclass
class ImageBlock:
    media_type: str
    data: str


@dataclass
class ToolUseBlock:
    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)

    @property
    def has_input_error(self) -> bool:
        """True when the provider could not parse the tool arguments."""
        return "error" in self.input and "raw" in self.input and len(self.input) == 2


@dataclass
class ToolResultBlock:
    tool_use_id: str
    content: str
    is_error: bool = False


ContentBlock = Union[TextBlock, ImageBlock, ToolUseBlock, ToolResultBlock]


def block_to_dict(block: ContentBlock) -> dict[str, Any]:
    """Serialize a content block into its wire-neutral dict form."""
    if isinstance(block, TextBlock):
        return {"type": "text", "text": block.text}
    if isinstance(block, ImageBlock):
        return {"type": "image", "media_type": block.media_type, "data": block.data}
    if isinstance(block, ToolUseBlock):
        return {"type": "tool_use", "id": block.id, "name": block.name, "input": dict(block.input)}
    if isinstance(block, ToolResultBlock):
        return {
            "type": "tool_result",
            "tool_use_id": block.tool_use_id,
            "content": block.content,
            "is_error": block.is_error,
        }
    raise TypeError(f"Unsupported content block: {type(block)!r}")


def block_from_dict(data: dict[str, Any]) -> ContentBlock:
    """Parse a content block dict produced by ``block_to_dict``."""
    kind = data.get("type")
    if kind == "text":
        return TextBlock(text=str(data.get("text", "")))
    if kind == "image":
        return ImageBlock(media_type=str(data["media_type"]), data=str(data["data"]))
    if kind == "tool_use":
        return ToolUseBlock(
            id=str(data["id"]),
            name=str(data["name"]),
            input=dict(data.get("input") or {}),
        )
    if kind == "tool_result":
        return ToolResultBlock(
            tool_use_id=str(data["tool_use_id"]),
            content=str(data.get("content", "")),
            is_error=bool(data.get("is_error", False)),
        )
    raise ValueError(f"Unknown content block type: {kind!r}")


@dataclass
class Message:
    """A message in the conversation history."""

    role: str  # "user" or "assistant"
    content: str | list[ContentBlock]
    id: str | None = None

    def blocks(self) -> list[ContentBlock]:
        if isinstance(self.content, str):
            return [TextBlock(text=self.content)] if self.content else []
        return list(self.content)

    def tool_uses(self) -> list[ToolUseBlock]:
        return [block for block in self.blocks() if isinstance(block, ToolUseBlock)]

    def text(self) -> str:
        return "\n".join(
            block.text for block in self.blocks() if isinstance(block, TextBlock)
        )

    def is_tool_result_turn(self) -> bool:
        blocks = self.blocks()
        return bool(blocks) and all(isinstance(b, ToolResultBlock) for b in blocks)

    def to_dict(self) -> dict[str, Any]:
        content: Any
        if isinstance(self.content, str):
            content = self.content
        else:
            content = [block_to_dict(block) for block in self.content]
        return {"id": self.id, "role": self.role, "content": content}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        raw = data.get("content", "")
        content: str | list[ContentBlock]
        if isinstance(raw, str):
            content = raw
        else:
            content = [block_from_dict(item) for item in raw]
        return cls(role=str(data["role"]), content=content, id=data.get("id"))


@dataclass
class Artifact:
    """A file produced as a side effect of tool execution."""

    path: str
    name: str
    type: str
    created_at: str = field(default_factory=_utcnow_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "name": self.name,
            "type": self.type,
            "createdAt": self.created_at,
        }


@dataclass
class ToolCallRecord:
    """Transient record of one tool call within a loop iteration."""

    call_id: str
    name: str
    status: str = "running"  # "running", "done", "error"
    streamed_output: list[str] = field(default_factory=list)
    error: str | None = None
