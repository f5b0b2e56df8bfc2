"""Todo tool for tracking progress through multi-step work."""

from dataclasses import dataclass
from typing import Any

from coworkbot.logging import get_logger
from coworkbot.tools.registry import Tool, ToolResult

log = get_logger(__name__)

_STATUS_MARKS = {"pending": "[ ]", "in_progress": "[~]", "completed": "[x]"}


@dataclass
class TodoItem:
    content: str
    status: str = "pending"


class TodoWriteTool(Tool):
    """In-memory task list the model keeps up to date while it works."""

    name = "todo_write"
    description = (
        "Create and manage a task list for tracking progress on multi-step work. "
        "Use it for tasks with 3+ steps, multiple file operations, or component, "
        "feature, refactoring or setup work. Skip it for simple questions and "
        "single reads. Actions: 'add' an item, 'update' an item's status or "
        "content, 'delete' an item, 'overwrite' the list (one item per line), "
        "'list' the current items."
    )
    parameters = {
        "type": "object",
        "properties": {
            "action": {
                "type": "string",
                "enum": ["add", "update", "delete", "overwrite", "list"],
                "description": "The action to perform on the todo list.",
            },
            "content": {
                "type": "string",
                "description": "Item content (add/update) or full list (overwrite).",
            },
            "index": {
                "type": "number",
                "description": "1-based item number (update/delete).",
            },
            "status": {
                "type": "string",
                "enum": ["pending", "in_progress", "completed"],
                "description": "New status (update).",
            },
        },
        "required": ["action"],
    }

    def __init__(self) -> None:
        self.items: list[TodoItem] = []

    def render(self) -> str:
        if not self.items:
            return "Todo list is empty."
        lines = [
            f"{idx}. {_STATUS_MARKS.get(item.status, '[ ]')} {item.content}"
            for idx, item in enumerate(self.items, 1)
        ]
        done = sum(1 for item in self.items if item.status == "completed")
        return f"Todo ({done}/{len(self.items)} completed):\n" + "\n".join(lines)

    def _item(self, index: Any) -> TodoItem | None:
        try:
            position = int(index)
        except (TypeError, ValueError):
            return None
        if 1 <= position <= len(self.items):
            return self.items[position - 1]
        return None

    async def execute(
        self,
        action: str,
        content: str | None = None,
        index: int | None = None,
        status: str | None = None,
        **kwargs: Any,
    ) -> ToolResult:
        if action == "add":
            if not content or not content.strip():
                return ToolResult(success=False, error="'content' is required for add.")
            self.items.append(TodoItem(content=content.strip()))
        elif action == "overwrite":
            self.items = [
                TodoItem(content=line.strip().lstrip("-*").strip())
                for line in (content or "").splitlines()
                if line.strip().lstrip("-*").strip()
            ]
        elif action == "update":
            item = self._item(index)
            if item is None:
                return ToolResult(success=False, error=f"Todo not found: {index}")
            if status:
                if status not in _STATUS_MARKS:
                    return ToolResult(success=False, error=f"Unknown status: {status}")
                item.status = status
            if content and content.strip():
                item.content = content.strip()
        elif action == "delete":
            item = self._item(index)
            if item is None:
                return ToolResult(success=False, error=f"Todo not found: {index}")
            self.items.remove(item)
        elif action != "list":
            return ToolResult(success=False, error=f"Unknown action: {action}")

        log.debug("Todo list updated", action=action, count=len(self.items))
        return ToolResult(success=True, content=self.render())
