"""Tools package for Coworkbot."""

from coworkbot.config import Config, get_config
from coworkbot.tools.ask_user import AskUserQuestionTool
from coworkbot.tools.files import ListDirectoryTool, ReadFileTool, WriteFileTool
from coworkbot.tools.registry import (
    MODE_POLICIES,
    Tool,
    ToolContext,
    ToolPolicy,
    ToolPolicyChain,
    ToolRegistry,
    ToolResult,
)
from coworkbot.tools.shell import RunCommandTool, is_blocked_shell_command
from coworkbot.tools.todo import TodoWriteTool


def create_default_registry(config: Config | None = None) -> ToolRegistry:
    """Registry holding the built-in tools configured from ``config``."""
    config = config or get_config()
    registry = ToolRegistry()
    registry.register(ReadFileTool(max_bytes=config.tools.read_max_bytes))
    registry.register(WriteFileTool())
    registry.register(ListDirectoryTool())
    registry.register(
        RunCommandTool(timeout=config.tools.shell.timeout, blocked=config.tools.shell.blocked)
    )
    registry.register(TodoWriteTool())
    registry.register(AskUserQuestionTool())
    return registry


__all__ = [
    "AskUserQuestionTool",
    "ListDirectoryTool",
    "MODE_POLICIES",
    "ReadFileTool",
    "RunCommandTool",
    "TodoWriteTool",
    "Tool",
    "ToolContext",
    "ToolPolicy",
    "ToolPolicyChain",
    "ToolRegistry",
    "ToolResult",
    "WriteFileTool",
    "create_default_registry",
    "is_blocked_shell_command",
]
