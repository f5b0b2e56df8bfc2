"""Tool registry and base tool class."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, Field, model_validator

from coworkbot.content import WorkMode
from coworkbot.exceptions import (
    ToolBlockedError,
    ToolExecutionError,
    ToolNotFoundError,
)
from coworkbot.logging import get_logger

log = get_logger(__name__)


def _normalize_tool_name(value: str) -> str:
    """Normalize tool names for policy comparisons."""
    return str(value or "").strip().lower()


class ToolResult(BaseModel):
    """Result from tool execution."""

    success: bool = True
    content: str = ""
    error: str | None = None

    @model_validator(mode="after")
    def _normalize_failure_error(self) -> "ToolResult":
        """Ensure failed results always provide an error message."""
        if not self.success and not (self.error or "").strip():
            fallback = (self.content or "").strip()
            self.error = fallback or "Tool execution failed"
        return self


@dataclass
class ToolContext:
    """Per-call hooks handed to a tool through the ``_context`` argument."""

    call_id: str = ""
    work_mode: WorkMode = WorkMode.COWORK
    base_path: Path = field(default_factory=Path.cwd)
    on_stream: Callable[[str, str], None] | None = None  # (chunk, "stdout" | "stderr")
    on_artifact: Callable[[str, str, str], None] | None = None  # (path, name, type)
    ask_user: Callable[[str, list[str] | None], Awaitable[str]] | None = None

    def stream(self, chunk: str, stream: str = "stdout") -> None:
        if self.on_stream and chunk:
            self.on_stream(chunk, stream)

    def artifact(self, path: str, name: str, type: str) -> None:
        if self.on_artifact:
            self.on_artifact(path, name, type)

    def resolve_path(self, path: str) -> Path:
        requested = Path(path).expanduser()
        if not requested.is_absolute():
            requested = self.base_path / requested
        return requested.resolve()


class Tool(ABC):
    """Base class for all tools."""

    name: str = ""
    description: str = ""
    parameters: dict[str, Any] = {}
    timeout_seconds: float = 30.0

    @abstractmethod
    async def execute(self, **kwargs: Any) -> ToolResult:
        """Execute the tool.

        Args:
            **kwargs: Tool-specific arguments plus ``_context`` (ToolContext)

        Returns:
            ToolResult with success status and content
        """
        pass

    def get_definition(self) -> dict[str, Any]:
        """Get the tool definition for LLM.

        Returns:
            Function-style definition
        """
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    def validate_arguments(self, arguments: dict[str, Any]) -> None:
        """Validate tool arguments against schema.

        Raises:
            ToolExecutionError if a required argument is missing
        """
        required = self.parameters.get("required", [])
        for name in required:
            if name not in arguments:
                raise ToolExecutionError(
                    self.name,
                    f"Missing required argument: {name}",
                )


class ToolPolicy(BaseModel):
    """Policy rule set for filtering available tools."""

    allow: list[str] | None = None
    deny: list[str] = Field(default_factory=list)
    also_allow: list[str] = Field(default_factory=list)


MODE_POLICIES: dict[WorkMode, ToolPolicy] = {
    WorkMode.CHAT: ToolPolicy(allow=["ask_user_question"]),
    WorkMode.CODE: ToolPolicy(deny=["todo_write"]),
    WorkMode.COWORK: ToolPolicy(),
}


class ToolPolicyChain:
    """Apply policies in cascade: global -> work mode."""

    def __init__(self, steps: list[tuple[str, ToolPolicy]] | None = None):
        self.steps: list[tuple[str, ToolPolicy]] = list(steps or [])

    @staticmethod
    def _normalize_name_set(items: list[str] | None) -> set[str] | None:
        if items is None:
            return None
        return {
            _normalize_tool_name(item)
            for item in items
            if _normalize_tool_name(item)
        }

    def _apply(
        self,
        current_names: set[str],
        all_names: set[str],
        policy: ToolPolicy,
    ) -> set[str]:
        """Apply one policy step against current allowed tool names."""
        next_names = set(current_names)
        allow_names = self._normalize_name_set(policy.allow)
        if allow_names is not None:
            next_names = {name for name in next_names if name in allow_names}

        deny_names = self._normalize_name_set(policy.deny) or set()
        next_names -= deny_names

        also_allow_names = self._normalize_name_set(policy.also_allow) or set()
        next_names |= also_allow_names & all_names
        return next_names

    def resolve(self, available_tools: list[Tool]) -> list[Tool]:
        """Resolve final tool list after applying policy chain."""
        if not self.steps:
            return list(available_tools)

        all_names = {
            _normalize_tool_name(tool.name)
            for tool in available_tools
            if _normalize_tool_name(tool.name)
        }
        current_names = set(all_names)
        for _, policy in self.steps:
            current_names = self._apply(current_names, all_names, policy)

        return [
            tool
            for tool in available_tools
            if _normalize_tool_name(tool.name) in current_names
        ]


class ToolRegistry:
    """Registry for managing available tools.

    Change listeners fire on every register/unregister so callers can drop
    whatever they derived from the tool set.
    """

    def __init__(self, global_policy: ToolPolicy | dict[str, Any] | None = None):
        self._tools: dict[str, Tool] = {}
        self._global_policy = self._coerce_policy(global_policy)
        self._listeners: list[Callable[[], None]] = []

    @staticmethod
    def _coerce_policy(policy: ToolPolicy | dict[str, Any] | None) -> ToolPolicy | None:
        """Coerce policy payload into ToolPolicy model."""
        if policy is None:
            return None
        if isinstance(policy, ToolPolicy):
            return policy
        if isinstance(policy, dict):
            return ToolPolicy(**policy)
        raise TypeError(f"Unsupported policy type: {type(policy)!r}")

    def add_change_listener(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    def remove_change_listener(self, listener: Callable[[], None]) -> None:
        self._listeners = [item for item in self._listeners if item is not listener]

    def _notify_changed(self) -> None:
        for listener in list(self._listeners):
            listener()

    def register(self, tool: Tool) -> None:
        """Register a tool.

        Args:
            tool: Tool instance to register
        """
        if not tool.name:
            raise ValueError("Tool must have a name")

        log.debug("Registering tool", tool=tool.name)
        self._tools[tool.name] = tool
        self._notify_changed()

    def unregister(self, name: str) -> None:
        """Unregister a tool.

        Args:
            name: Tool name to unregister
        """
        if self._tools.pop(name, None) is not None:
            self._notify_changed()

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def set_global_policy(self, policy: ToolPolicy | dict[str, Any] | None) -> None:
        self._global_policy = self._coerce_policy(policy)
        self._notify_changed()

    def _resolve_policy_chain(self, mode: WorkMode | str | None) -> ToolPolicyChain:
        steps: list[tuple[str, ToolPolicy]] = []
        if self._global_policy is not None:
            steps.append(("global", self._global_policy))
        if mode is not None:
            steps.append(("mode", MODE_POLICIES[WorkMode.parse(mode)]))
        return ToolPolicyChain(steps=steps)

    def _resolve_tools(self, mode: WorkMode | str | None = None) -> list[Tool]:
        return self._resolve_policy_chain(mode).resolve(list(self._tools.values()))

    def get(self, name: str) -> Tool:
        """Get a tool by name.

        Raises:
            ToolNotFoundError if not found
        """
        if name not in self._tools:
            raise ToolNotFoundError(name)
        return self._tools[name]

    def list_tool_names(self, mode: WorkMode | str | None = None) -> list[str]:
        return [tool.name for tool in self._resolve_tools(mode)]

    def list_tools(self, mode: WorkMode | str | None = None) -> list[dict[str, Any]]:
        """Tool definitions available in ``mode`` (all tools when None)."""
        return [tool.get_definition() for tool in self._resolve_tools(mode)]

    @staticmethod
    async def _cancel_task(task: asyncio.Task[Any] | None) -> None:
        """Cancel task and await it to avoid pending task warnings."""
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def execute(
        self,
        name: str,
        arguments: dict[str, Any],
        mode: WorkMode | str | None = None,
        context: ToolContext | None = None,
    ) -> str:
        """Execute a tool by name and return its output text.

        Raises:
            ToolNotFoundError if tool not found
            ToolBlockedError if the work mode does not offer the tool
            ToolExecutionError if execution fails or times out
        """
        tool = self.get(name)

        allowed_names = {_normalize_tool_name(item) for item in self.list_tool_names(mode)}
        if _normalize_tool_name(name) not in allowed_names:
            raise ToolBlockedError(name, "Not available in the current work mode")

        tool.validate_arguments(arguments)

        context = context or ToolContext()
        execute_task: asyncio.Task[ToolResult] | None = None
        try:
            log.info("Executing tool", tool=name, call_id=context.call_id)
            timeout_seconds = max(1.0, float(getattr(tool, "timeout_seconds", 30.0) or 30.0))

            execute_task = asyncio.create_task(tool.execute(**arguments, _context=context))
            done, _ = await asyncio.wait({execute_task}, timeout=timeout_seconds)

            if execute_task in done:
                result = await execute_task
                if not isinstance(result, ToolResult):
                    raise ToolExecutionError(name, "Tool returned invalid result payload")
                log.info("Tool executed", tool=name, success=result.success)
                if not result.success:
                    raise ToolExecutionError(name, result.error or "Tool execution failed")
                return result.content

            await self._cancel_task(execute_task)
            timeout_label = int(timeout_seconds) if timeout_seconds.is_integer() else timeout_seconds
            raise ToolExecutionError(name, f"Execution timed out after {timeout_label}s")
        except asyncio.CancelledError:
            await self._cancel_task(execute_task)
            raise
        except ToolExecutionError:
            raise
        except Exception as e:
            log.error("Tool execution failed", tool=name, error=str(e))
            raise ToolExecutionError(name, str(e)) from e
