"""File system tools: read, write and list."""

from pathlib import Path
from typing import Any

from coworkbot.logging import get_logger
from coworkbot.tools.registry import Tool, ToolContext, ToolResult

log = get_logger(__name__)

DEFAULT_MAX_READ_BYTES = 100_000


def _context(kwargs: dict[str, Any]) -> ToolContext:
    context = kwargs.get("_context")
    return context if isinstance(context, ToolContext) else ToolContext()


def artifact_type(path: Path) -> str:
    """Artifact type label derived from the file suffix."""
    suffix = path.suffix.lstrip(".").lower()
    return suffix or "file"


class ReadFileTool(Tool):
    """Read file contents."""

    name = "read_file"
    description = "Read the contents of a text file."
    parameters = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path to the file to read",
            },
            "limit": {
                "type": "number",
                "description": "Maximum number of lines to read",
            },
            "offset": {
                "type": "number",
                "description": "Line number to start reading from (1-indexed)",
            },
        },
        "required": ["path"],
    }

    def __init__(self, max_bytes: int = DEFAULT_MAX_READ_BYTES):
        self.max_bytes = max_bytes

    async def execute(self, path: str, limit: int | None = None, offset: int | None = None, **kwargs: Any) -> ToolResult:
        file_path = _context(kwargs).resolve_path(path)

        if not file_path.exists():
            return ToolResult(success=False, error=f"File not found: {path}")
        if not file_path.is_file():
            return ToolResult(success=False, error=f"Not a file: {path}")

        file_size = file_path.stat().st_size
        if file_size > self.max_bytes:
            return ToolResult(
                success=False,
                error=f"File too large: {file_size} bytes (max {self.max_bytes})",
            )

        try:
            content = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            log.error("Read failed", path=path, error=str(e))
            return ToolResult(success=False, error=str(e))

        lines = content.splitlines()
        start = max(1, int(offset or 1))
        lines = lines[start - 1:]
        if limit:
            lines = lines[: int(limit)]
        content = "\n".join(lines)

        info = f"[{file_path} {len(content)} chars]"
        if offset or limit:
            info += f" [lines {start}-{start + len(lines) - 1}]"
        return ToolResult(success=True, content=f"{info}\n{content}")


class WriteFileTool(Tool):
    """Write content to files and report them as artifacts."""

    name = "write_file"
    description = "Create or overwrite a file with content."
    parameters = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path to the file to write",
            },
            "content": {
                "type": "string",
                "description": "Content to write to the file",
            },
            "append": {
                "type": "boolean",
                "description": "Append to file instead of overwriting",
            },
        },
        "required": ["path", "content"],
    }

    async def execute(self, path: str, content: str, append: bool = False, **kwargs: Any) -> ToolResult:
        context = _context(kwargs)
        file_path = context.resolve_path(path)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            mode = "a" if append else "w"
            with open(file_path, mode, encoding="utf-8") as f:
                f.write(content)
        except OSError as e:
            log.error("Write failed", path=path, error=str(e))
            return ToolResult(success=False, error=str(e))

        context.artifact(str(file_path), file_path.name, artifact_type(file_path))
        verb = "Appended" if append else "Written"
        return ToolResult(success=True, content=f"{verb} {len(content)} chars to {file_path}")


class ListDirectoryTool(Tool):
    """List the entries of a directory."""

    name = "list_directory"
    description = "List files and folders in a directory."
    parameters = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Directory to list (default: working directory)",
            },
            "limit": {
                "type": "number",
                "description": "Maximum number of entries (default: 200)",
            },
        },
    }

    async def execute(self, path: str = ".", limit: int = 200, **kwargs: Any) -> ToolResult:
        dir_path = _context(kwargs).resolve_path(path or ".")
        if not dir_path.exists():
            return ToolResult(success=False, error=f"Directory not found: {path}")
        if not dir_path.is_dir():
            return ToolResult(success=False, error=f"Not a directory: {path}")

        entries = sorted(dir_path.iterdir(), key=lambda p: (not p.is_dir(), p.name.lower()))
        total = len(entries)
        entries = entries[: max(1, int(limit))]
        if not entries:
            return ToolResult(success=True, content=f"{dir_path} is empty")

        lines = [f"{entry.name}/" if entry.is_dir() else entry.name for entry in entries]
        output = f"{dir_path} ({total} entries):\n" + "\n".join(f"  {line}" for line in lines)
        if total > len(entries):
            output += f"\n  ... [{total - len(entries)} more]"
        return ToolResult(success=True, content=output)
