"""Shell tool that streams command output while it runs."""

import asyncio
import os
import re
import shlex
from typing import Any

from coworkbot.logging import get_logger
from coworkbot.tools.registry import Tool, ToolContext, ToolResult

log = get_logger(__name__)

MAX_OUTPUT_CHARS = 10_000

_ASSIGNMENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*=.*$")
_SHELL_SEPARATOR_TOKENS = {";", "&&", "||", "|", "&"}
_SHELL_WRAPPER_TOKENS = {"sudo", "command", "builtin", "nohup", "time"}


def _compile_shell_pattern(pattern: str) -> re.Pattern[str]:
    """Compile regex pattern with literal fallback for invalid regex input."""
    try:
        return re.compile(pattern)
    except re.error:
        return re.compile(re.escape(pattern))


def _split_shell_segments(command: str) -> list[list[str]]:
    """Split shell command into tokenized segments separated by control operators."""
    lexer = shlex.shlex(command, posix=True, punctuation_chars=";&|")
    lexer.whitespace_split = True
    lexer.commenters = ""
    segments: list[list[str]] = []
    current: list[str] = []
    for token in lexer:
        if token in _SHELL_SEPARATOR_TOKENS:
            if current:
                segments.append(current)
                current = []
            continue
        current.append(token)
    if current:
        segments.append(current)
    return segments


def _segment_base_command(tokens: list[str]) -> str:
    """Executable token of a segment, skipping wrappers and env assignments."""
    for token in tokens:
        token = str(token).strip()
        if not token or token in _SHELL_WRAPPER_TOKENS:
            continue
        if _ASSIGNMENT_RE.match(token) and "/" not in token:
            continue
        return token
    return ""


def is_blocked_shell_command(command: str, blocked_patterns: list[str]) -> tuple[bool, str]:
    """Evaluate command against blocked patterns.

    Patterns containing whitespace are searched in each whole segment; single
    word patterns are matched against each segment's base command.
    """
    cleaned = str(command or "").strip()
    if not cleaned:
        return True, "empty_command"

    try:
        segments = _split_shell_segments(cleaned)
    except ValueError:
        return True, "unparseable_command"

    segment_texts = [" ".join(tokens) for tokens in segments]
    base_commands = [base for segment in segments if (base := _segment_base_command(segment))]
    if not base_commands:
        return True, "unparseable_command"

    for raw_pattern in blocked_patterns or []:
        pattern = str(raw_pattern or "").strip()
        if not pattern:
            continue
        compiled = _compile_shell_pattern(pattern)
        segment_level_pattern = bool(re.search(r"\s", pattern))
        targets = segment_texts if segment_level_pattern else base_commands
        matcher = compiled.search if segment_level_pattern else compiled.match
        for target in targets:
            if matcher(target):
                return True, pattern
    return False, ""


class RunCommandTool(Tool):
    """Execute shell commands."""

    name = "run_command"
    description = "Execute a shell command in the working directory and return its output."
    parameters = {
        "type": "object",
        "properties": {
            "command": {
                "type": "string",
                "description": "The shell command to execute",
            },
            "cwd": {
                "type": "string",
                "description": "Working directory (optional)",
            },
        },
        "required": ["command"],
    }

    def __init__(self, timeout: float = 60.0, blocked: list[str] | None = None):
        self.timeout_seconds = float(timeout or 60.0)
        self.blocked = list(blocked or [])

    async def execute(self, command: str, cwd: str | None = None, **kwargs: Any) -> ToolResult:
        blocked, matched = is_blocked_shell_command(command, self.blocked)
        if blocked:
            if matched == "empty_command":
                reason = "Command is empty"
            elif matched == "unparseable_command":
                reason = "Command is not parseable"
            else:
                reason = f"Command matches blocked pattern: {matched}"
            log.warning("Blocked unsafe command", command=command, reason=reason)
            return ToolResult(success=False, error=f"Command blocked: {reason}")

        context = kwargs.get("_context")
        if not isinstance(context, ToolContext):
            context = ToolContext()

        workdir = context.resolve_path(cwd) if cwd else context.base_path
        log.info("Executing shell command", command=command, cwd=str(workdir))

        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(workdir),
            env=os.environ.copy(),
        )

        collected: list[str] = []

        async def pump(reader: asyncio.StreamReader | None, stream: str) -> None:
            if reader is None:
                return
            async for raw in reader:
                chunk = raw.decode("utf-8", errors="replace")
                collected.append(chunk if stream == "stdout" else f"[stderr] {chunk}")
                context.stream(chunk, stream)

        try:
            await asyncio.gather(pump(process.stdout, "stdout"), pump(process.stderr, "stderr"))
            returncode = await process.wait()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        output = "".join(collected).strip()
        if len(output) > MAX_OUTPUT_CHARS:
            output = output[:MAX_OUTPUT_CHARS] + f"\n... [truncated, {len(output)} total chars]"

        if returncode != 0:
            return ToolResult(
                success=False,
                content=output,
                error=f"Exit code {returncode}\n{output}".strip(),
            )
        return ToolResult(success=True, content=output or "[no output]")
