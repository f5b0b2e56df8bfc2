from pathlib import Path

import pytest

from coworkbot.tools.registry import ToolContext
from coworkbot.tools.shell import RunCommandTool, is_blocked_shell_command

BLOCKED = ["rm -rf /", "mkfs", "shutdown"]


def test_blocked_patterns_match_base_command_or_segment():
    assert is_blocked_shell_command("mkfs.ext4 /dev/sda1", BLOCKED) == (True, "mkfs")
    assert is_blocked_shell_command("ls && sudo shutdown now", BLOCKED) == (True, "shutdown")
    assert is_blocked_shell_command("echo hi; rm -rf /", BLOCKED) == (True, "rm -rf /")
    assert is_blocked_shell_command("echo shutdown", BLOCKED) == (False, "")
    assert is_blocked_shell_command("FOO=1 ls -la", BLOCKED) == (False, "")


def test_empty_and_unparseable_commands_are_blocked():
    assert is_blocked_shell_command("   ", BLOCKED) == (True, "empty_command")
    assert is_blocked_shell_command("echo 'unterminated", BLOCKED) == (True, "unparseable_command")


@pytest.mark.asyncio
async def test_run_command_streams_output(tmp_path: Path):
    chunks: list[tuple[str, str]] = []
    context = ToolContext(base_path=tmp_path, on_stream=lambda chunk, stream: chunks.append((chunk, stream)))

    result = await RunCommandTool(blocked=BLOCKED).execute(
        command="echo hello && echo oops 1>&2", _context=context
    )

    assert result.success is True
    assert ("hello\n", "stdout") in chunks
    assert ("oops\n", "stderr") in chunks
    assert "hello" in result.content
    assert "[stderr] oops" in result.content


@pytest.mark.asyncio
async def test_run_command_uses_requested_cwd(tmp_path: Path):
    (tmp_path / "sub").mkdir()

    result = await RunCommandTool().execute(command="pwd", cwd="sub", _context=ToolContext(base_path=tmp_path))

    assert result.content.strip() == str((tmp_path / "sub").resolve())


@pytest.mark.asyncio
async def test_non_zero_exit_is_a_failure(tmp_path: Path):
    result = await RunCommandTool().execute(command="echo partial; exit 3", _context=ToolContext(base_path=tmp_path))

    assert result.success is False
    assert result.error.startswith("Exit code 3")
    assert "partial" in result.error


@pytest.mark.asyncio
async def test_blocked_command_is_not_run(tmp_path: Path):
    marker = tmp_path / "marker"

    result = await RunCommandTool(blocked=["touch"]).execute(
        command=f"touch {marker}", _context=ToolContext(base_path=tmp_path)
    )

    assert result.success is False
    assert result.error == "Command blocked: Command matches blocked pattern: touch"
    assert not marker.exists()
