from pathlib import Path

import pytest

from coworkbot.tools.ask_user import AskUserQuestionTool
from coworkbot.tools.files import ListDirectoryTool, ReadFileTool, WriteFileTool, artifact_type
from coworkbot.tools.registry import ToolContext
from coworkbot.tools.todo import TodoWriteTool


@pytest.mark.asyncio
async def test_write_creates_parents_and_reports_artifact(tmp_path: Path):
    artifacts: list[tuple[str, str, str]] = []
    context = ToolContext(base_path=tmp_path, on_artifact=lambda *a: artifacts.append(a))

    result = await WriteFileTool().execute(path="out/report.md", content="# Hi\n", _context=context)

    target = tmp_path / "out" / "report.md"
    assert result.success is True
    assert target.read_text(encoding="utf-8") == "# Hi\n"
    assert artifacts == [(str(target.resolve()), "report.md", "md")]


@pytest.mark.asyncio
async def test_write_can_append(tmp_path: Path):
    context = ToolContext(base_path=tmp_path)
    tool = WriteFileTool()

    await tool.execute(path="log.txt", content="one\n", _context=context)
    result = await tool.execute(path="log.txt", content="two\n", append=True, _context=context)

    assert result.content.startswith("Appended")
    assert (tmp_path / "log.txt").read_text(encoding="utf-8") == "one\ntwo\n"


@pytest.mark.asyncio
async def test_read_supports_offset_and_limit(tmp_path: Path):
    (tmp_path / "lines.txt").write_text("a\nb\nc\nd\n", encoding="utf-8")

    result = await ReadFileTool().execute(
        path="lines.txt", offset=2, limit=2, _context=ToolContext(base_path=tmp_path)
    )

    assert result.success is True
    assert result.content.endswith("\nb\nc")
    assert "[lines 2-3]" in result.content


@pytest.mark.asyncio
async def test_read_rejects_missing_and_oversized_files(tmp_path: Path):
    context = ToolContext(base_path=tmp_path)
    (tmp_path / "big.txt").write_text("x" * 50, encoding="utf-8")

    missing = await ReadFileTool().execute(path="nope.txt", _context=context)
    too_big = await ReadFileTool(max_bytes=10).execute(path="big.txt", _context=context)

    assert missing.success is False
    assert missing.error == "File not found: nope.txt"
    assert too_big.success is False
    assert "File too large" in too_big.error


@pytest.mark.asyncio
async def test_list_directory_puts_folders_first(tmp_path: Path):
    (tmp_path / "zeta").mkdir()
    (tmp_path / "alpha.txt").write_text("", encoding="utf-8")
    (tmp_path / "beta.txt").write_text("", encoding="utf-8")

    result = await ListDirectoryTool().execute(path=".", _context=ToolContext(base_path=tmp_path))

    lines = [line.strip() for line in result.content.splitlines()[1:]]
    assert lines == ["zeta/", "alpha.txt", "beta.txt"]


@pytest.mark.asyncio
async def test_list_directory_limit_reports_remainder(tmp_path: Path):
    for i in range(5):
        (tmp_path / f"f{i}.txt").write_text("", encoding="utf-8")

    result = await ListDirectoryTool().execute(path=str(tmp_path), limit=2)

    assert result.content.endswith("... [3 more]")


def test_artifact_type_from_suffix():
    assert artifact_type(Path("report.PDF")) == "pdf"
    assert artifact_type(Path("Makefile")) == "file"


@pytest.mark.asyncio
async def test_todo_tool_tracks_progress():
    tool = TodoWriteTool()

    await tool.execute(action="overwrite", content="- design\n- build\n\n- ship")
    await tool.execute(action="update", index=1, status="completed")
    await tool.execute(action="add", content="celebrate")
    result = await tool.execute(action="list")

    assert result.content.splitlines() == [
        "Todo (1/4 completed):",
        "1. [x] design",
        "2. [ ] build",
        "3. [ ] ship",
        "4. [ ] celebrate",
    ]


@pytest.mark.asyncio
async def test_todo_tool_rejects_bad_requests():
    tool = TodoWriteTool()

    assert (await tool.execute(action="delete", index=3)).success is False
    assert (await tool.execute(action="add")).success is False
    assert (await tool.execute(action="shuffle")).error == "Unknown action: shuffle"


@pytest.mark.asyncio
async def test_ask_user_question_routes_through_context():
    asked: list[tuple[str, list[str]]] = []

    async def ask_user(question, options):
        asked.append((question, options))
        return "blue"

    result = await AskUserQuestionTool().execute(
        question=" Which color? ", options=["red", "blue"], _context=ToolContext(ask_user=ask_user)
    )

    assert result.content == "User answered: blue"
    assert asked == [("Which color?", ["red", "blue"])]


@pytest.mark.asyncio
async def test_ask_user_question_without_a_user_fails():
    result = await AskUserQuestionTool().execute(question="Anyone?", _context=ToolContext())

    assert result.success is False
