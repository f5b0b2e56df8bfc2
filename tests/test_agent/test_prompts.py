from pathlib import Path

from coworkbot.permissions import FolderPathAuthority
from coworkbot.prompts import InstructionLoader, PromptBuilder
from coworkbot.task_analyzer import TaskAnalyzer


def make_builder(tmp_path: Path, folders=None) -> PromptBuilder:
    loader = InstructionLoader(personal_dir=tmp_path / "personal")
    return PromptBuilder(loader=loader, path_authority=FolderPathAuthority(folders or []))


def test_build_includes_mode_tools_and_working_directory(tmp_path: Path):
    builder = make_builder(tmp_path, folders=[tmp_path])
    tools = [{"name": "read_file", "description": "Read a file", "parameters": {}}]

    prompt = builder.build("code", tools)

    assert "CODE MODE" in prompt
    assert "- read_file: Read a file" in prompt
    assert f"- Primary: {tmp_path.resolve()}" in prompt
    assert "{" not in prompt.split("<tool_usage>")[0]


def test_build_without_folders_asks_for_one(tmp_path: Path):
    prompt = make_builder(tmp_path).build("chat", [])

    assert "No working directory has been selected yet." in prompt
    assert "No tools are available" in prompt


def test_personal_override_takes_precedence(tmp_path: Path):
    personal = tmp_path / "personal"
    personal.mkdir()
    (personal / "mode_cowork.md").write_text("CUSTOM COWORK RULES", encoding="utf-8")

    prompt = make_builder(tmp_path).build("cowork", [])

    assert "CUSTOM COWORK RULES" in prompt


def test_unknown_placeholders_are_left_intact(tmp_path: Path):
    base = tmp_path / "base"
    base.mkdir()
    (base / "greeting.md").write_text("Hello {name}, see {missing}", encoding="utf-8")
    loader = InstructionLoader(base_dir=base, personal_dir=tmp_path / "personal")

    assert loader.render("greeting.md", name="Ada") == "Hello Ada, see {missing}"


def test_todo_reminder_carries_the_analysis(tmp_path: Path):
    analysis = TaskAnalyzer().analyze("Build a REST API, write tests, and deploy it")

    reminder = make_builder(tmp_path).build_todo_reminder(analysis)

    assert "Complexity: COMPLEX" in reminder
    assert f"Estimated steps: {analysis.estimated_steps}" in reminder
