"""Load and render system prompt templates from disk.

Templates live in ``coworkbot/instructions/``. Files in
``~/.coworkbot/instructions/`` with the same name take precedence, so a
user can adjust the prompts without touching the installed package.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, Mapping

from coworkbot.content import WorkMode

if TYPE_CHECKING:
    from coworkbot.permissions import FolderPathAuthority
    from coworkbot.task_analyzer import TaskAnalysis

_PERSONAL_DIR = Path("~/.coworkbot/instructions").expanduser()

_MODE_TITLES = {
    WorkMode.CHAT: ("CHAT MODE", "a conversational assistant that answers through dialogue only."),
    WorkMode.CODE: ("CODE MODE", "a coding assistant focused on reading, writing and debugging code."),
    WorkMode.COWORK: ("COWORK MODE", "a full-capability agent for files, commands and multi-step project work."),
}


class _SafeFormatDict(dict[str, str]):
    """Leave unknown placeholders untouched instead of raising KeyError."""

    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


class InstructionLoader:
    """Read and render instruction templates with personal-override support.

    Resolution order for every template:
      1. ``personal_dir / name``  (``~/.coworkbot/instructions/``)
      2. ``base_dir / name``      (packaged ``instructions/``)
    """

    def __init__(
        self,
        base_dir: Path | str | None = None,
        personal_dir: Path | str | None = None,
    ):
        self.base_dir = self._resolve_base_dir(base_dir)
        self.personal_dir: Path = (
            Path(personal_dir).expanduser().resolve()
            if personal_dir is not None
            else _PERSONAL_DIR.resolve()
        )
        self._cache: dict[str, str] = {}

    @staticmethod
    def _resolve_base_dir(base_dir: Path | str | None) -> Path:
        if base_dir is not None:
            return Path(base_dir).expanduser().resolve()
        env_dir = os.getenv("COWORKBOT_INSTRUCTIONS_DIR")
        if env_dir:
            return Path(env_dir).expanduser().resolve()
        return (Path(__file__).resolve().parent / "instructions").resolve()

    def _path(self, name: str) -> Path:
        personal = self.personal_dir / name
        if personal.is_file():
            return personal
        return self.base_dir / name

    def load(self, name: str) -> str:
        """Load instruction template content by filename."""
        cached = self._cache.get(name)
        if cached is not None:
            return cached

        path = self._path(name)
        if not path.is_file():
            raise FileNotFoundError(f"Instruction template not found: {path}")
        content = path.read_text(encoding="utf-8").strip()
        self._cache[name] = content
        return content

    def render(self, name: str, **variables: object) -> str:
        """Render template with ``str.format`` placeholder substitution."""
        template = self.load(name)
        values: Mapping[str, str] = {k: str(v) for k, v in variables.items()}
        return template.format_map(_SafeFormatDict(values))


class PromptBuilder:
    """Build the system prompt for a work mode."""

    def __init__(
        self,
        loader: InstructionLoader | None = None,
        path_authority: FolderPathAuthority | None = None,
    ):
        self.loader = loader or InstructionLoader()
        self.path_authority = path_authority

    def working_directory_context(self) -> str:
        folders = self.path_authority.folders if self.path_authority else []
        if not folders:
            return (
                "No working directory has been selected yet. "
                "Ask the user to choose a folder before working with files."
            )
        return (
            f"- Primary: {folders[0]}\n"
            f"- All authorized: {', '.join(folders)}\n"
            "Work inside these directories and use absolute paths."
        )

    def build(self, mode: WorkMode | str, tools: list[dict[str, Any]] | None = None) -> str:
        work_mode = WorkMode.parse(mode)
        title, summary = _MODE_TITLES[work_mode]
        tool_list = "\n".join(
            f"- {tool['name']}: {tool.get('description', '')}" for tool in tools or []
        ) or "- No tools are available; answer directly."
        return self.loader.render(
            "system_prompt.md",
            mode_title=title,
            mode_summary=summary,
            mode_section=self.loader.load(f"mode_{work_mode.value}.md"),
            tool_list=tool_list,
            working_directory=self.working_directory_context(),
        )

    def build_todo_reminder(self, analysis: TaskAnalysis) -> str:
        return self.loader.render(
            "todo_reminder.md",
            complexity=analysis.complexity.upper(),
            reason=analysis.reason,
            estimated_steps=analysis.estimated_steps or "N/A",
        )
