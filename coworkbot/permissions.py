"""Permission collaborators consulted before running gated tools."""

from pathlib import Path
from typing import Iterable, Protocol


def _resolve(path: str | Path) -> Path:
    return Path(path).expanduser().resolve()


def _is_within(child: Path, parent: Path) -> bool:
    try:
        child.relative_to(parent)
    except ValueError:
        return False
    return True


class PermissionStore(Protocol):
    def is_preapproved(self, tool: str, path: str | None = None) -> bool: ...

    def grant(self, tool: str, path: str | None = None) -> None: ...


class PathAuthority(Protocol):
    def is_path_authorized(self, path: str) -> bool: ...


class MemoryPermissionStore:
    """Remembered approvals, per tool and optionally per path.

    A grant without a path covers every call of the tool; a path grant covers
    that path and anything below it.
    """

    def __init__(self) -> None:
        self._grants: dict[str, set[Path | None]] = {}

    def grant(self, tool: str, path: str | None = None) -> None:
        key = str(tool or "").strip()
        if not key:
            return
        self._grants.setdefault(key, set()).add(_resolve(path) if path else None)

    def revoke(self, tool: str) -> None:
        self._grants.pop(str(tool or "").strip(), None)

    def is_preapproved(self, tool: str, path: str | None = None) -> bool:
        grants = self._grants.get(str(tool or "").strip())
        if not grants:
            return False
        if None in grants:
            return True
        if not path:
            return False
        target = _resolve(path)
        return any(grant is not None and _is_within(target, grant) for grant in grants)


class FolderPathAuthority:
    """Authorizes paths that live inside one of the configured folders."""

    def __init__(self, folders: Iterable[str | Path] | None = None):
        self._folders: list[Path] = []
        for folder in folders or []:
            self.add_folder(folder)

    @property
    def folders(self) -> list[str]:
        return [str(folder) for folder in self._folders]

    def add_folder(self, folder: str | Path) -> None:
        resolved = _resolve(folder)
        if resolved not in self._folders:
            self._folders.append(resolved)

    def is_path_authorized(self, path: str) -> bool:
        if not path:
            return False
        target = _resolve(path)
        return any(_is_within(target, folder) for folder in self._folders)
