"""
Skill folder validation.

Each skill folder must contain exactly one script file, and its extension is
determined by the skill's runner kind (.guidance or .jinja). Both pull and
push consult this module before reading or writing skill content; a folder
with zero or several scripts is never guessed at.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from agentmirror.core.tree.models import RunnerKind
from agentmirror.utils.fileio import read_text

SCRIPT_EXTENSIONS = frozenset(f".{kind.extension}" for kind in RunnerKind)


class SkillFolderError(Exception):
    """Base error for invalid skill folders."""

    def __init__(self, folder: Path, message: str) -> None:
        super().__init__(message)
        self.folder = folder


class NoScriptFileError(SkillFolderError):
    def __init__(self, folder: Path) -> None:
        super().__init__(folder, f"No script file found in skill folder: {folder.name}")


class AmbiguousScriptFileError(SkillFolderError):
    def __init__(self, folder: Path, candidates: list[str]) -> None:
        super().__init__(
            folder,
            f"Ambiguous script file in skill {folder.name}: {', '.join(candidates)}. "
            "Keep only one script file per skill.",
        )
        self.candidates = candidates


class UnreadableScriptFileError(SkillFolderError):
    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(path.parent, f"Cannot read script file {path.name}: {reason}")
        self.path = path


@dataclass
class ScriptFile:
    path: Path
    content: str

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def extension(self) -> str:
        return self.path.suffix.lstrip(".")

    @property
    def runner(self) -> RunnerKind:
        return RunnerKind.from_extension(self.extension)


@dataclass
class SkillFolderValidation:
    files: list[ScriptFile] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.files) == 1 and not self.errors


def script_file_name(slug: str, runner: RunnerKind) -> str:
    """Canonical script file name for a skill."""
    return f"{slug}.{runner.extension}"


def script_paths(folder: Path) -> list[Path]:
    """Recognized script files in a skill folder, sorted by name, without reading them."""
    if not folder.is_dir():
        return []
    return [
        path
        for path in sorted(folder.iterdir())
        if path.is_file() and path.suffix.lower() in SCRIPT_EXTENSIONS
    ]


def read_script(path: Path) -> ScriptFile:
    """
    Raises:
        UnreadableScriptFileError: If the file is not valid UTF-8 or cannot be read
    """
    try:
        return ScriptFile(path=path, content=read_text(path))
    except UnicodeDecodeError as e:
        reason = f"not valid UTF-8 ({e.reason} at byte {e.start})"
        raise UnreadableScriptFileError(path, reason) from e
    except OSError as e:
        raise UnreadableScriptFileError(path, str(e)) from e


def find_script_files(folder: Path) -> list[ScriptFile]:
    """
    Read every recognized script file in a skill folder, sorted by name.

    A missing folder has no script files.

    Raises:
        UnreadableScriptFileError: If one of the files cannot be decoded
    """
    return [read_script(path) for path in script_paths(folder)]


def validate_skill_folder(folder: Path) -> SkillFolderValidation:
    """Check that a skill folder holds exactly one readable script file."""
    paths = script_paths(folder)
    validation = SkillFolderValidation()

    if not paths:
        validation.errors.append(str(NoScriptFileError(folder)))
    elif len(paths) > 1:
        validation.errors.append(str(AmbiguousScriptFileError(folder, [p.name for p in paths])))
        validation.warnings.append(
            "Only one script file allowed per skill. Remove extra files and keep one."
        )

    try:
        validation.files = [read_script(path) for path in paths]
    except UnreadableScriptFileError as e:
        validation.errors.append(str(e))

    return validation


def require_single_script(folder: Path) -> ScriptFile:
    """
    Return the skill folder's only script file.

    Raises:
        NoScriptFileError: If the folder has no script file
        AmbiguousScriptFileError: If the folder has more than one
        UnreadableScriptFileError: If the script is not valid UTF-8
    """
    paths = script_paths(folder)
    if not paths:
        raise NoScriptFileError(folder)
    if len(paths) > 1:
        raise AmbiguousScriptFileError(folder, [p.name for p in paths])
    return read_script(paths[0])
