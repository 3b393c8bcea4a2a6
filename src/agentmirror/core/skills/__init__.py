"""Skill script files: validation, naming and diffs."""

from agentmirror.core.skills.diff import content_diff
from agentmirror.core.skills.files import (
    SCRIPT_EXTENSIONS,
    AmbiguousScriptFileError,
    NoScriptFileError,
    ScriptFile,
    SkillFolderError,
    SkillFolderValidation,
    UnreadableScriptFileError,
    find_script_files,
    read_script,
    require_single_script,
    script_file_name,
    script_paths,
    validate_skill_folder,
)

__all__ = [
    "SCRIPT_EXTENSIONS",
    "AmbiguousScriptFileError",
    "NoScriptFileError",
    "ScriptFile",
    "SkillFolderError",
    "SkillFolderValidation",
    "UnreadableScriptFileError",
    "content_diff",
    "find_script_files",
    "read_script",
    "require_single_script",
    "script_file_name",
    "script_paths",
    "validate_skill_folder",
]
