"""
Reading and writing metadata.yaml documents.

Metadata files are plain YAML dumps of the models in models.py, with keys in
model field order so repeated pulls of an unchanged remote produce
byte-identical files (and identical digests).
"""

from __future__ import annotations

from pathlib import Path
from typing import TypeVar

import yaml
from pydantic import BaseModel, ValidationError

from agentmirror.utils.fileio import read_text, write_text

M = TypeVar("M", bound=BaseModel)


class MetadataError(Exception):
    """Raised when a metadata file is missing, unparsable or invalid."""

    def __init__(self, path: Path, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


def dump_yaml(data: object) -> str:
    return yaml.safe_dump(
        data,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
        width=120,
    )


def dump_metadata(metadata: BaseModel) -> str:
    """Render a metadata model as YAML text."""
    return dump_yaml(metadata.model_dump(mode="json"))


def write_metadata(path: Path, metadata: BaseModel) -> str:
    """
    Write a metadata model to path.

    Returns:
        The exact text written, for hashing by the caller
    """
    content = dump_metadata(metadata)
    write_text(path, content)
    return content


def parse_metadata(path: Path, content: str, model: type[M]) -> M:
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise MetadataError(path, f"invalid YAML: {e}") from e
    if not isinstance(data, dict):
        raise MetadataError(path, "expected a mapping at top level")
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise MetadataError(path, f"invalid {model.__name__}: {e}") from e


def read_metadata_text(path: Path) -> str | None:
    """
    Raw text of a metadata file, or None when there is none.

    Raises:
        MetadataError: If the file is not valid UTF-8
    """
    if not path.is_file():
        return None
    try:
        return read_text(path)
    except UnicodeDecodeError as e:
        raise MetadataError(path, f"not valid UTF-8 ({e.reason} at byte {e.start})") from e


def read_metadata(path: Path, model: type[M]) -> M:
    """
    Load and validate a metadata file.

    Raises:
        MetadataError: If the file is missing, undecodable or does not validate
    """
    content = read_metadata_text(path)
    if content is None:
        raise MetadataError(path, "metadata file not found")
    return parse_metadata(path, content, model)
