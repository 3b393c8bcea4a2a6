"""
File helpers shared by the stores.

All persisted state (map, ledger, tokens) goes through write_text_atomic so a
crash mid-write leaves the previous file intact. Content files are written
as raw UTF-8 bytes so their digests match what was hashed in memory.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any


def write_text_atomic(path: Path, content: str) -> None:
    """
    Write text to path via a temporary file and atomic rename.

    The temporary file lives in the target directory so os.replace never
    crosses filesystems.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")

    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content.encode("utf-8"))
        os.replace(temp_path, path)
    except Exception:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise


def write_json_atomic(path: Path, data: Any) -> None:
    """Serialize data as indented JSON and write it atomically."""
    write_text_atomic(path, json.dumps(data, indent=2, ensure_ascii=False) + "\n")


def write_text(path: Path, content: str) -> None:
    """Write a content file, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content.encode("utf-8"))


def read_text(path: Path) -> str:
    return path.read_bytes().decode("utf-8")
