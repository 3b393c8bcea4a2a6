"""Utility modules for agentmirror."""

from .fileio import (
    read_text,
    write_json_atomic,
    write_text,
    write_text_atomic,
)

__all__ = [
    "read_text",
    "write_json_atomic",
    "write_text",
    "write_text_atomic",
]
