"""
Hash ledger: canonical path -> SHA-256 digest of the file's content.

The ledger is the single source of truth for "has this file changed since
the last sync". It knows nothing about entities; it only ever compares raw
bytes. One ledger file exists per customer namespace.
"""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path

from agentmirror.core.tree.layout import TreeLayout
from agentmirror.utils.fileio import write_json_atomic

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Raised when an existing ledger file cannot be read."""

    pass


def compute_digest(content: str | bytes) -> str:
    """
    SHA-256 hex digest of content (str is encoded as UTF-8).

    Example:
        >>> compute_digest("hello")[:12]
        '2cf24dba5fb0'
    """
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


class LedgerStore:
    """
    Persistence for one customer's hash ledger.

    Example:
        >>> ledger = LedgerStore(layout)
        >>> entries = ledger.load()
        >>> entries[ledger.key(path)] = compute_digest(content)
        >>> ledger.save(entries)
    """

    def __init__(self, layout: TreeLayout) -> None:
        self.layout = layout

    @property
    def path(self) -> Path:
        return self.layout.ledger_path

    def key(self, path: Path) -> str:
        return self.layout.key(path)

    def load(self) -> dict[str, str]:
        """
        Load the ledger; an absent file is an empty ledger, not an error.

        Raises:
            LedgerError: If the file exists but is not a flat string map
        """
        if not self.path.is_file():
            return {}

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            raise LedgerError(f"Failed to read hash ledger {self.path}: {e}") from e

        if not isinstance(data, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in data.items()
        ):
            raise LedgerError(f"Invalid hash ledger format in {self.path}")

        return data

    def save(self, entries: dict[str, str]) -> None:
        """Atomically overwrite the ledger with entries (keys sorted)."""
        write_json_atomic(self.path, dict(sorted(entries.items())))
        logger.debug("Saved %d ledger entries to %s", len(entries), self.path)

    @staticmethod
    def digest_file(path: Path) -> str | None:
        """Digest of a file on disk, or None if it does not exist."""
        if not path.is_file():
            return None
        return compute_digest(path.read_bytes())
