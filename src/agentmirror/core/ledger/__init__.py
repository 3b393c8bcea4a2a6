"""
Hash ledger for local change detection.

Example:
    >>> from agentmirror.core.ledger import LedgerStore, compute_digest
    >>> ledger = LedgerStore(layout)
    >>> entries = ledger.load()
"""

from agentmirror.core.ledger.store import LedgerError, LedgerStore, compute_digest

__all__ = ["LedgerError", "LedgerStore", "compute_digest"]
